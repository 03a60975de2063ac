"""Task template models supplied by content generators."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..engine.models import RequirementType


class _DraftModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class RequirementDraft(_DraftModel):
    """A requirement as described by a template, before ids are assigned."""

    title: str = Field(..., description="Display title of the requirement.")
    type: RequirementType = Field(..., description="BOOLEAN, NUMERIC or GROUP.")
    description: str | None = None
    is_optional: bool = False
    xor_group: str | None = Field(
        default=None,
        description="Label shared by mutually exclusive siblings.",
    )
    target_value: float | None = Field(default=None, description="Goal for NUMERIC drafts.")
    value_limit: float | None = None
    children: list[RequirementDraft] = Field(default_factory=list)
    custom_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def _normalize_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Requirement title must not be empty")
        return normalized

    @field_validator("children", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("Requirement children must be a sequence")

    @model_validator(mode="after")
    def _check_children_for_type(self) -> RequirementDraft:
        if self.children and self.type is not RequirementType.GROUP:
            raise ValueError(f"Only GROUP requirements may have children ('{self.title}')")
        return self


class TaskTemplate(_DraftModel):
    """Blueprint for a task: metadata, optional time limit and requirement drafts."""

    id: str | None = Field(
        default=None,
        description="Template identifier; required for templates loaded from disk.",
    )
    title: str = Field(..., description="Display title for tasks built from this template.")
    description: str = Field(default="", description="Display description.")
    time_limit: float | None = Field(
        default=None,
        ge=0,
        description="Time budget in seconds; absent or zero means unbounded.",
    )
    requirements: list[RequirementDraft] = Field(default_factory=list)
    custom_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError("Template id must not be empty")
        return normalized

    @field_validator("requirements", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("Template requirements must be a sequence")


RequirementDraft.model_rebuild()


__all__ = ["RequirementDraft", "TaskTemplate"]
