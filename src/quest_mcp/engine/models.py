"""Task and requirement tree models for the quest engine."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class RequirementType(str, Enum):
    """How a requirement node decides whether it is fulfilled."""

    BOOLEAN = "BOOLEAN"
    NUMERIC = "NUMERIC"
    GROUP = "GROUP"


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"  # set by collaborators only
    LOCKED = "LOCKED"  # set by collaborators only


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Requirement(_SnapshotModel):
    """A node in a task's requirement tree.

    ``is_fulfilled`` and ``is_disabled`` are derived by the evaluator; values
    supplied on input are treated as hints and overwritten on the next pass.
    """

    id: str = Field(..., description="Identifier, unique within the owning task.")
    type: RequirementType = Field(..., description="Evaluation semantics of the node.")
    title: str = Field(default="", description="Display title.")
    description: str | None = Field(default=None, description="Display description.")
    is_optional: bool = Field(
        default=False,
        description="Excluded from the parent's completion check when true.",
    )
    xor_group: str | None = Field(
        default=None,
        description="Siblings sharing this label are mutually exclusive.",
    )
    current_value: float | None = Field(default=None, description="NUMERIC progress.")
    target_value: float | None = Field(
        default=None,
        description="NUMERIC goal; treated as 1 when absent.",
    )
    value_limit: float | None = Field(
        default=None,
        description="NUMERIC ceiling; exceeding it disables the node.",
    )
    children: tuple[Requirement, ...] = Field(
        default=(),
        description="Child nodes, GROUP only.",
    )
    is_fulfilled: bool = False
    is_disabled: bool = False
    custom_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque caller payload, carried through unchanged.",
    )

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Requirement id must not be empty")
        return normalized

    @field_validator("xor_group")
    @classmethod
    def _normalize_xor_group(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("children", mode="before")
    @classmethod
    def _ensure_children(cls, value: Any):
        if value is None:
            return ()
        return value

    @model_validator(mode="after")
    def _check_children_for_type(self) -> Requirement:
        if self.children and self.type is not RequirementType.GROUP:
            raise ValueError(
                f"Requirement '{self.id}' of type {self.type.value} cannot have children"
            )
        return self


def iter_requirements(nodes: Iterable[Requirement]) -> Iterator[Requirement]:
    """Yield every node of the given forest, depth-first and in order."""

    for node in nodes:
        yield node
        if node.children:
            yield from iter_requirements(node.children)


class Task(_SnapshotModel):
    """A composite quest built from a requirement tree and a time budget."""

    id: str = Field(..., description="Identifier of the task.")
    title: str = Field(..., description="Display title.")
    description: str = Field(default="", description="Display description.")
    status: TaskStatus = Field(default=TaskStatus.IDLE)
    requirements: tuple[Requirement, ...] = Field(default=())
    time_limit: float | None = Field(
        default=None,
        ge=0,
        description="Budget in seconds; absent or zero means unbounded.",
    )
    elapsed_time: float = Field(default=0, ge=0, description="Seconds spent running.")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    is_locked: bool = False
    custom_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Task id must not be empty")
        return normalized

    @field_validator("requirements", mode="before")
    @classmethod
    def _ensure_requirements(cls, value: Any):
        if value is None:
            return ()
        return value

    @model_validator(mode="after")
    def _check_unique_requirement_ids(self) -> Task:
        seen: set[str] = set()
        for node in iter_requirements(self.requirements):
            if node.id in seen:
                raise ValueError(f"Duplicate requirement id '{node.id}' in task '{self.id}'")
            seen.add(node.id)
        return self

    @property
    def has_time_limit(self) -> bool:
        return bool(self.time_limit)

    def iter_requirements(self) -> Iterator[Requirement]:
        return iter_requirements(self.requirements)

    def find_requirement(self, requirement_id: str) -> Requirement | None:
        for node in self.iter_requirements():
            if node.id == requirement_id:
                return node
        return None


Requirement.model_rebuild()


__all__ = [
    "Requirement",
    "RequirementType",
    "Task",
    "TaskStatus",
    "iter_requirements",
]
