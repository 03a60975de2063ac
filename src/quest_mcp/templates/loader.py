"""Template loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import TaskTemplate


class TemplateLoadError(RuntimeError):
    """Raised when one or more template files cannot be parsed."""


class TemplateLoader:
    """Loads task templates from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> dict[str, TaskTemplate]:
        """Load templates from all configured search paths.

        Later search paths override earlier ones when template ids collide.
        """

        if not self._search_paths:
            return {}

        templates: dict[str, TaskTemplate] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                try:
                    template = TaskTemplate.model_validate(document)
                except ValidationError as exc:
                    errors.append(f"Template validation error in {path}: {exc}")
                    continue

                if template.id is None:
                    errors.append(f"Template in {path} is missing an id")
                    continue

                templates[template.id] = template

        if errors:
            raise TemplateLoadError("; ".join(errors))

        return templates

    def get(self, template_id: str) -> TaskTemplate:
        """Return a single template by id."""

        templates = self.load_all()
        try:
            return templates[template_id]
        except KeyError as exc:
            raise TemplateLoadError(f"Template '{template_id}' not found in search paths") from exc


__all__ = ["TaskTemplate", "TemplateLoadError", "TemplateLoader"]
