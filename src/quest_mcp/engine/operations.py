"""Task control operations.

Each operation takes a task snapshot and returns a new one. Transitions that
are not allowed from the current status return the input unchanged; callers
compare the returned status to detect that nothing happened.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from .evaluator import Clock, default_clock, evaluate_task
from .models import Requirement, RequirementType, Task, TaskStatus

logger = logging.getLogger(__name__)

_STARTABLE = {TaskStatus.IDLE, TaskStatus.PAUSED}
_EDITABLE = {TaskStatus.RUNNING, TaskStatus.PAUSED}
_IMMUTABLE_FIELDS = {"id", "type", "children"}


class TaskEngineError(RuntimeError):
    """Base class for quest engine errors."""


class RequirementNotFoundError(TaskEngineError, LookupError):
    """Raised when an update targets an id that is not in the task's tree."""


class InvalidRequirementUpdateError(TaskEngineError, ValueError):
    """Raised when a partial requirement update cannot be applied."""


def start_task(task: Task, *, clock: Clock | None = None) -> Task:
    if task.status not in _STARTABLE:
        return task
    return evaluate_task(task.model_copy(update={"status": TaskStatus.RUNNING}), clock=clock)


def pause_task(task: Task) -> Task:
    """Freeze a running task as-is; no evaluation pass is run."""

    if task.status is not TaskStatus.RUNNING:
        return task
    return task.model_copy(update={"status": TaskStatus.PAUSED})


def _reset_nodes(nodes: Sequence[Requirement]) -> tuple[Requirement, ...]:
    return tuple(
        node.model_copy(
            update={
                "is_fulfilled": False,
                "is_disabled": False,
                "current_value": 0 if node.type is RequirementType.NUMERIC else None,
                "children": _reset_nodes(node.children),
            }
        )
        for node in nodes
    )


def reset_task(task: Task, *, clock: Clock | None = None) -> Task:
    """Clear all progress and return the task to IDLE, from any status."""

    clock = clock or default_clock
    return task.model_copy(
        update={
            "status": TaskStatus.IDLE,
            "elapsed_time": 0,
            "requirements": _reset_nodes(task.requirements),
            "updated_at": clock(),
        }
    )


def tick_task(task: Task, delta_seconds: float = 1, *, clock: Clock | None = None) -> Task:
    """Advance a running task's clock by ``delta_seconds`` and re-evaluate."""

    if delta_seconds < 0:
        raise ValueError("delta_seconds must be >= 0")
    if task.status is not TaskStatus.RUNNING:
        return task
    advanced = task.model_copy(update={"elapsed_time": task.elapsed_time + delta_seconds})
    return evaluate_task(advanced, clock=clock)


def _normalize_update(updates: Mapping[str, Any]) -> dict[str, Any]:
    """Map alias or attribute names onto attribute names."""

    by_alias = {
        (info.alias or name): name for name, info in Requirement.model_fields.items()
    }
    normalized: dict[str, Any] = {}
    for key, value in updates.items():
        name = key if key in Requirement.model_fields else by_alias.get(key)
        if name is None:
            raise InvalidRequirementUpdateError(f"Unknown requirement field '{key}'")
        if name in _IMMUTABLE_FIELDS:
            raise InvalidRequirementUpdateError(f"Requirement field '{name}' cannot be updated")
        normalized[name] = value
    return normalized


def _apply_update(node: Requirement, changes: dict[str, Any]) -> Requirement:
    if node.is_disabled:
        logger.debug("Rejected update to disabled requirement", extra={"requirement_id": node.id})
        return node
    payload = {**node.model_dump(exclude={"children"}), **changes}
    try:
        updated = Requirement.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequirementUpdateError(
            f"Invalid update for requirement '{node.id}': {exc}"
        ) from exc
    return updated.model_copy(update={"children": node.children})


def _replace_in_tree(
    nodes: Sequence[Requirement],
    requirement_id: str,
    changes: dict[str, Any],
) -> tuple[tuple[Requirement, ...], bool]:
    replaced: list[Requirement] = []
    found = False
    for node in nodes:
        if found:
            replaced.append(node)
        elif node.id == requirement_id:
            replaced.append(_apply_update(node, changes))
            found = True
        elif node.children:
            children, found = _replace_in_tree(node.children, requirement_id, changes)
            replaced.append(node.model_copy(update={"children": children}) if found else node)
        else:
            replaced.append(node)
    return tuple(replaced), found


def update_requirement_value(
    task: Task,
    requirement_id: str,
    updates: Mapping[str, Any],
    *,
    clock: Clock | None = None,
) -> Task:
    """Overwrite fields of one requirement, then re-evaluate the whole task.

    Only RUNNING and PAUSED tasks accept updates. A requirement that is
    currently disabled keeps its state and the write is dropped.

    Raises:
        RequirementNotFoundError: no node in the tree has ``requirement_id``.
        InvalidRequirementUpdateError: ``updates`` names an unknown or
            immutable field, or produces an invalid node.
    """

    if task.status not in _EDITABLE:
        return task

    changes = _normalize_update(updates)
    requirements, found = _replace_in_tree(task.requirements, requirement_id, changes)
    if not found:
        raise RequirementNotFoundError(
            f"Requirement '{requirement_id}' not found in task '{task.id}'"
        )
    return evaluate_task(task.model_copy(update={"requirements": requirements}), clock=clock)


__all__ = [
    "InvalidRequirementUpdateError",
    "RequirementNotFoundError",
    "TaskEngineError",
    "pause_task",
    "reset_task",
    "start_task",
    "tick_task",
    "update_requirement_value",
]
