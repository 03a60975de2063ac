"""Evaluation pass: derives fulfillment, XOR exclusion and task status.

Every state-changing operation funnels its candidate snapshot through
:func:`evaluate_task`; nothing else writes the derived fields.

XOR siblings are resolved per pass from the snapshot alone. The winner of a
label is the first enabled sibling, in order, whose own criteria hold (a
BOOLEAN's current flag, a NUMERIC's value against its target, a GROUP's
children). A sibling disabled by an earlier pass only wins once no enabled
sibling holds.
Every other member of that label is disabled and unfulfilled. Losing BOOLEAN
nodes are forced false and losing NUMERIC nodes keep their values, so the
next pass elects the same winner.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from .models import Requirement, RequirementType, Task, TaskStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_TARGET_VALUE = 1.0

# Statuses for which the evaluator stops after the time-limit check.
_FROZEN_STATUSES = {TaskStatus.IDLE, TaskStatus.LOCKED}


def default_clock() -> datetime:
    return datetime.now(timezone.utc)


def _limit_breached(node: Requirement) -> bool:
    current = node.current_value or 0
    return node.value_limit is not None and current > node.value_limit


def _all_mandatory_fulfilled(nodes: Sequence[Requirement]) -> bool:
    # Disabled mandatory nodes are not skipped: an XOR loser blocks completion.
    relevant = [node for node in nodes if not node.is_optional]
    return all(node.is_fulfilled for node in relevant)


def _evaluate_own_criteria(node: Requirement) -> Requirement:
    """Apply type-specific rules to a node that XOR has not excluded."""

    if node.type is RequirementType.BOOLEAN:
        return node.model_copy(update={"is_disabled": False})

    if node.type is RequirementType.NUMERIC:
        current = node.current_value or 0
        target = node.target_value if node.target_value is not None else DEFAULT_TARGET_VALUE
        if _limit_breached(node):
            return node.model_copy(update={"is_fulfilled": False, "is_disabled": True})
        return node.model_copy(update={"is_fulfilled": current >= target, "is_disabled": False})

    if node.type is RequirementType.GROUP:
        children = evaluate_requirements(node.children)
        return node.model_copy(
            update={
                "children": children,
                "is_fulfilled": _all_mandatory_fulfilled(children),
                "is_disabled": False,
            }
        )

    raise ValueError(f"Unsupported requirement type {node.type!r}")


def _holds_on_its_own(node: Requirement) -> bool:
    # BOOLEAN nodes are their own authority; other types are re-derived so a
    # stale hint cannot claim an XOR label.
    if node.type is RequirementType.BOOLEAN:
        return node.is_fulfilled
    return _evaluate_own_criteria(node).is_fulfilled


def _xor_winner(label: str, siblings: Sequence[Requirement]) -> str | None:
    """Return the id of the sibling that holds ``label`` this pass.

    Enabled members are preferred so a node disabled by an earlier pass cannot
    take the label from the current holder. Disabled members are only
    considered once no enabled member holds.
    """

    members = [sibling for sibling in siblings if sibling.xor_group == label]
    enabled = [member for member in members if not member.is_disabled]
    for candidates in (enabled, members):
        for member in candidates:
            if _holds_on_its_own(member):
                return member.id
    return None


def evaluate_requirement(node: Requirement, siblings: Sequence[Requirement]) -> Requirement:
    """Evaluate ``node`` against the level it lives on.

    ``siblings`` is the full level, ``node`` included. A node that loses its
    XOR label is returned disabled and unfulfilled without evaluating its own
    criteria.
    """

    if node.xor_group:
        winner = _xor_winner(node.xor_group, siblings)
        if winner is not None and winner != node.id:
            return node.model_copy(update={"is_disabled": True, "is_fulfilled": False})

    return _evaluate_own_criteria(node)


def evaluate_requirements(nodes: Sequence[Requirement]) -> tuple[Requirement, ...]:
    """Evaluate one tree level, each node against the whole level."""

    return tuple(evaluate_requirement(node, nodes) for node in nodes)


def evaluate_task(task: Task, *, clock: Clock | None = None) -> Task:
    """Run one evaluation pass over ``task`` and return the new snapshot.

    Idempotent apart from ``updated_at``: evaluating the output again yields
    the same fields.
    """

    clock = clock or default_clock
    status = task.status

    if task.has_time_limit and task.elapsed_time >= task.time_limit and status is TaskStatus.RUNNING:
        logger.debug(
            "Task exceeded its time limit",
            extra={"task_id": task.id, "elapsed": task.elapsed_time, "limit": task.time_limit},
        )
        status = TaskStatus.FAILED

    if status in _FROZEN_STATUSES:
        if status is task.status:
            return task
        return task.model_copy(update={"status": status})

    requirements = evaluate_requirements(task.requirements)

    if status is TaskStatus.RUNNING and _all_mandatory_fulfilled(requirements):
        logger.debug("Task completed", extra={"task_id": task.id})
        status = TaskStatus.COMPLETED

    return task.model_copy(
        update={
            "status": status,
            "requirements": requirements,
            "updated_at": clock(),
        }
    )


__all__ = [
    "Clock",
    "DEFAULT_TARGET_VALUE",
    "default_clock",
    "evaluate_requirement",
    "evaluate_requirements",
    "evaluate_task",
]
