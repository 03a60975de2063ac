"""Turn task templates into fresh, evaluated task snapshots."""

from __future__ import annotations

from typing import Callable, Iterable
from uuid import uuid4

from ..engine import Requirement, RequirementType, Task, TaskStatus, evaluate_task
from ..engine.evaluator import Clock, default_clock
from .models import RequirementDraft, TaskTemplate


def _new_id() -> str:
    return uuid4().hex


def _build_requirements(
    drafts: Iterable[RequirementDraft],
    id_factory: Callable[[], str],
) -> tuple[Requirement, ...]:
    return tuple(
        Requirement(
            id=id_factory(),
            type=draft.type,
            title=draft.title,
            description=draft.description,
            is_optional=draft.is_optional,
            xor_group=draft.xor_group,
            current_value=0 if draft.type is RequirementType.NUMERIC else None,
            target_value=draft.target_value,
            value_limit=draft.value_limit,
            children=_build_requirements(draft.children, id_factory),
            is_fulfilled=False,
            custom_data=dict(draft.custom_data),
        )
        for draft in drafts
    )


def instantiate_template(
    template: TaskTemplate,
    *,
    id_factory: Callable[[], str] | None = None,
    clock: Clock | None = None,
) -> Task:
    """Build an IDLE task from ``template`` with fresh ids on every node."""

    id_factory = id_factory or _new_id
    clock = clock or default_clock
    now = clock()
    custom_data = dict(template.custom_data)
    if template.id:
        custom_data.setdefault("template_id", template.id)

    task = Task(
        id=id_factory(),
        title=template.title,
        description=template.description,
        status=TaskStatus.IDLE,
        requirements=_build_requirements(template.requirements, id_factory),
        time_limit=template.time_limit or None,
        elapsed_time=0,
        created_at=now,
        updated_at=now,
        custom_data=custom_data,
    )
    return evaluate_task(task, clock=clock)


__all__ = ["instantiate_template"]
