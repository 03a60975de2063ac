"""Tool registration for Quest Engine MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from fastmcp import Context, FastMCP

from ..config import QuestSettings
from ..engine import (
    Task,
    TaskStatus,
    pause_task,
    reset_task,
    start_task,
    tick_task,
    update_requirement_value,
)
from ..storage import ChromaStore
from ..templates import TaskTemplate, TemplateLoader, instantiate_template

_TERMINAL_STATUSES = {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}


@dataclass(slots=True)
class ToolHandles:
    list_templates: Any
    create_task: Any
    list_tasks: Any
    task_status: Any
    start_task: Any
    pause_task: Any
    reset_task: Any
    tick_task: Any
    update_requirement: Any
    cancel_task: Any
    remove_task: Any
    tasks_state: dict[str, Task]


def _task_summary(task: Task) -> dict[str, Any]:
    mandatory = [node for node in task.requirements if not node.is_optional]
    return {
        "task_id": task.id,
        "title": task.title,
        "status": task.status.value,
        "elapsed_time": task.elapsed_time,
        "time_limit": task.time_limit,
        "requirements_total": len(mandatory),
        "requirements_fulfilled": sum(1 for node in mandatory if node.is_fulfilled),
        "updated_at": task.updated_at.isoformat(),
    }


def _task_payload(task: Task, *, changed: bool | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "summary": _task_summary(task),
        "task": task.model_dump(mode="json", by_alias=True),
    }
    if changed is not None:
        payload["changed"] = changed
    return payload


def register_tools(
    server: FastMCP,
    *,
    templates: TemplateLoader,
    settings: QuestSettings,
    chroma_store: ChromaStore | None,
    initial_tasks: dict[str, Task] | None = None,
) -> ToolHandles:
    """Register the quest engine's MCP tools on the server."""

    tasks_state: dict[str, Task] = dict(initial_tasks or {})

    def _require_task(task_id: str) -> Task:
        if task_id not in tasks_state:
            raise ValueError(f"Task '{task_id}' not found")
        return tasks_state[task_id]

    def _record(task: Task, event_type: str, metadata: dict[str, Any] | None = None) -> None:
        if chroma_store is None:
            return
        chroma_store.record_task_snapshot(task, event_type=event_type, metadata=metadata)

    def _transition(
        task_id: str,
        operation: Callable[[Task], Task],
        event_type: str,
        context: Context | None,
    ) -> dict[str, Any]:
        task = _require_task(task_id)
        updated = operation(task)
        changed = updated is not task
        if changed:
            tasks_state[task_id] = updated
            _record(updated, event_type)
        _emit_log(
            context,
            "info" if changed else "debug",
            f"{event_type} {'applied' if changed else 'ignored'}",
            extra={
                "task_id": task_id,
                "previous_status": task.status.value,
                "status": updated.status.value,
            },
        )
        return _task_payload(updated, changed=changed)

    def _list_templates(context: Context | None = None) -> list[dict[str, Any]]:
        """List task templates available on the configured search paths."""

        template_map = templates.load_all()
        catalog = [
            {
                "id": template.id,
                "title": template.title,
                "description": template.description,
                "time_limit": template.time_limit,
                "requirement_count": len(template.requirements),
            }
            for template in template_map.values()
        ]

        _emit_log(context, "debug", "Listing task templates", extra={"count": len(catalog)})

        return catalog

    def _create_task(
        template_id: str | None = None,
        *,
        template: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        if (template_id is None) == (template is None):
            raise ValueError("Provide exactly one of template_id or template")

        if template_id is not None:
            template_map = templates.load_all()
            if template_id not in template_map:
                raise ValueError(f"Unknown template '{template_id}'")
            blueprint = template_map[template_id]
        else:
            blueprint = TaskTemplate.model_validate(template)

        task = instantiate_template(blueprint)
        tasks_state[task.id] = task
        _record(task, "task_created", {"template_id": blueprint.id or "inline"})

        _emit_log(
            context,
            "info",
            "Created task",
            extra={"task_id": task.id, "template_id": blueprint.id},
        )

        return _task_payload(task)

    def _list_tasks(
        status: str | None = None,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        wanted = TaskStatus(status.upper()) if status else None
        summaries = [
            _task_summary(task)
            for task in tasks_state.values()
            if wanted is None or task.status is wanted
        ]
        _emit_log(context, "debug", "Listing tasks", extra={"count": len(summaries)})
        return summaries

    def _task_status(task_id: str, context: Context | None = None) -> dict[str, Any]:
        task = _require_task(task_id)
        _emit_log(
            context,
            "debug",
            "Task status",
            extra={"task_id": task_id, "status": task.status.value},
        )
        return _task_payload(task)

    def _start_task(task_id: str, context: Context | None = None) -> dict[str, Any]:
        return _transition(task_id, start_task, "task_started", context)

    def _pause_task(task_id: str, context: Context | None = None) -> dict[str, Any]:
        return _transition(task_id, pause_task, "task_paused", context)

    def _reset_task(task_id: str, context: Context | None = None) -> dict[str, Any]:
        return _transition(task_id, reset_task, "task_reset", context)

    def _tick_task(
        task_id: str,
        delta_seconds: float | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        delta = settings.default_tick_seconds if delta_seconds is None else delta_seconds
        return _transition(
            task_id,
            lambda task: tick_task(task, delta),
            "task_ticked",
            context,
        )

    def _update_requirement(
        task_id: str,
        requirement_id: str,
        updates: dict[str, Any],
        context: Context | None = None,
    ) -> dict[str, Any]:
        return _transition(
            task_id,
            lambda task: update_requirement_value(task, requirement_id, updates),
            "requirement_updated",
            context,
        )

    def _cancel_task(
        task_id: str,
        reason: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        def _cancel(task: Task) -> Task:
            if task.status in _TERMINAL_STATUSES:
                return task
            custom_data = dict(task.custom_data)
            if reason:
                custom_data["cancel_reason"] = reason
            return task.model_copy(
                update={
                    "status": TaskStatus.CANCELLED,
                    "updated_at": datetime.now(timezone.utc),
                    "custom_data": custom_data,
                }
            )

        return _transition(task_id, _cancel, "task_cancelled", context)

    def _remove_task(task_id: str, context: Context | None = None) -> dict[str, Any]:
        task = _require_task(task_id)
        del tasks_state[task_id]
        if chroma_store is not None:
            chroma_store.record_task_removed(task_id)
        _emit_log(context, "info", "Removed task", extra={"task_id": task_id})
        return {"task_id": task_id, "removed": True, "status": task.status.value}

    tool_list_templates = server.tool(
        name="list_templates",
        description="List task templates with their titles, time limits and requirement counts.",
    )(_list_templates)

    tool_create_task = server.tool(
        name="create_task",
        description=(
            "Create an IDLE task from a stored template id or an inline template "
            "(title, description, optional time_limit, requirements)."
        ),
    )(_create_task)

    tool_list_tasks = server.tool(
        name="list_tasks",
        description="List task summaries, optionally filtered by status.",
    )(_list_tasks)

    tool_task_status = server.tool(
        name="task_status",
        description="Fetch the latest snapshot of a task, including its requirement tree.",
    )(_task_status)

    tool_start_task = server.tool(
        name="start_task",
        description="Start an IDLE or PAUSED task. Other statuses are left unchanged.",
    )(_start_task)

    tool_pause_task = server.tool(
        name="pause_task",
        description="Pause a RUNNING task, freezing its elapsed time and progress.",
    )(_pause_task)

    tool_reset_task = server.tool(
        name="reset_task",
        description="Clear all progress and return the task to IDLE.",
    )(_reset_task)

    tool_tick_task = server.tool(
        name="tick_task",
        description="Advance a RUNNING task's elapsed time by delta_seconds and re-evaluate it.",
    )(_tick_task)

    tool_update_requirement = server.tool(
        name="update_requirement",
        description=(
            "Apply a partial update to one requirement (e.g. isFulfilled for BOOLEAN, "
            "currentValue for NUMERIC) of a RUNNING or PAUSED task."
        ),
    )(_update_requirement)

    tool_cancel_task = server.tool(
        name="cancel_task",
        description="Mark a task as CANCELLED unless it already finished.",
    )(_cancel_task)

    tool_remove_task = server.tool(
        name="remove_task",
        description="Discard a task from the task list.",
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Removal cannot be undone from the tool interface",
            }
        },
    )(_remove_task)

    return ToolHandles(
        list_templates=tool_list_templates,
        create_task=tool_create_task,
        list_tasks=tool_list_tasks,
        task_status=tool_task_status,
        start_task=tool_start_task,
        pause_task=tool_pause_task,
        reset_task=tool_reset_task,
        tick_task=tool_tick_task,
        update_requirement=tool_update_requirement,
        cancel_task=tool_cancel_task,
        remove_task=tool_remove_task,
        tasks_state=tasks_state,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
