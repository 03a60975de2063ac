"""FastMCP server bootstrap for Quest Engine."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import QuestSettings, get_settings
from .engine import Task, TaskStatus, pause_task
from .storage import ChromaStore, ChromaUnavailableError
from .templates import TemplateLoadError, TemplateLoader
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Quest Engine server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _restore_tasks(
    chroma_store: ChromaStore | None,
    *,
    pause_running: bool,
) -> tuple[dict[str, Task], list[dict[str, Any]]]:
    """Replay persisted snapshots, pausing tasks whose clock stopped with the server."""

    if chroma_store is None:
        return {}, []

    restored: dict[str, Task] = {}
    restore_actions: list[dict[str, Any]] = []
    for task in chroma_store.replay_tasks():
        action: dict[str, Any] = {
            "task_id": task.id,
            "status": task.status.value,
            "restored_at": datetime.now(timezone.utc).isoformat(),
        }
        if pause_running and task.status is TaskStatus.RUNNING:
            task = pause_task(task)
            action["paused"] = True
            chroma_store.record_task_snapshot(
                task,
                event_type="task_restored",
                metadata={"previous_status": TaskStatus.RUNNING.value},
            )
            logging.getLogger(__name__).info(
                "Paused running task restored from storage",
                extra={"task_id": task.id, "elapsed_time": task.elapsed_time},
            )
        restored[task.id] = task
        restore_actions.append(action)
    return restored, restore_actions


def create_server(settings: Optional[QuestSettings] = None) -> FastMCP:
    """Instantiate the FastMCP server with baseline resources."""

    settings = settings or get_settings()

    template_loader = TemplateLoader(settings.template_paths)

    chroma_store: ChromaStore | None = None
    chroma_metadata = {
        "available": False,
        "path": str(settings.chroma_persist_path),
        "collection": None,
        "error": None,
    }

    try:
        chroma_store = ChromaStore(settings.chroma_persist_path)
        chroma_store.ping()
        chroma_metadata["available"] = True
        chroma_metadata["collection"] = chroma_store.collection_name
    except ChromaUnavailableError as exc:
        chroma_metadata["error"] = str(exc)
        chroma_store = None

    restored_tasks, restore_actions = _restore_tasks(
        chroma_store, pause_running=settings.pause_on_restore
    )

    server = FastMCP(
        name="Quest Engine MCP",
        version=__version__,
        instructions=(
            "Quest Engine tracks composite tasks built from boolean, numeric and "
            "grouped requirements with mutually exclusive options and time limits. "
            "Create tasks from templates, start them, report progress with "
            "update_requirement, and advance their clocks with tick_task."
        ),
    )

    handles = register_tools(
        server,
        templates=template_loader,
        settings=settings,
        chroma_store=chroma_store,
        initial_tasks=restored_tasks,
    )

    tasks_state = handles.tasks_state

    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        try:
            templates = template_loader.load_all()
            template_ids = sorted(templates.keys())
            template_error: str | None = None
        except TemplateLoadError as exc:
            template_ids = []
            template_error = str(exc)

        status_counts: dict[str, int] = {}
        for task in tasks_state.values():
            status_counts[task.status.value] = status_counts.get(task.status.value, 0) + 1

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "templates": {
                "count": len(template_ids),
                "ids": template_ids,
                "error": template_error,
            },
            "storage": {
                "chroma": chroma_metadata,
            },
            "tasks": {
                "count": len(tasks_state),
                "status_counts": status_counts,
                "restored": restore_actions[-5:],
                "restored_count": len(restore_actions),
            },
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    server.resource(
        "resource://quest/status",
        name="quest_status",
        title="Quest Engine Status",
        description="Provides the current runtime status for the Quest Engine MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )(status_resource)

    setattr(server, "template_loader", template_loader)
    setattr(server, "chroma_store", chroma_store)
    setattr(server, "chroma_metadata", chroma_metadata)
    setattr(server, "restore_actions", restore_actions)
    setattr(server, "tool_handles", handles)
    setattr(server, "tasks_state", tasks_state)
    setattr(server, "quest_status", status_resource)
    return server


def main() -> None:
    """Entry point for running the Quest Engine MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Quest Engine MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "chroma_available": getattr(server, "chroma_metadata", {}).get("available"),
            "restored_tasks": len(getattr(server, "tasks_state", {})),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
