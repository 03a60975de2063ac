"""Quest Engine MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from quest_mcp.config import QuestSettings
from quest_mcp.storage import ChromaStore, ChromaUnavailableError


def load_store(settings: QuestSettings) -> ChromaStore:
    try:
        store = ChromaStore(settings.chroma_persist_path)
        store.ping()
        return store
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)


def cmd_tasks(args: argparse.Namespace) -> None:
    settings = QuestSettings()
    store = load_store(settings)
    try:
        tasks = store.replay_tasks()
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)
    if args.json:
        print(json.dumps([task.model_dump(mode="json", by_alias=True) for task in tasks], indent=2))
    else:
        for task in tasks:
            limit = f"/{task.time_limit:g}s" if task.time_limit else ""
            print(f"{task.id} [{task.status.value}] {task.title} ({task.elapsed_time:g}s{limit})")


def cmd_history(args: argparse.Namespace) -> None:
    settings = QuestSettings()
    store = load_store(settings)
    try:
        records = store.list_task_history(task_id=args.task_id)
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)

    if args.limit is not None and args.limit > 0:
        records = records[-args.limit :]

    payload = [
        {
            "task_id": record.task_id,
            "event_type": record.event_type,
            "status": record.status,
            "elapsed_time": record.elapsed_time,
            "recorded_at": record.recorded_at.isoformat(),
            "metadata": record.metadata,
        }
        for record in records
    ]
    print(json.dumps(payload, indent=2))


def cmd_metrics(args: argparse.Namespace) -> None:
    settings = QuestSettings()
    store = load_store(settings)
    try:
        tasks = store.replay_tasks()
        history = store.list_task_history()
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)

    status_counts: dict[str, int] = {}
    for task in tasks:
        status_counts[task.status.value] = status_counts.get(task.status.value, 0) + 1

    event_counts: dict[str, int] = {}
    for record in history:
        event_counts[record.event_type] = event_counts.get(record.event_type, 0) + 1

    metrics = {
        "tasks_total": len(tasks),
        "status_counts": status_counts,
        "snapshots_total": len(history),
        "event_counts": event_counts,
        "elapsed_time_total": sum(task.elapsed_time for task in tasks),
    }

    print(json.dumps(metrics, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Quest Engine MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_tasks = sub.add_parser("tasks", help="List replayed tasks")
    p_tasks.add_argument("--json", action="store_true", help="Output JSON")
    p_tasks.set_defaults(func=cmd_tasks)

    p_history = sub.add_parser("history", help="List recorded task snapshots")
    p_history.add_argument("--task-id")
    p_history.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N snapshots",
    )
    p_history.set_defaults(func=cmd_history)

    p_metrics = sub.add_parser("metrics", help="Show task status and snapshot counts")
    p_metrics.set_defaults(func=cmd_metrics)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
