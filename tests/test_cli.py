from __future__ import annotations

import argparse
import importlib.util
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from quest_mcp.engine import Requirement, RequirementType, Task, TaskStatus
from quest_mcp.storage import ChromaUnavailableError, TaskSnapshotRecord


def load_diag(module_name: str):
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "quest_diag.py"
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    assert spec and spec.loader
    diag = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(diag)
    return diag


def make_task(task_id: str, status: TaskStatus, elapsed: float) -> Task:
    return Task(
        id=task_id,
        title=f"Quest {task_id}",
        status=status,
        elapsed_time=elapsed,
        time_limit=60,
        requirements=[Requirement(id=f"{task_id}-r", type=RequirementType.BOOLEAN)],
    )


def make_record(task_id: str, event_type: str, status: str, minute: int) -> TaskSnapshotRecord:
    return TaskSnapshotRecord(
        task_id=task_id,
        event_type=event_type,
        status=status,
        elapsed_time=float(minute),
        recorded_at=datetime(2025, 1, 1, 0, minute, tzinfo=timezone.utc),
        metadata={},
    )


class StubStore:
    def __init__(self) -> None:
        self.tasks = [
            make_task("a", TaskStatus.PAUSED, 10),
            make_task("b", TaskStatus.COMPLETED, 25),
        ]
        self.history = [
            make_record("a", "task_created", "IDLE", 0),
            make_record("a", "task_started", "RUNNING", 1),
            make_record("b", "task_created", "IDLE", 2),
            make_record("b", "task_started", "RUNNING", 3),
            make_record("b", "requirement_updated", "COMPLETED", 4),
            make_record("a", "task_restored", "PAUSED", 5),
        ]

    def replay_tasks(self):
        return list(self.tasks)

    def list_task_history(self, task_id=None):
        return [record for record in self.history if task_id is None or record.task_id == task_id]


def test_load_store_reports_missing_chroma(monkeypatch, capsys) -> None:
    diag = load_diag("quest_diag_missing_module")

    class BrokenStore:
        def __init__(self, *_args, **_kwargs) -> None:
            raise ChromaUnavailableError("chromadb is not installed")

    monkeypatch.setattr(diag, "ChromaStore", BrokenStore)

    with pytest.raises(SystemExit) as excinfo:
        diag.main(["tasks"])

    assert excinfo.value.code == 1
    assert "Chroma unavailable" in capsys.readouterr().out


def test_metrics_counts_statuses_and_events(monkeypatch, capsys) -> None:
    diag = load_diag("quest_diag_metrics_module")
    monkeypatch.setattr(diag, "load_store", lambda _settings: StubStore())

    diag.cmd_metrics(argparse.Namespace())

    payload = json.loads(capsys.readouterr().out)
    assert payload["tasks_total"] == 2
    assert payload["status_counts"] == {"PAUSED": 1, "COMPLETED": 1}
    assert payload["snapshots_total"] == 6
    assert payload["event_counts"]["task_started"] == 2
    assert payload["elapsed_time_total"] == 35


def test_history_filters_and_limits(monkeypatch, capsys) -> None:
    diag = load_diag("quest_diag_history_module")
    monkeypatch.setattr(diag, "load_store", lambda _settings: StubStore())

    diag.cmd_history(argparse.Namespace(task_id="a", limit=2))

    payload = json.loads(capsys.readouterr().out)
    assert [item["event_type"] for item in payload] == ["task_started", "task_restored"]
    assert payload[1]["recorded_at"] == "2025-01-01T00:05:00+00:00"


def test_tasks_lists_replayed_tasks(monkeypatch, capsys) -> None:
    diag = load_diag("quest_diag_tasks_module")
    monkeypatch.setattr(diag, "load_store", lambda _settings: StubStore())

    diag.cmd_tasks(argparse.Namespace(json=False))
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "a [PAUSED] Quest a (10s/60s)",
        "b [COMPLETED] Quest b (25s/60s)",
    ]

    diag.cmd_tasks(argparse.Namespace(json=True))
    payload = json.loads(capsys.readouterr().out)
    assert [item["status"] for item in payload] == ["PAUSED", "COMPLETED"]
    assert payload[0]["elapsedTime"] == 10
