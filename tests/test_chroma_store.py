from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from quest_mcp.engine import Requirement, RequirementType, Task, TaskStatus, start_task
from quest_mcp.storage import ChromaStore, TaskSnapshotRecord


@dataclass
class _Record:
    document: str
    metadata: dict[str, Any]
    id: str


class StubCollection:
    def __init__(self) -> None:
        self.records: list[_Record] = []

    def add(self, *, documents, metadatas, ids) -> None:  # type: ignore[override]
        for document, metadata, record_id in zip(documents, metadatas, ids):
            self.records.append(_Record(document=document, metadata=dict(metadata), id=record_id))

    def get(self, *, ids=None, where=None, limit=None):  # type: ignore[override]
        filtered = self.records
        if where:
            for key, value in where.items():
                filtered = [record for record in filtered if record.metadata.get(key) == value]
        if limit is not None:
            filtered = filtered[:limit]
        return {
            "ids": [record.id for record in filtered],
            "documents": [record.document for record in filtered],
            "metadatas": [record.metadata for record in filtered],
        }


class StubClient:
    def __init__(self) -> None:
        self.collections = defaultdict(StubCollection)

    def get_or_create_collection(self, name: str) -> StubCollection:
        return self.collections[name]


def make_store(tmp_path: Path, client: StubClient | None = None) -> ChromaStore:
    client = client or StubClient()
    return ChromaStore(
        tmp_path,
        client_factory=lambda: client,
        clock=lambda: datetime.fromisoformat("2025-01-01T00:00:00+00:00"),
    )


def make_task(task_id: str = "task-1") -> Task:
    return Task(
        id=task_id,
        title="Training",
        requirements=[Requirement(id="warmup", type=RequirementType.BOOLEAN, title="Warm Up")],
    )


def test_record_and_fetch_events(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    event = store.record_event(
        stream_id="task::task-1",
        event_type="log",
        body={"message": "started"},
        metadata={"level": "INFO"},
    )

    assert event.stream_id == "task::task-1"
    assert event.metadata["sequence"] == 1

    events = store.fetch_task_events("task-1")
    assert len(events) == 1
    assert events[0].metadata["level"] == "INFO"
    assert events[0].document == '{"message": "started"}'


def test_sequence_increments(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    store.record_event(stream_id="task::t", event_type="a", body="A")
    store.record_event(stream_id="task::t", event_type="b", body="B")

    events = store.fetch_task_events("t")
    sequences = [event.metadata["sequence"] for event in events]
    assert sequences == [1, 2]


def test_search_filters(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    store.record_event(stream_id="s", event_type="note", body="Investigate cardio", metadata={"tag": "xor"})
    store.record_event(stream_id="s", event_type="note", body="Fix logging", metadata={})

    results = store.search_events("cardio")
    assert len(results) == 1
    assert "cardio" in results[0].document
    assert len(store.search_events(filters={"tag": "xor"})) == 1


def test_snapshot_round_trips_through_replay(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    task = make_task()

    record = store.record_task_snapshot(task, event_type="task_created")
    started = start_task(task)
    store.record_task_snapshot(started, event_type="task_started")

    assert isinstance(record, TaskSnapshotRecord)
    assert record.status == "IDLE"
    replayed = store.replay_tasks()
    assert len(replayed) == 1
    assert replayed[0].status is TaskStatus.RUNNING
    assert replayed[0].requirements[0].title == "Warm Up"


def test_replay_skips_removed_tasks(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.record_task_snapshot(make_task("keep"), event_type="task_created")
    store.record_task_snapshot(make_task("drop"), event_type="task_created")

    store.record_task_removed("drop")

    assert [task.id for task in store.replay_tasks()] == ["keep"]


def test_replay_survives_new_store_instance(tmp_path: Path) -> None:
    client = StubClient()
    make_store(tmp_path, client).record_task_snapshot(make_task(), event_type="task_created")

    replayed = make_store(tmp_path, client).replay_tasks()

    assert [task.id for task in replayed] == ["task-1"]


def test_task_history(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    task = make_task()
    store.record_task_snapshot(task, event_type="task_created", metadata={"template_id": "inline"})
    store.record_task_snapshot(start_task(task), event_type="task_started")
    store.record_task_snapshot(make_task("other"), event_type="task_created")

    history = store.list_task_history("task-1")

    assert [record.event_type for record in history] == ["task_created", "task_started"]
    assert [record.status for record in history] == ["IDLE", "RUNNING"]
    assert history[0].metadata == {"template_id": "inline"}
