"""Chroma-based persistence layer."""

from __future__ import annotations

import json
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from pydantic import ValidationError

from ..engine import Task
from .models import TaskSnapshotRecord

logger = logging.getLogger(__name__)

TASK_REMOVED = "task_removed"


class ChromaUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by the store."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used by the store."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


@dataclass(slots=True)
class ChromaEvent:
    """Represents a stored event in Chroma."""

    id: str
    stream_id: str
    event_type: str
    document: str
    metadata: dict[str, Any]
    timestamp: datetime


def _task_stream(task_id: str) -> str:
    return f"task::{task_id}"


class ChromaStore:
    """Persist task snapshots as an append-only event log in ChromaDB."""

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "quest_tasks",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collection: CollectionProtocol | None = None
        self._counters: dict[str, int] = defaultdict(int)

    @property
    def collection_name(self) -> str:
        return self._collection_name

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise ChromaUnavailableError(
                "chromadb package is not installed; install quest-engine-mcp[persistence]"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self) -> CollectionProtocol:
        if self._collection is None:
            client = self._client or self._client_factory()
            self._client = client
            self._collection = client.get_or_create_collection(self._collection_name)
        return self._collection

    def _convert_result(self, result: dict[str, list[Any]]) -> list[ChromaEvent]:
        events: list[ChromaEvent] = []
        ids = result.get("ids", [])
        documents = result.get("documents", [])
        metadatas = result.get("metadatas", [])
        for event_id, document, metadata in zip(ids, documents, metadatas):
            timestamp_raw = metadata.get("timestamp")
            timestamp = (
                datetime.fromisoformat(timestamp_raw)
                if isinstance(timestamp_raw, str)
                else self._clock()
            )
            events.append(
                ChromaEvent(
                    id=event_id,
                    stream_id=metadata.get("stream_id", ""),
                    event_type=metadata.get("event_type", ""),
                    document=document,
                    metadata=metadata,
                    timestamp=timestamp,
                )
            )
        events.sort(key=lambda event: (event.timestamp, event.metadata.get("sequence", 0)))
        return events

    def ping(self) -> bool:
        """Verify that the underlying collection can be obtained."""

        self._ensure_collection()
        return True

    def record_event(
        self,
        *,
        stream_id: str,
        event_type: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
    ) -> ChromaEvent:
        collection = self._ensure_collection()
        counter = self._counters[stream_id] = self._counters[stream_id] + 1
        event_id = f"{stream_id}:{uuid.uuid4().hex}"
        timestamp = self._clock()

        document = body if isinstance(body, str) else json.dumps(body)
        record_metadata = {
            "stream_id": stream_id,
            "event_type": event_type,
            "timestamp": timestamp.isoformat(),
            "sequence": counter,
        }
        if metadata:
            record_metadata.update(metadata)

        collection.add(
            documents=[document],
            metadatas=[record_metadata],
            ids=[event_id],
        )

        return ChromaEvent(
            id=event_id,
            stream_id=stream_id,
            event_type=event_type,
            document=document,
            metadata=record_metadata,
            timestamp=timestamp,
        )

    def search_events(
        self,
        query: str | None = None,
        *,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[ChromaEvent]:
        collection = self._ensure_collection()
        result = collection.get(where=filters)
        events = self._convert_result(result)
        if query:
            needle = query.lower()
            events = [
                event
                for event in events
                if needle in event.document.lower()
                or any(needle in str(value).lower() for value in event.metadata.values())
            ]
        return events[:limit] if limit else events

    def fetch_task_events(self, task_id: str, *, limit: int | None = None) -> list[ChromaEvent]:
        return self.search_events(filters={"stream_id": _task_stream(task_id)}, limit=limit)

    def record_task_snapshot(
        self,
        task: Task,
        *,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> TaskSnapshotRecord:
        """Append ``task``'s full JSON snapshot to its stream."""

        record_metadata = {
            "task_id": task.id,
            "status": task.status.value,
            "elapsed_time": float(task.elapsed_time),
        }
        if metadata:
            record_metadata.update(metadata)

        event = self.record_event(
            stream_id=_task_stream(task.id),
            event_type=event_type,
            body=task.model_dump_json(by_alias=True),
            metadata=record_metadata,
        )
        return TaskSnapshotRecord(
            task_id=task.id,
            event_type=event_type,
            status=task.status.value,
            elapsed_time=float(task.elapsed_time),
            recorded_at=event.timestamp,
            metadata=metadata or {},
        )

    def record_task_removed(self, task_id: str) -> ChromaEvent:
        return self.record_event(
            stream_id=_task_stream(task_id),
            event_type=TASK_REMOVED,
            body={"task_id": task_id},
            metadata={"task_id": task_id},
        )

    def list_task_history(self, task_id: str | None = None) -> list[TaskSnapshotRecord]:
        filters = {"task_id": task_id} if task_id else None
        records: list[TaskSnapshotRecord] = []
        for event in self.search_events(filters=filters):
            if event.event_type == TASK_REMOVED or "status" not in event.metadata:
                continue
            records.append(
                TaskSnapshotRecord(
                    task_id=event.metadata.get("task_id", ""),
                    event_type=event.event_type,
                    status=event.metadata["status"],
                    elapsed_time=float(event.metadata.get("elapsed_time", 0)),
                    recorded_at=event.timestamp,
                    metadata={
                        key: value
                        for key, value in event.metadata.items()
                        if key
                        not in {"task_id", "status", "elapsed_time", "stream_id", "event_type", "timestamp", "sequence"}
                    },
                )
            )
        return records

    def replay_tasks(self) -> list[Task]:
        """Reconstruct the latest snapshot of every task that was not removed."""

        latest: dict[str, ChromaEvent] = {}
        for event in self.search_events():
            task_id = event.metadata.get("task_id")
            if not task_id:
                continue
            latest[task_id] = event

        tasks: list[Task] = []
        for task_id, event in latest.items():
            if event.event_type == TASK_REMOVED:
                continue
            try:
                tasks.append(Task.model_validate_json(event.document))
            except ValidationError as exc:
                logger.warning(
                    "Skipping unreadable task snapshot",
                    extra={"task_id": task_id, "event_id": event.id, "error": str(exc)},
                )
        return tasks


__all__ = ["ChromaEvent", "ChromaStore", "ChromaUnavailableError", "TASK_REMOVED"]
