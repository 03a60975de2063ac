"""Data models for persistent tracking."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class TaskSnapshotRecord:
    task_id: str
    event_type: str
    status: str
    elapsed_time: float
    recorded_at: datetime
    metadata: dict[str, Any]


__all__ = ["TaskSnapshotRecord"]
