"""Storage abstractions for Quest Engine MCP."""

from .chroma import TASK_REMOVED, ChromaEvent, ChromaStore, ChromaUnavailableError
from .models import TaskSnapshotRecord

__all__ = [
    "ChromaEvent",
    "ChromaStore",
    "ChromaUnavailableError",
    "TASK_REMOVED",
    "TaskSnapshotRecord",
]
