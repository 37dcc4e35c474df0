"""Progress tracking: data model and durable checkpoint."""

from .types import WorkItem, ProgressRecord, Bin, BatchTask, Outcome, BatchResult
from .progress_store import ProgressStore

__all__ = [
    "WorkItem",
    "ProgressRecord",
    "Bin",
    "BatchTask",
    "Outcome",
    "BatchResult",
    "ProgressStore",
]
