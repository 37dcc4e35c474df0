# tracking/types.py
"""Shared types for batch processing and progress tracking."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

__all__ = [
    "WorkItem",
    "ProgressRecord",
    "Bin",
    "BatchTask",
    "Outcome",
    "BatchResult",
]


@dataclass(frozen=True)
class WorkItem:
    """A single unit of work."""

    id: str
    """Stable identifier (extension id, relative path, row id)"""

    source_ref: Any = field(default=None, compare=False)
    """Opaque handle the item handler uses to read the source (path, row)"""


@dataclass
class ProgressRecord:
    """Durable record of which item ids have completed."""

    completed_ids: Set[str] = field(default_factory=set)
    """Ids whose processing succeeded; only ever grows"""

    last_update: float = field(default_factory=time.time)
    """Epoch seconds of the last save"""

    extras: Dict[str, Any] = field(default_factory=dict)
    """Optional checkpoint fields carried through load/save unchanged"""

    def copy(self) -> "ProgressRecord":
        return ProgressRecord(
            completed_ids=set(self.completed_ids),
            last_update=self.last_update,
            extras=dict(self.extras),
        )


@dataclass
class Bin:
    """Destination grouping derived from item ids."""

    label: str
    assigned_count: int = 0
    cumulative_size: int = 0


@dataclass(frozen=True)
class BatchTask:
    """A fixed-size group of items assigned to one worker for one round."""

    items: Tuple[WorkItem, ...]
    assigned_worker: int
    round_index: int = 0

    @property
    def item_ids(self) -> List[str]:
        return [item.id for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class Outcome:
    """Result of processing one item."""

    item_id: str
    success: bool
    bin: Optional[str] = None
    error: Optional[str] = None
    size: int = 0  # Bytes copied/uploaded for this item


@dataclass
class BatchResult:
    """What a worker posts back for its batch.

    ``error`` is set only for worker-level failures; in that case
    ``outcomes`` is empty and every item of ``task`` counts as failed.
    """

    task: BatchTask
    outcomes: List[Outcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def crashed(self) -> bool:
        return self.error is not None
