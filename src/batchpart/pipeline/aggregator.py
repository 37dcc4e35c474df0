"""Serialized merge of worker outcomes into shared progress state."""
from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from batchpart.partition.partitioner import PrefixPartitioner
from batchpart.tracking.progress_store import ProgressStore
from batchpart.tracking.types import BatchResult, Bin, Outcome, ProgressRecord

logger = logging.getLogger(__name__)

__all__ = ["ProgressAggregator", "AggregateSnapshot"]


@dataclass(frozen=True)
class AggregateSnapshot:
    """Consistent view of the aggregator counters at one instant."""

    succeeded: int
    failed: int
    already_done: int
    completed_total: int
    batches_crashed: int
    rounds_completed: int
    bytes_processed: int


class ProgressAggregator:
    """
    Owns the run's ProgressRecord and counters.

    Every mutation happens under a single lock, so outcomes may be applied
    from any number of threads. The lock covers in-memory updates only;
    persistence in ``end_round`` works on a copy taken under the lock.
    """

    def __init__(
        self,
        record: ProgressRecord,
        partitioner: Optional[PrefixPartitioner] = None,
    ):
        self._lock = threading.Lock()
        self._record = record
        self._partitioner = partitioner
        self._already_done = len(record.completed_ids)
        self._succeeded = 0
        self._failed = 0
        self._batches_crashed = 0
        self._rounds_completed = 0
        self._bytes = 0
        self._bin_sizes: Dict[str, int] = Counter()
        self._bin_counts: Dict[str, int] = Counter(
            self._label(item_id) for item_id in record.completed_ids
        ) if partitioner is not None else Counter()

    def _label(self, item_id: str, hint: Optional[str] = None) -> Optional[str]:
        if hint is not None:
            return hint
        if self._partitioner is not None:
            return self._partitioner.bin(item_id)
        return None

    def _apply_locked(self, outcome: Outcome) -> None:
        if not outcome.success:
            self._failed += 1
            logger.error("Error processing %s: %s", outcome.item_id, outcome.error)
            return

        self._succeeded += 1
        self._bytes += outcome.size
        if outcome.item_id in self._record.completed_ids:
            return

        self._record.completed_ids.add(outcome.item_id)
        label = self._label(outcome.item_id, outcome.bin)
        if label is not None:
            self._bin_counts[label] += 1
            self._bin_sizes[label] += outcome.size

    def apply(self, outcome: Outcome) -> None:
        """Merge one Outcome."""
        with self._lock:
            self._apply_locked(outcome)

    def apply_result(self, result: BatchResult) -> None:
        """Merge a whole BatchResult; a crashed batch fails all its items."""
        with self._lock:
            if result.crashed:
                self._batches_crashed += 1
                self._failed += len(result.task)
                logger.error(
                    "Worker %d failed in round %d; %d items counted failed: %s",
                    result.task.assigned_worker,
                    result.task.round_index,
                    len(result.task),
                    result.error,
                )
                return
            for outcome in result.outcomes:
                self._apply_locked(outcome)

    def is_completed(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._record.completed_ids

    def snapshot(self) -> AggregateSnapshot:
        with self._lock:
            return AggregateSnapshot(
                succeeded=self._succeeded,
                failed=self._failed,
                already_done=self._already_done,
                completed_total=len(self._record.completed_ids),
                batches_crashed=self._batches_crashed,
                rounds_completed=self._rounds_completed,
                bytes_processed=self._bytes,
            )

    def snapshot_record(self) -> ProgressRecord:
        """Copy of the record suitable for saving outside the lock."""
        with self._lock:
            return self._record.copy()

    def get_extra(self, key: str, default=None):
        with self._lock:
            return self._record.extras.get(key, default)

    def set_extra(self, key: str, value) -> None:
        with self._lock:
            self._record.extras[key] = value

    def bins(self) -> List[Bin]:
        """Non-empty bins derived from the completed set, sorted by label."""
        with self._lock:
            return [
                Bin(label, count, self._bin_sizes.get(label, 0))
                for label, count in sorted(self._bin_counts.items())
                if count > 0
            ]

    def save(self, store: ProgressStore) -> bool:
        """Persist a copy of the in-memory record."""
        with self._lock:
            record = self._record.copy()
        saved = store.save(record)
        with self._lock:
            self._record.last_update = record.last_update
        return saved

    def end_round(self, store: ProgressStore) -> bool:
        """Mark a round finished and persist the record."""
        with self._lock:
            self._rounds_completed += 1
        return self.save(store)
