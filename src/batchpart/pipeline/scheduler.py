"""Batch and round planning over the unprocessed items."""
from __future__ import annotations

import logging
import math
from typing import AbstractSet, Iterable, Iterator, List, Sequence, Tuple

from batchpart.tracking.types import BatchTask, WorkItem

logger = logging.getLogger(__name__)

__all__ = ["BatchScheduler"]


class BatchScheduler:
    """
    Split pending items into batches of ``batch_size`` and group batches
    into rounds of at most ``num_workers`` concurrent tasks.

    Pending items are always taken in lexicographic id order so that a
    resumed run schedules the same way given the same enumerator output.

    Examples:
        >>> s = BatchScheduler(batch_size=3, num_workers=2)
        >>> items = [WorkItem(f"a{i}") for i in range(10)]
        >>> [[t.item_ids for t in r] for r in s.rounds(items)]
        [[['a0', 'a1', 'a2'], ['a3', 'a4', 'a5']], [['a6', 'a7', 'a8'], ['a9']]]
    """

    def __init__(self, batch_size: int, num_workers: int):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")
        self.batch_size = batch_size
        self.num_workers = num_workers

    @property
    def round_capacity(self) -> int:
        """Most items a single round can carry."""
        return self.batch_size * self.num_workers

    @staticmethod
    def pending(
        items: Iterable[WorkItem],
        completed_ids: AbstractSet[str],
    ) -> List[WorkItem]:
        """Items not yet completed, sorted by id."""
        return sorted(
            (item for item in items if item.id not in completed_ids),
            key=lambda item: item.id,
        )

    def batches(self, pending: Sequence[WorkItem]) -> List[Tuple[WorkItem, ...]]:
        size = self.batch_size
        return [tuple(pending[i:i + size]) for i in range(0, len(pending), size)]

    def num_rounds(self, n_pending: int) -> int:
        return math.ceil(n_pending / self.round_capacity) if n_pending > 0 else 0

    def rounds(self, pending: Sequence[WorkItem]) -> Iterator[List[BatchTask]]:
        """Yield one list of BatchTasks per round, in order."""
        batches = self.batches(pending)
        for round_index, start in enumerate(range(0, len(batches), self.num_workers)):
            group = batches[start:start + self.num_workers]
            yield [
                BatchTask(items=batch, assigned_worker=worker, round_index=round_index)
                for worker, batch in enumerate(group)
            ]
