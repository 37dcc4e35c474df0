"""Run statistics and display reporting."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from tqdm import tqdm

from batchpart.tracking.types import Bin
from batchpart.utilities.display import (
    format_banner,
    format_bytes,
    format_duration,
    format_rate,
    truncate_path_to_fit,
)
from .aggregator import AggregateSnapshot

logger = logging.getLogger(__name__)

__all__ = ["Reporter", "RunStatus", "BinStats", "bin_stats", "print_pipeline_header"]


@dataclass(frozen=True)
class RunStatus:
    """Derived progress figures for one point in time."""

    processed: int
    remaining: int
    total: int
    elapsed_s: float
    rate_per_min: float
    eta_s: Optional[float]

    @property
    def percent(self) -> float:
        return 100.0 * self.processed / self.total if self.total else 100.0


@dataclass(frozen=True)
class BinStats:
    """Min/max/average item count over non-empty bins."""

    count: int
    min_size: int
    max_size: int
    avg_size: float


def bin_stats(bins: Sequence[Bin]) -> Optional[BinStats]:
    """Summarise bin occupancy; None when nothing was binned.

    Examples:
        >>> bin_stats([Bin("aa", 2), Bin("ab", 4)])
        BinStats(count=2, min_size=2, max_size=4, avg_size=3.0)
    """
    sizes = [b.assigned_count for b in bins if b.assigned_count > 0]
    if not sizes:
        return None
    return BinStats(len(sizes), min(sizes), max(sizes), sum(sizes) / len(sizes))


def print_pipeline_header(
    *,
    start_time: datetime,
    source: str,
    destination: str,
    checkpoint: str,
    total_items: int,
    already_done: int,
    pending: int,
    workers: int,
    executor_name: str,
    batch_size: int,
    rounds: int,
) -> None:
    """Print run configuration before the first round."""
    print(format_banner("BATCH PIPELINE", style="━"))
    print(f"Start Time: {start_time:%Y-%m-%d %H:%M:%S}")
    print()
    print(format_banner("Configuration"))
    print(f"Source:               {truncate_path_to_fit(source, 'Source:               ')}")
    print(f"Destination:          {truncate_path_to_fit(destination, 'Destination:          ')}")
    print(f"Checkpoint:           {truncate_path_to_fit(checkpoint, 'Checkpoint:           ')}")
    print(f"Total items:          {total_items:,}")
    print(f"Already processed:    {already_done:,}")
    print(f"Remaining:            {pending:,}")
    print(f"Workers:              {workers} ({executor_name})")
    print(f"Batch size:           {batch_size:,}")
    print(f"Rounds:               {rounds:,}")
    print()
    print(format_banner("Progress"))


class Reporter:
    """
    Read-only observer of aggregator snapshots.

    Computes throughput and ETA for the pending work of this run, drives a
    tqdm bar, and emits status lines no more often than
    ``progress_every_s``.
    """

    def __init__(
        self,
        total_pending: int,
        *,
        progress_every_s: float = 5.0,
        show_progress: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total_pending = total_pending
        self.progress_every_s = progress_every_s
        self._clock = clock
        self._start = clock()
        self._last_report = self._start
        self._bar_position = 0
        self._bar = tqdm(
            total=total_pending,
            desc="Items Processed:",
            unit="items",
            ncols=100,
            disable=not show_progress,
        )

    def close(self) -> None:
        self._bar.close()

    def status(self, snap: AggregateSnapshot, now: Optional[float] = None) -> RunStatus:
        now = self._clock() if now is None else now
        elapsed = max(0.0, now - self._start)
        processed = snap.succeeded + snap.failed
        remaining = max(0, self.total_pending - processed)
        rate = processed / (elapsed / 60.0) if elapsed > 0 else 0.0
        eta = (remaining / rate) * 60.0 if rate > 0 else None
        return RunStatus(processed, remaining, self.total_pending, elapsed, rate, eta)

    def update(self, snap: AggregateSnapshot) -> None:
        """Advance the progress bar to the snapshot."""
        processed = snap.succeeded + snap.failed
        if processed > self._bar_position:
            self._bar.update(processed - self._bar_position)
            self._bar_position = processed

    def maybe_report(self, snap: AggregateSnapshot) -> Optional[RunStatus]:
        """Log a status line if the reporting interval has elapsed."""
        self.update(snap)
        now = self._clock()
        if now - self._last_report < self.progress_every_s:
            return None
        self._last_report = now
        st = self.status(snap, now)
        logger.info(
            "Processed %d/%d items (%.2f%%) - Rate: %.2f items/min - ETA: %s",
            st.processed, st.total, st.percent, st.rate_per_min,
            format_duration(st.eta_s),
        )
        return st

    def summary(self, snap: AggregateSnapshot, bins: List[Bin]) -> RunStatus:
        """Print and log the final summary with the bin distribution."""
        st = self.status(snap)
        stats = bin_stats(bins)

        print()
        print(format_banner("Final Summary"))
        print(f"Successfully processed:  {snap.succeeded:,}")
        print(f"Errors encountered:      {snap.failed:,}")
        print(f"Crashed batches:         {snap.batches_crashed:,}")
        print(f"Completed overall:       {snap.completed_total:,}")
        print(f"Data processed:          {format_bytes(snap.bytes_processed)}")
        print(f"Elapsed:                 {format_duration(st.elapsed_s)}")
        print(f"Throughput:              {format_rate(st.processed, st.elapsed_s)}")

        if stats is not None:
            print()
            print(format_banner("Bin Distribution"))
            for b in bins:
                print(f"Bin {b.label}: {b.assigned_count} items")
            print()
            print(f"Min bin size:            {stats.min_size} items")
            print(f"Max bin size:            {stats.max_size} items")
            print(f"Average bin size:        {stats.avg_size:.2f} items")

        logger.info(
            "Run complete: %d succeeded, %d failed, %d completed overall",
            snap.succeeded, snap.failed, snap.completed_total,
        )
        return st
