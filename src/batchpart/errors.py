"""Exception hierarchy for the batch pipeline."""
from __future__ import annotations

__all__ = [
    "BatchPartError",
    "SourceUnavailableError",
    "CheckpointError",
    "WorkerCrashedError",
]


class BatchPartError(Exception):
    """Base class for pipeline errors."""


class SourceUnavailableError(BatchPartError):
    """The work source cannot be enumerated at all (startup-fatal)."""


class CheckpointError(BatchPartError):
    """Checkpoint content could not be read or written."""


class WorkerCrashedError(BatchPartError):
    """A worker failed as a whole; its entire batch is invalid."""

    def __init__(self, worker: int, round_index: int, reason: str):
        self.worker = worker
        self.round_index = round_index
        self.reason = reason
        super().__init__(
            f"Worker {worker} crashed in round {round_index}: {reason}"
        )
