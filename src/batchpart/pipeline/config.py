# pipeline/config.py
"""Configuration for batch pipeline runs."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from batchpart.partition.partitioner import EXTENSION_ID_ALPHABET

__all__ = ["PipelineConfig", "DEFAULT_BATCH_SIZE", "DEFAULT_CHECKPOINT_NAME"]

DEFAULT_BATCH_SIZE = 100
DEFAULT_CHECKPOINT_NAME = "partition_progress.json"


@dataclass(frozen=True)
class PipelineConfig:
    """Pipeline configuration for a resumable batch run."""

    # I/O
    source_dir: Path
    target_dir: Optional[Path] = None
    checkpoint_path: Optional[Path] = None  # Defaults to <target_dir or cwd>/partition_progress.json

    # Parallelism
    batch_size: int = DEFAULT_BATCH_SIZE  # Items per worker per round
    num_workers: Optional[int] = None  # If None, all CPUs but one
    use_threads: bool = False  # Threads for I/O-bound handlers, processes otherwise

    # Binning
    prefix_length: int = 2
    alphabet: str = EXTENSION_ID_ALPHABET

    # Enumeration
    file_suffix: Optional[str] = ".json"  # None accepts every file
    recursive: bool = False
    id_mode: Literal["stem", "relative"] = "stem"

    # Reporting
    progress_every_s: float = 5.0
    show_progress: bool = True
    measure_bins: bool = True  # Partition runs only

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_dir", Path(self.source_dir))
        if self.target_dir is not None:
            object.__setattr__(self, "target_dir", Path(self.target_dir))
        if self.checkpoint_path is not None:
            object.__setattr__(self, "checkpoint_path", Path(self.checkpoint_path))

    def validate(self) -> None:
        """Raise ValueError on settings the pipeline cannot honour."""
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.num_workers is not None and self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")
        if self.prefix_length < 1:
            raise ValueError(f"prefix_length must be >= 1, got {self.prefix_length}")
        if not self.alphabet:
            raise ValueError("alphabet must not be empty")
        if self.id_mode not in ("stem", "relative"):
            raise ValueError(f"id_mode must be 'stem' or 'relative', got {self.id_mode!r}")
        if self.progress_every_s < 0:
            raise ValueError("progress_every_s must be >= 0")

    def resolved_workers(self) -> int:
        if self.num_workers is not None:
            return self.num_workers
        return max(1, (os.cpu_count() or 2) - 1)

    def resolved_checkpoint(self) -> Path:
        if self.checkpoint_path is not None:
            return self.checkpoint_path
        base = self.target_dir if self.target_dir is not None else Path.cwd()
        return base / DEFAULT_CHECKPOINT_NAME
