# partition/bin_sizes.py
"""Measure file counts and on-disk size of each bin directory."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from batchpart.errors import SourceUnavailableError
from batchpart.utilities.display import format_banner, format_bytes

logger = logging.getLogger(__name__)

__all__ = ["BinUsage", "measure_bins", "print_bin_usage"]


@dataclass(frozen=True)
class BinUsage:
    """File count and total bytes of one bin directory."""

    label: str
    files: int
    size: int
    error: Optional[str] = None


def _measure_one(bin_path: Path) -> BinUsage:
    try:
        files = 0
        size = 0
        with os.scandir(bin_path) as entries:
            for entry in entries:
                if entry.is_file(follow_symlinks=False):
                    files += 1
                    size += entry.stat(follow_symlinks=False).st_size
        return BinUsage(bin_path.name, files, size)
    except OSError as exc:
        logger.error("Error calculating size for bin %s: %s", bin_path.name, exc)
        return BinUsage(bin_path.name, 0, 0, error=str(exc))


def measure_bins(
    target_dir: Union[str, Path],
    workers: int = 4,
) -> List[BinUsage]:
    """
    Walk every bin directory under target_dir concurrently.

    Returns usage sorted by size (largest first, ties by label). Per-bin
    errors are reported in the result rather than raised.

    Raises:
        SourceUnavailableError: If target_dir does not exist
    """
    base = Path(target_dir)
    if not base.is_dir():
        raise SourceUnavailableError(f"Target directory '{base}' does not exist")

    bins = sorted(p for p in base.iterdir() if p.is_dir())
    logger.info("Calculating sizes for %d bins", len(bins))

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        usage = list(executor.map(_measure_one, bins))

    usage.sort(key=lambda u: (-u.size, u.label))
    return usage


def print_bin_usage(usage: List[BinUsage], head: int = 10, tail: int = 5) -> None:
    """Print the largest and smallest bins plus the grand total."""
    print()
    print(format_banner("Bin Sizes (largest first)"))
    for index, u in enumerate(usage):
        if index < head or index >= len(usage) - tail:
            print(f"Bin {u.label}: {u.files} files, {format_bytes(u.size)}")
        elif index == head:
            print("...")

    total = sum(u.size for u in usage)
    print(f"\nTotal size of all bins: {format_bytes(total)}")
