# io/sources.py
"""Row sources: finite sequences of mapping records."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from batchpart.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

__all__ = ["CsvRowSource", "find_csv"]


def find_csv(data_dir: Union[str, Path]) -> Path:
    """
    Return the first ``*.csv`` file (by name) in data_dir.

    Raises:
        SourceUnavailableError: If the directory is missing or holds no CSV
    """
    base = Path(data_dir)
    if not base.is_dir():
        raise SourceUnavailableError(f"Data directory '{base}' does not exist")
    candidates = sorted(p for p in base.iterdir()
                        if p.is_file() and p.suffix.lower() == ".csv")
    if not candidates:
        raise SourceUnavailableError(f"No CSV file found in {base}")
    return candidates[0]


class CsvRowSource:
    """Iterate rows of a header-first CSV file as dicts; empty lines skipped."""

    def __init__(
        self,
        path: Union[str, Path],
        *,
        encoding: str = "utf-8",
        delimiter: str = ",",
    ):
        self.path = Path(path)
        self.encoding = encoding
        self.delimiter = delimiter

    def __iter__(self) -> Iterator[Dict[str, Optional[str]]]:
        try:
            f = self.path.open("r", encoding=self.encoding, newline="")
        except OSError as exc:
            raise SourceUnavailableError(
                f"Cannot open row source {self.path}: {exc}"
            ) from exc

        with f:
            reader = csv.DictReader(f, delimiter=self.delimiter)
            for row in reader:
                if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                    continue
                yield row
