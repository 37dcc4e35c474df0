"""Work item enumeration: what exists, independent of what is done."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Literal, Mapping, Optional, Union

from batchpart.errors import SourceUnavailableError
from batchpart.tracking.types import WorkItem

logger = logging.getLogger(__name__)

__all__ = ["DirectoryEnumerator", "RowEnumerator", "dedupe_items"]


def dedupe_items(items: Iterable[WorkItem]) -> List[WorkItem]:
    """
    Sort items by id and drop repeated ids (first occurrence wins).

    Input order decides which duplicate is kept, so callers pass items in a
    deterministic order.
    """
    seen = {}
    for item in items:
        if item.id in seen:
            logger.warning("Duplicate item id %r ignored", item.id)
            continue
        seen[item.id] = item
    return [seen[k] for k in sorted(seen)]


class DirectoryEnumerator:
    """
    List files under a source directory as WorkItems.

    Args:
        source_dir: Directory to scan
        suffix: Only files with this extension (case-insensitive); None for all
        recursive: Descend into subdirectories
        id_mode: "stem" uses the filename without extension as the id,
            "relative" uses the POSIX path relative to source_dir
    """

    def __init__(
        self,
        source_dir: Union[str, Path],
        *,
        suffix: Optional[str] = ".json",
        recursive: bool = False,
        id_mode: Literal["stem", "relative"] = "stem",
    ):
        self.source_dir = Path(source_dir)
        self.suffix = suffix.lower() if suffix else None
        self.recursive = recursive
        self.id_mode = id_mode

    def _walk(self) -> Iterator[Path]:
        pattern = "**/*" if self.recursive else "*"
        for path in sorted(self.source_dir.glob(pattern)):
            if path.is_file():
                yield path

    def _matches(self, path: Path) -> bool:
        return self.suffix is None or path.suffix.lower() == self.suffix

    def _item_id(self, path: Path) -> str:
        if self.id_mode == "relative":
            return path.relative_to(self.source_dir).as_posix()
        return path.stem

    def enumerate(self) -> List[WorkItem]:
        """
        Return every matching file, sorted by id.

        Raises:
            SourceUnavailableError: If source_dir is missing or unreadable
        """
        if not self.source_dir.is_dir():
            raise SourceUnavailableError(
                f"Source directory '{self.source_dir}' does not exist!"
            )

        logger.info("Reading source directory: %s", self.source_dir)
        try:
            files = [p for p in self._walk() if self._matches(p)]
        except OSError as exc:
            raise SourceUnavailableError(
                f"Cannot list source directory '{self.source_dir}': {exc}"
            ) from exc

        items = dedupe_items(WorkItem(self._item_id(p), p) for p in files)
        logger.info("Found %d candidate files", len(items))
        return items


class RowEnumerator:
    """
    Turn records from a row source into WorkItems keyed by ``id_field``.

    Records whose id is missing or blank are skipped and logged. The record
    itself becomes the item's source_ref.
    """

    def __init__(self, rows: Iterable[Mapping[str, Any]], *, id_field: str = "id"):
        self.rows = rows
        self.id_field = id_field

    def enumerate(self) -> List[WorkItem]:
        items = []
        skipped = 0
        for index, row in enumerate(self.rows):
            raw = row.get(self.id_field)
            item_id = str(raw).strip() if raw is not None else ""
            if not item_id:
                skipped += 1
                logger.warning("Row %d has no %r; skipped", index, self.id_field)
                continue
            items.append(WorkItem(item_id, dict(row)))

        if skipped:
            logger.info("Skipped %d rows without an id", skipped)
        items = dedupe_items(items)
        logger.info("Found %d rows to process", len(items))
        return items
