# tracking/progress_store.py
"""Durable JSON checkpoint of completed item ids."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Union

from batchpart.errors import CheckpointError
from .types import ProgressRecord

logger = logging.getLogger(__name__)

__all__ = ["ProgressStore", "CHECKPOINT_VERSION"]

CHECKPOINT_VERSION = 1

# Keys written by older checkpoints that hold the completed id list.
# processedFiles held partition filenames ("aaa.json"); ids are their stems.
# completedFiles held upload paths relative to the source, already ids.
_LEGACY_ID_KEYS = ("processedFiles", "completedFiles")
_LEGACY_NORMALIZE = {"processedFiles": lambda name: PurePosixPath(name).stem}
_CORE_KEYS = {"version", "completed_ids", "last_update", *_LEGACY_ID_KEYS}


def _decode(payload: Dict[str, Any]) -> ProgressRecord:
    """Build a record from parsed checkpoint JSON."""
    if not isinstance(payload, dict):
        raise CheckpointError(f"expected a JSON object, got {type(payload).__name__}")

    ids = payload.get("completed_ids")
    legacy_key = None
    if ids is None:
        for key in _LEGACY_ID_KEYS:
            if key in payload:
                ids = payload[key]
                legacy_key = key
                break
    if ids is None:
        ids = []
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise CheckpointError("completed_ids must be a list of strings")
    if legacy_key in _LEGACY_NORMALIZE:
        ids = [_LEGACY_NORMALIZE[legacy_key](i) for i in ids]

    last_update = payload.get("last_update", payload.get("lastUpdate", 0))
    try:
        last_update = float(last_update)
    except (TypeError, ValueError):
        last_update = 0.0
    # Legacy checkpoints stored milliseconds
    if last_update > 1e11:
        last_update /= 1000.0

    extras = {k: v for k, v in payload.items()
              if k not in _CORE_KEYS and k != "lastUpdate"}
    return ProgressRecord(
        completed_ids=set(ids),
        last_update=last_update,
        extras=extras,
    )


def _encode(record: ProgressRecord) -> str:
    payload: Dict[str, Any] = dict(record.extras)
    payload.update(
        version=CHECKPOINT_VERSION,
        completed_ids=sorted(record.completed_ids),
        last_update=record.last_update,
    )
    try:
        return json.dumps(payload, indent=2)
    except (TypeError, ValueError) as exc:
        raise CheckpointError(f"checkpoint is not serializable: {exc}") from exc


class ProgressStore:
    """
    Load and save a ProgressRecord at a well-known checkpoint path.

    Reads fail soft (an unreadable checkpoint means "no prior progress").
    Writes go to a temp file in the same directory and are moved into place
    with ``os.replace`` so a crash leaves either the old or the new content.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ProgressRecord:
        """Return the persisted record, or an empty one on any problem."""
        if not self.path.exists():
            logger.info("No checkpoint at %s; starting fresh", self.path)
            return ProgressRecord()

        try:
            with self.path.open("r", encoding="utf-8") as f:
                record = _decode(json.load(f))
        except (OSError, ValueError, CheckpointError) as exc:
            logger.error("Error loading checkpoint %s: %s", self.path, exc)
            return ProgressRecord()

        logger.info(
            "Loaded checkpoint %s: %d completed ids (last update %s)",
            self.path,
            len(record.completed_ids),
            time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.last_update)),
        )
        return record

    def save(self, record: ProgressRecord) -> bool:
        """
        Persist the full record. Returns False (after logging) on failure.

        A failed save only risks redoing work on the next resume, so it
        never interrupts processing.
        """
        record.last_update = time.time()
        tmp_name = None
        try:
            text = _encode(record)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, CheckpointError) as exc:
            logger.error("Error saving checkpoint %s: %s", self.path, exc)
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        logger.debug(
            "Checkpoint saved: %d completed ids", len(record.completed_ids)
        )
        return True
