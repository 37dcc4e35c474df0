"""Worker body and per-item handlers."""
from __future__ import annotations

import json
import multiprocessing as mp
import os
import shutil
from pathlib import Path
from typing import Optional, Tuple, Union

from setproctitle import setproctitle

from batchpart.io.sinks import BlobSink
from batchpart.partition.partitioner import PrefixPartitioner
from batchpart.tracking.types import BatchResult, BatchTask, Outcome, WorkItem
from .logger import worker_logger

__all__ = [
    "ItemHandler",
    "CopyToBinHandler",
    "UploadHandler",
    "RowExportHandler",
    "process_batch",
]


class ItemHandler:
    """
    Processes one WorkItem at a time inside a worker.

    Handlers are pickled into worker processes, so they hold only plain
    configuration. ``setup`` runs once per batch before any item; an error
    there fails the whole batch. ``handle`` returns ``(bin, size)`` on
    success and raises on an item-level failure.
    """

    def setup(self) -> None:
        pass

    def handle(self, item: WorkItem) -> Tuple[Optional[str], int]:  # pragma: no cover - interface
        raise NotImplementedError


class CopyToBinHandler(ItemHandler):
    """Copy each source file into its bin directory under ``target_dir``."""

    def __init__(self, target_dir: Union[str, Path], partitioner: PrefixPartitioner):
        self.target_dir = Path(target_dir)
        self.partitioner = partitioner

    def setup(self) -> None:
        if not self.target_dir.is_dir():
            raise FileNotFoundError(f"Target directory '{self.target_dir}' is missing")

    @staticmethod
    def dest_name(item: WorkItem, source: Path) -> str:
        """
        Filename inside the bin, unique per item id.

        Stem ids keep the source filename. Relative-path ids are flattened
        (``sub/x.json`` -> ``sub__x.json``) so equal filenames from different
        subdirectories do not overwrite each other.
        """
        if item.id in (source.stem, source.name):
            return source.name
        return item.id.replace("/", "__")

    def handle(self, item: WorkItem) -> Tuple[Optional[str], int]:
        source = Path(item.source_ref)
        if not source.is_file():
            raise FileNotFoundError("Source file does not exist")

        label = self.partitioner.bin(item.id)
        dest = self.target_dir / label / self.dest_name(item, source)
        shutil.copyfile(source, dest)
        return label, source.stat().st_size


class UploadHandler(ItemHandler):
    """Upload each source file to a blob sink under its item id."""

    def __init__(self, sink: BlobSink, partitioner: Optional[PrefixPartitioner] = None):
        self.sink = sink
        self.partitioner = partitioner

    def handle(self, item: WorkItem) -> Tuple[Optional[str], int]:
        data = Path(item.source_ref).read_bytes()
        if not self.sink.put(item.id, data):
            raise IOError(f"Sink rejected {item.id}")
        label = self.partitioner.bin(item.id) if self.partitioner else None
        return label, len(data)


class RowExportHandler(ItemHandler):
    """Write each row record as a pretty-printed JSON blob ``<id><suffix>``."""

    def __init__(
        self,
        sink: BlobSink,
        partitioner: Optional[PrefixPartitioner] = None,
        suffix: str = ".json",
    ):
        self.sink = sink
        self.partitioner = partitioner
        self.suffix = suffix

    def handle(self, item: WorkItem) -> Tuple[Optional[str], int]:
        data = json.dumps(item.source_ref, indent=2, ensure_ascii=False).encode("utf-8")
        if not self.sink.put(f"{item.id}{self.suffix}", data):
            raise IOError(f"Sink rejected {item.id}")
        label = self.partitioner.bin(item.id) if self.partitioner else None
        return label, len(data)


def process_batch(
    task: BatchTask,
    handler: ItemHandler,
    log_file_path: Optional[str] = None,
) -> BatchResult:
    """
    Process one batch sequentially and return an Outcome per item.

    Item failures are caught and recorded so the remaining items still run.
    Anything raised outside the item loop (including ``handler.setup``)
    propagates and fails the batch as a whole.
    """
    # Thread workers share the coordinator's process title
    if mp.parent_process() is not None:
        setproctitle(f"batchpart:worker-{task.assigned_worker:02d}")

    log = worker_logger(log_file_path, __name__)
    log.info(
        "Worker %d (PID %s): round %d, %d items",
        task.assigned_worker, os.getpid(), task.round_index, len(task),
    )

    handler.setup()

    outcomes = []
    for item in task.items:
        try:
            label, size = handler.handle(item)
            outcomes.append(Outcome(item.id, True, bin=label, size=size))
        except Exception as exc:
            log.warning("Worker %d: %s failed: %s", task.assigned_worker, item.id, exc)
            outcomes.append(Outcome(item.id, False, error=str(exc) or type(exc).__name__))

    return BatchResult(task=task, outcomes=outcomes)
