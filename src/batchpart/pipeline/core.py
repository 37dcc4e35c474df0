"""Main entry points for resumable batch runs."""
from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Type

from batchpart.errors import SourceUnavailableError
from batchpart.io.sinks import BlobSink
from batchpart.partition.bin_sizes import measure_bins, print_bin_usage
from batchpart.partition.partitioner import PrefixPartitioner
from batchpart.tracking.progress_store import ProgressStore
from batchpart.tracking.types import Bin
from .aggregator import ProgressAggregator
from .config import PipelineConfig
from .enumerator import DirectoryEnumerator, RowEnumerator
from .logger import get_log_file_path
from .reporter import Reporter, print_pipeline_header
from .scheduler import BatchScheduler
from .worker import CopyToBinHandler, ItemHandler, RowExportHandler, UploadHandler
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)

__all__ = [
    "RunSummary",
    "run_pipeline",
    "partition_directory",
    "upload_directory",
    "export_rows",
]

BIN_SIZES_FLAG = "bin_sizes_calculated"


@dataclass(frozen=True)
class RunSummary:
    """Outcome of one pipeline invocation."""

    total: int
    skipped: int
    pending: int
    succeeded: int
    failed: int
    rounds: int
    elapsed_s: float
    bins: List[Bin] = field(default_factory=list)


def run_pipeline(
    enumerator,
    handler: ItemHandler,
    store: ProgressStore,
    *,
    partitioner: Optional[PrefixPartitioner] = None,
    batch_size: int = 100,
    num_workers: int = 1,
    executor_class: Optional[Type] = None,
    progress_every_s: float = 5.0,
    show_progress: bool = True,
    source_label: str = "",
    destination_label: str = "",
    after_run: Optional[Callable[[RunSummary, ProgressAggregator], None]] = None,
) -> RunSummary:
    """
    Enumerate, diff against the checkpoint, and process what is left.

    Process
    -------
    1. Load the checkpoint (soft failure means start from nothing)
    2. Enumerate candidates; SourceUnavailableError propagates before any
       worker starts
    3. Schedule pending items into rounds of ``num_workers`` batches
    4. Run each round, merging results as they arrive
    5. Save the checkpoint after every round, then report
    6. Call ``after_run(summary, aggregator)``; anything it records in the
       aggregator is saved from memory, never from a reloaded checkpoint

    Item and worker failures are counted, never raised; re-running the
    pipeline retries them.
    """
    start_time = datetime.now()

    record = store.load()
    items = enumerator.enumerate()

    scheduler = BatchScheduler(batch_size, num_workers)
    pending = scheduler.pending(items, record.completed_ids)
    skipped = len(items) - len(pending)
    n_rounds = scheduler.num_rounds(len(pending))

    logger.info(
        "Found %d items; %d already processed; %d remaining in %d rounds",
        len(items), skipped, len(pending), n_rounds,
    )

    aggregator = ProgressAggregator(record, partitioner)

    print_pipeline_header(
        start_time=start_time,
        source=source_label,
        destination=destination_label,
        checkpoint=str(store.path),
        total_items=len(items),
        already_done=skipped,
        pending=len(pending),
        workers=num_workers,
        executor_name=_executor_name(executor_class),
        batch_size=batch_size,
        rounds=n_rounds,
    )

    if not pending:
        print("All items have already been processed!")
        summary = RunSummary(
            total=len(items),
            skipped=skipped,
            pending=0,
            succeeded=0,
            failed=0,
            rounds=0,
            elapsed_s=(datetime.now() - start_time).total_seconds(),
            bins=aggregator.bins(),
        )
        if after_run is not None:
            after_run(summary, aggregator)
        return summary

    pool_size = min(num_workers, len(scheduler.batches(pending)))
    reporter = Reporter(
        len(pending),
        progress_every_s=progress_every_s,
        show_progress=show_progress,
    )
    try:
        with WorkerPool(
            handler,
            pool_size,
            executor_class=executor_class,
            log_file_path=get_log_file_path(),
        ) as pool:
            for tasks in scheduler.rounds(pending):
                for result in pool.run_round(tasks):
                    aggregator.apply_result(result)
                    reporter.update(aggregator.snapshot())

                if not aggregator.end_round(store):
                    logger.warning(
                        "Checkpoint not saved after round %d; it will be redone on resume",
                        tasks[0].round_index,
                    )
                reporter.maybe_report(aggregator.snapshot())
    finally:
        reporter.close()

    snap = aggregator.snapshot()
    bins = aggregator.bins()
    status = reporter.summary(snap, bins)

    summary = RunSummary(
        total=len(items),
        skipped=skipped,
        pending=len(pending),
        succeeded=snap.succeeded,
        failed=snap.failed,
        rounds=snap.rounds_completed,
        elapsed_s=status.elapsed_s,
        bins=bins,
    )
    if after_run is not None:
        after_run(summary, aggregator)
    return summary


def _executor_name(executor_class: Optional[Type]) -> str:
    if executor_class is None or issubclass(executor_class, ProcessPoolExecutor):
        return "processes"
    return "threads"


def _executor_for(config: PipelineConfig) -> Optional[Type]:
    """ThreadPoolExecutor for threads; None means one process per batch."""
    return ThreadPoolExecutor if config.use_threads else None


def partition_directory(config: PipelineConfig) -> RunSummary:
    """
    Copy every matching file in ``source_dir`` into its prefix bin under
    ``target_dir``, resuming from the checkpoint if one exists.

    All bin directories are created before the first round. Afterwards bin
    usage is measured once and remembered in the checkpoint; later runs
    measure again only if they copied something new.
    """
    config.validate()
    if config.target_dir is None:
        raise ValueError("partition_directory requires target_dir")
    if not config.source_dir.is_dir():
        raise SourceUnavailableError(
            f"Source directory '{config.source_dir}' does not exist!"
        )

    partitioner = PrefixPartitioner(config.prefix_length, config.alphabet)
    partitioner.materialize(config.target_dir)

    store = ProgressStore(config.resolved_checkpoint())
    workers = config.resolved_workers()

    def measure_once(summary: RunSummary, aggregator: ProgressAggregator) -> None:
        if aggregator.get_extra(BIN_SIZES_FLAG) and summary.succeeded == 0:
            logger.info("Bin sizes already calculated in a previous run; skipping")
            return
        print_bin_usage(measure_bins(config.target_dir, workers))
        aggregator.set_extra(BIN_SIZES_FLAG, True)
        if not aggregator.save(store):
            logger.warning("Bin size flag not saved; sizes will be measured again next run")

    return run_pipeline(
        DirectoryEnumerator(
            config.source_dir,
            suffix=config.file_suffix,
            recursive=config.recursive,
            id_mode=config.id_mode,
        ),
        CopyToBinHandler(config.target_dir, partitioner),
        store,
        partitioner=partitioner,
        batch_size=config.batch_size,
        num_workers=workers,
        executor_class=_executor_for(config),
        progress_every_s=config.progress_every_s,
        show_progress=config.show_progress,
        source_label=str(config.source_dir.resolve()),
        destination_label=str(config.target_dir.resolve()),
        after_run=measure_once if config.measure_bins else None,
    )


def upload_directory(config: PipelineConfig, sink: BlobSink) -> RunSummary:
    """Upload every matching file under ``source_dir`` to ``sink``."""
    config.validate()
    partitioner = PrefixPartitioner(config.prefix_length, config.alphabet)
    return run_pipeline(
        DirectoryEnumerator(
            config.source_dir,
            suffix=config.file_suffix,
            recursive=config.recursive,
            id_mode=config.id_mode,
        ),
        UploadHandler(sink, partitioner),
        ProgressStore(config.resolved_checkpoint()),
        partitioner=partitioner,
        batch_size=config.batch_size,
        num_workers=config.resolved_workers(),
        executor_class=_executor_for(config),
        progress_every_s=config.progress_every_s,
        show_progress=config.show_progress,
        source_label=str(config.source_dir),
        destination_label=repr(sink),
    )


def export_rows(
    config: PipelineConfig,
    rows: Iterable[Mapping[str, Any]],
    sink: BlobSink,
    *,
    id_field: str = "id",
) -> RunSummary:
    """Write each row with a non-empty id to ``sink`` as ``<id>.json``."""
    config.validate()
    partitioner = PrefixPartitioner(config.prefix_length, config.alphabet)
    return run_pipeline(
        RowEnumerator(rows, id_field=id_field),
        RowExportHandler(sink, partitioner),
        ProgressStore(config.resolved_checkpoint()),
        partitioner=partitioner,
        batch_size=config.batch_size,
        num_workers=config.resolved_workers(),
        executor_class=_executor_for(config),
        progress_every_s=config.progress_every_s,
        show_progress=config.show_progress,
        source_label=str(config.source_dir),
        destination_label=repr(sink),
    )
