"""Bounded worker pool running one round of batches at a time."""
from __future__ import annotations

import logging
import multiprocessing as mp
import queue
from concurrent.futures import CancelledError, Future, ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from concurrent.futures.thread import BrokenThreadPool
from functools import partial
from typing import Dict, Iterator, Optional, Sequence, Type

from batchpart.errors import WorkerCrashedError
from batchpart.tracking.types import BatchResult, BatchTask
from .worker import ItemHandler, process_batch

logger = logging.getLogger(__name__)

__all__ = ["WorkerPool"]

_BROKEN = (BrokenProcessPool, BrokenThreadPool)


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def worker_process(
    task: BatchTask,
    handler: ItemHandler,
    log_file_path: Optional[str],
    results,
) -> None:
    """Entry point of a dedicated worker process; posts exactly one BatchResult."""
    try:
        result = process_batch(task, handler, log_file_path)
    except Exception as exc:
        result = BatchResult(task=task, error=_describe(exc))
    results.put(result)


class WorkerPool:
    """
    Run BatchTasks on at most ``num_workers`` concurrent workers.

    Workers never touch shared state. Each finished batch is posted as a
    BatchResult on a per-round result channel, and ``run_round`` yields
    results in arrival order until every task of the round has reported.

    By default every task of a round gets its own process, so a worker
    that dies (segfault, OOM kill, ``os._exit``) costs only its own batch:
    its non-zero exit code becomes a crashed BatchResult while its siblings
    report normally. Passing ``executor_class`` (e.g. ThreadPoolExecutor)
    runs the batches on that executor instead; a broken executor is
    replaced before the next round.

    Usage:
        with WorkerPool(handler, num_workers=4) as pool:
            for result in pool.run_round(tasks):
                ...
    """

    def __init__(
        self,
        handler: ItemHandler,
        num_workers: int,
        *,
        executor_class: Optional[Type] = None,
        log_file_path: Optional[str] = None,
        start_method: Optional[str] = None,
        poll_interval: float = 0.2,
    ):
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")
        self.handler = handler
        self.num_workers = num_workers
        self.executor_class = executor_class
        self.log_file_path = log_file_path
        self.start_method = start_method
        self.poll_interval = poll_interval
        self._open = False
        self._ctx = None
        self._executor = None
        self._broken = False

    def __enter__(self) -> "WorkerPool":
        if self.executor_class is None:
            self._ctx = mp.get_context(self.start_method)
            if self.start_method:
                logger.info("Using multiprocessing start method: %s", self.start_method)
        else:
            self._executor = self._new_executor()
        self._open = True
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def _new_executor(self):
        kwargs = {"max_workers": self.num_workers}
        if issubclass(self.executor_class, ProcessPoolExecutor) and self.start_method:
            kwargs["mp_context"] = mp.get_context(self.start_method)
            logger.info("Using multiprocessing start method: %s", self.start_method)
        return self.executor_class(**kwargs)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=not self._broken)
            self._executor = None
        self._open = False

    def _crashed(self, task: BatchTask, reason: str) -> BatchResult:
        err = WorkerCrashedError(task.assigned_worker, task.round_index, reason)
        logger.error("%s (%d items invalidated)", err, len(task))
        return BatchResult(task=task, error=reason)

    def run_round(self, tasks: Sequence[BatchTask]) -> Iterator[BatchResult]:
        """Start every task, then yield one BatchResult per task as they arrive."""
        if not self._open:
            raise RuntimeError("WorkerPool is not open; use it as a context manager")
        if len(tasks) > self.num_workers:
            raise ValueError(
                f"Round has {len(tasks)} tasks but the pool has {self.num_workers} workers"
            )
        for task in tasks:
            logger.info(
                "Dispatching worker %d: %d items (round %d)",
                task.assigned_worker, len(task), task.round_index,
            )

        if self.executor_class is None:
            yield from self._run_processes(tasks)
        else:
            yield from self._run_executor(tasks)

    # --- dedicated processes --------------------------------------------------

    def _run_processes(self, tasks: Sequence[BatchTask]) -> Iterator[BatchResult]:
        results = self._ctx.Queue()
        running: Dict[int, tuple] = {}

        try:
            for task in tasks:
                process = self._ctx.Process(
                    target=worker_process,
                    args=(task, self.handler, self.log_file_path, results),
                    name=f"batchpart:worker-{task.assigned_worker:02d}",
                )
                try:
                    process.start()
                except Exception as exc:
                    yield self._crashed(task, _describe(exc))
                    continue
                running[task.assigned_worker] = (task, process)

            # Barrier: the round ends only when every started task has reported
            while running:
                try:
                    result = results.get(timeout=self.poll_interval)
                except queue.Empty:
                    result = None

                if result is not None:
                    _, process = running.pop(result.task.assigned_worker)
                    process.join()
                    if result.crashed:
                        result = self._crashed(result.task, result.error)
                    yield result
                    continue

                for worker in [w for w, (_, p) in running.items() if not p.is_alive()]:
                    yield from self._reap(worker, running, results)
        finally:
            for _, process in running.values():
                if process.is_alive():
                    process.terminate()
                process.join()
            results.close()

    def _reap(self, worker: int, running: Dict[int, tuple], results) -> Iterator[BatchResult]:
        """Collect anything still in flight, then fail a dead worker's batch."""
        while True:
            try:
                result = results.get(timeout=self.poll_interval)
            except queue.Empty:
                break
            task, process = running.pop(result.task.assigned_worker)
            process.join()
            yield self._crashed(task, result.error) if result.crashed else result

        if worker in running:
            task, process = running.pop(worker)
            process.join()
            yield self._crashed(task, f"worker process exited with code {process.exitcode}")

    # --- executor -------------------------------------------------------------

    def _post(self, channel: queue.Queue, task: BatchTask, fut: Future) -> None:
        """Done-callback: move a finished future onto the result channel."""
        try:
            result = fut.result()
        except (Exception, CancelledError) as exc:
            if isinstance(exc, _BROKEN):
                self._broken = True
            result = self._crashed(task, _describe(exc))
        channel.put(result)

    def _run_executor(self, tasks: Sequence[BatchTask]) -> Iterator[BatchResult]:
        channel: queue.Queue = queue.Queue()
        for task in tasks:
            try:
                fut = self._executor.submit(
                    process_batch, task, self.handler, self.log_file_path
                )
            except (RuntimeError, *_BROKEN) as exc:
                if isinstance(exc, _BROKEN):
                    self._broken = True
                channel.put(self._crashed(task, _describe(exc)))
                continue
            fut.add_done_callback(partial(self._post, channel, task))

        # Barrier: the round ends only when every task has reported
        for _ in range(len(tasks)):
            yield channel.get()

        if self._broken:
            logger.warning("Executor broken during round; starting a fresh pool")
            self._executor.shutdown(wait=False)
            self._executor = self._new_executor()
            self._broken = False
