# tests/pipeline/test_worker_pool.py
from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from pathlib import Path

import pytest

from batchpart.partition.partitioner import PrefixPartitioner
from batchpart.pipeline.worker import CopyToBinHandler, ItemHandler
from batchpart.pipeline.worker_pool import WorkerPool
from batchpart.tracking.types import BatchTask, WorkItem


class Echo(ItemHandler):
    def handle(self, item):
        return None, 0


class ExitOnDie(ItemHandler):
    """Kills its worker process outright on ids starting with 'die'."""

    def handle(self, item):
        if item.id.startswith("die"):
            os._exit(1)
        return "ok", len(item.id)


class FailingSetup(ItemHandler):
    def setup(self):
        raise RuntimeError("worker blew up")

    def handle(self, item):
        return None, 0


class GatedHandler(ItemHandler):
    """Blocks in setup until every worker of the round has started."""

    def __init__(self, workers):
        self.barrier = threading.Barrier(workers, timeout=5)

    def setup(self):
        # All workers of the round must be running at the same time
        self.barrier.wait()

    def handle(self, item):
        return None, 0


def _tasks(*batches, round_index=0):
    return [
        BatchTask(items=tuple(WorkItem(i) for i in ids), assigned_worker=w, round_index=round_index)
        for w, ids in enumerate(batches)
    ]


# --- Test doubles -------------------------------------------------------------

class FakeExecutor:
    """Executes immediately; tasks whose first id starts with '!' break the pool."""

    instances = []

    def __init__(self, max_workers: int):
        self.max_workers = max_workers
        self.shutdowns = []
        FakeExecutor.instances.append(self)

    def submit(self, fn, task, *args):
        fut = Future()
        if task.items and task.items[0].id.startswith("!"):
            fut.set_exception(BrokenProcessPool("worker died"))
        else:
            fut.set_result(fn(task, *args))
        return fut

    def shutdown(self, wait=True):
        self.shutdowns.append(wait)


@pytest.fixture(autouse=True)
def _reset_fake():
    FakeExecutor.instances = []
    yield


# --- Tests --------------------------------------------------------------------

def test_round_yields_one_result_per_task():
    with WorkerPool(Echo(), 2, executor_class=ThreadPoolExecutor) as pool:
        results = list(pool.run_round(_tasks(["a", "b"], ["c"])))

    assert sorted(r.task.assigned_worker for r in results) == [0, 1]
    ids = sorted(o.item_id for r in results for o in r.outcomes)
    assert ids == ["a", "b", "c"]


def test_workers_run_concurrently():
    with WorkerPool(GatedHandler(3), 3, executor_class=ThreadPoolExecutor) as pool:
        results = list(pool.run_round(_tasks(["a"], ["b"], ["c"])))
    assert not any(r.crashed for r in results)


def test_worker_exception_becomes_batch_error():
    class BadSetup(ItemHandler):
        def setup(self):
            raise RuntimeError("worker blew up")

    with WorkerPool(BadSetup(), 2, executor_class=ThreadPoolExecutor) as pool:
        results = list(pool.run_round(_tasks(["a", "b"], ["c"])))

    assert all(r.crashed for r in results)
    assert all("worker blew up" in r.error for r in results)
    assert all(r.outcomes == [] for r in results)


def test_broken_pool_is_rebuilt_for_next_round():
    with WorkerPool(Echo(), 2, executor_class=FakeExecutor) as pool:
        first = list(pool.run_round(_tasks(["!dead"], ["ok"])))
        second = list(pool.run_round(_tasks(["next"], round_index=1)))

    crashed = [r for r in first if r.crashed]
    assert len(crashed) == 1
    assert crashed[0].task.item_ids == ["!dead"]
    assert "BrokenProcessPool" in crashed[0].error
    assert len(FakeExecutor.instances) == 2
    assert FakeExecutor.instances[0].shutdowns == [False]
    assert not second[0].crashed


def test_round_larger_than_pool_rejected():
    with WorkerPool(Echo(), 1, executor_class=ThreadPoolExecutor) as pool:
        with pytest.raises(ValueError):
            list(pool.run_round(_tasks(["a"], ["b"])))


def test_run_round_requires_open_pool():
    pool = WorkerPool(Echo(), 1, executor_class=ThreadPoolExecutor)
    with pytest.raises(RuntimeError):
        list(pool.run_round(_tasks(["a"])))


def test_process_pool_copies_files(tmp_path: Path):
    src = tmp_path / "src"
    src.mkdir()
    items = []
    for name in ["aaa", "abb", "bcc", "pzz"]:
        f = src / f"{name}.json"
        f.write_text(name)
        items.append(WorkItem(name, f))
    target = tmp_path / "out"
    partitioner = PrefixPartitioner()
    partitioner.materialize(target)

    tasks = [
        BatchTask(items=tuple(items[:2]), assigned_worker=0),
        BatchTask(items=tuple(items[2:]), assigned_worker=1),
    ]
    with WorkerPool(CopyToBinHandler(target, partitioner), 2) as pool:
        results = list(pool.run_round(tasks))

    outcomes = {o.item_id: o for r in results for o in r.outcomes}
    assert outcomes["aaa"].success and outcomes["aaa"].bin == "aa"
    assert outcomes["bcc"].success and outcomes["bcc"].bin == "bc"
    # 'z' is outside the alphabet
    assert outcomes["pzz"].bin == "_other"
    assert (target / "ab" / "abb.json").read_text() == "abb"


# --- Dedicated worker processes -----------------------------------------------

def test_dead_process_fails_only_its_own_batch(caplog):
    tasks = _tasks(["die"], ["y1", "y2"])
    with WorkerPool(ExitOnDie(), 2) as pool:
        results = list(pool.run_round(tasks))

    by_worker = {r.task.assigned_worker: r for r in results}
    assert len(results) == 2
    assert by_worker[0].crashed
    assert "exited with code 1" in by_worker[0].error
    assert not by_worker[1].crashed
    assert [(o.item_id, o.success) for o in by_worker[1].outcomes] == [("y1", True), ("y2", True)]
    assert "Worker 0 crashed in round 0" in caplog.text
    assert "Worker 1 crashed" not in caplog.text


def test_dead_process_does_not_affect_next_round():
    with WorkerPool(ExitOnDie(), 2) as pool:
        first = list(pool.run_round(_tasks(["die"], ["ok"])))
        second = list(pool.run_round(_tasks(["a"], ["b"], round_index=1)))

    assert sum(r.crashed for r in first) == 1
    assert not any(r.crashed for r in second)
    assert sorted(o.item_id for r in second for o in r.outcomes) == ["a", "b"]


def test_process_setup_error_becomes_batch_error():
    with WorkerPool(FailingSetup(), 2) as pool:
        results = list(pool.run_round(_tasks(["a"], ["b"])))

    assert all(r.crashed for r in results)
    assert all("RuntimeError: worker blew up" in r.error for r in results)
