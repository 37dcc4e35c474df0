# tests/tracking/test_types.py
from __future__ import annotations

from batchpart.tracking.types import BatchResult, BatchTask, ProgressRecord, WorkItem


def test_work_item_equality_ignores_source_ref():
    assert WorkItem("a", "/x/a.json") == WorkItem("a", "/y/a.json")
    assert WorkItem("a") != WorkItem("b")


def test_record_copy_is_independent():
    rec = ProgressRecord(completed_ids={"a"}, extras={"k": 1})
    dup = rec.copy()
    dup.completed_ids.add("b")
    dup.extras["k"] = 2
    assert rec.completed_ids == {"a"}
    assert rec.extras == {"k": 1}


def test_batch_task_and_result_helpers():
    task = BatchTask(items=(WorkItem("a"), WorkItem("b")), assigned_worker=1)
    assert len(task) == 2
    assert task.item_ids == ["a", "b"]
    assert not BatchResult(task).crashed
    assert BatchResult(task, error="boom").crashed
