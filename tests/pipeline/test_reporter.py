# tests/pipeline/test_reporter.py
from __future__ import annotations

import logging
from datetime import datetime

import pytest

from batchpart.pipeline.aggregator import AggregateSnapshot
from batchpart.pipeline.reporter import Reporter, bin_stats, print_pipeline_header
from batchpart.tracking.types import Bin


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def _snap(succeeded=0, failed=0, completed_total=0, **kw):
    base = dict(
        succeeded=succeeded,
        failed=failed,
        already_done=0,
        completed_total=completed_total,
        batches_crashed=0,
        rounds_completed=0,
        bytes_processed=0,
    )
    base.update(kw)
    return AggregateSnapshot(**base)


@pytest.fixture
def clock():
    return FakeClock()


def _reporter(clock, total=100, every=5.0):
    return Reporter(total, progress_every_s=every, show_progress=False, clock=clock)


def test_status_rate_and_eta(clock):
    rep = _reporter(clock)
    clock.t += 120  # two minutes
    st = rep.status(_snap(succeeded=30, failed=10))

    assert st.processed == 40
    assert st.remaining == 60
    assert st.rate_per_min == pytest.approx(20.0)
    assert st.eta_s == pytest.approx(180.0)
    assert st.percent == pytest.approx(40.0)


def test_status_before_any_progress_has_no_eta(clock):
    st = _reporter(clock).status(_snap())
    assert st.rate_per_min == 0.0
    assert st.eta_s is None


def test_maybe_report_respects_interval(clock, caplog):
    rep = _reporter(clock, every=5.0)
    with caplog.at_level(logging.INFO, logger="batchpart.pipeline.reporter"):
        clock.t += 2
        assert rep.maybe_report(_snap(succeeded=1)) is None
        clock.t += 4
        st = rep.maybe_report(_snap(succeeded=6))
        assert st is not None and st.processed == 6
        clock.t += 1
        assert rep.maybe_report(_snap(succeeded=7)) is None

    assert "Processed 6/100 items (6.00%)" in caplog.text


def test_reporter_does_not_mutate_snapshot(clock):
    snap = _snap(succeeded=3)
    rep = _reporter(clock)
    rep.maybe_report(snap)
    rep.summary(snap, [])
    assert snap == _snap(succeeded=3)


def test_summary_prints_bin_distribution(clock, capsys):
    rep = _reporter(clock, total=10)
    clock.t += 60
    bins = [Bin("aa", 2), Bin("ab", 6), Bin("ac", 1)]
    rep.summary(_snap(succeeded=9, failed=1, completed_total=9), bins)
    out = capsys.readouterr().out

    assert "Successfully processed:  9" in out
    assert "Errors encountered:      1" in out
    assert "Bin ab: 6 items" in out
    assert "Min bin size:            1 items" in out
    assert "Max bin size:            6 items" in out
    assert "Average bin size:        3.00 items" in out


def test_summary_without_bins_skips_distribution(clock, capsys):
    _reporter(clock).summary(_snap(), [])
    assert "Bin Distribution" not in capsys.readouterr().out


def test_bin_stats_ignores_empty_bins():
    assert bin_stats([]) is None
    assert bin_stats([Bin("aa", 0)]) is None
    stats = bin_stats([Bin("aa", 0), Bin("ab", 2), Bin("ac", 5)])
    assert (stats.count, stats.min_size, stats.max_size) == (2, 2, 5)
    assert stats.avg_size == pytest.approx(3.5)


def test_pipeline_header(capsys):
    print_pipeline_header(
        start_time=datetime(2024, 1, 2, 3, 4, 5),
        source="/data/src",
        destination="/data/out",
        checkpoint="/data/out/partition_progress.json",
        total_items=1234,
        already_done=34,
        pending=1200,
        workers=4,
        executor_name="processes",
        batch_size=100,
        rounds=3,
    )
    out = capsys.readouterr().out
    assert "Start Time: 2024-01-02 03:04:05" in out
    assert "Total items:          1,234" in out
    assert "Remaining:            1,200" in out
    assert "Workers:              4 (processes)" in out
