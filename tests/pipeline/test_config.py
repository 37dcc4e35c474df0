# tests/pipeline/test_config.py
from __future__ import annotations

from pathlib import Path

import pytest

from batchpart.pipeline.config import DEFAULT_CHECKPOINT_NAME, PipelineConfig


def test_paths_are_coerced():
    cfg = PipelineConfig(source_dir="src", target_dir="out", checkpoint_path="p.json")
    assert cfg.source_dir == Path("src")
    assert cfg.target_dir == Path("out")
    assert cfg.checkpoint_path == Path("p.json")


def test_checkpoint_defaults_to_target_dir():
    cfg = PipelineConfig(source_dir="src", target_dir="out")
    assert cfg.resolved_checkpoint() == Path("out") / DEFAULT_CHECKPOINT_NAME


def test_checkpoint_defaults_to_cwd_without_target(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = PipelineConfig(source_dir="src")
    assert cfg.resolved_checkpoint() == tmp_path / DEFAULT_CHECKPOINT_NAME


def test_resolved_workers(monkeypatch):
    import batchpart.pipeline.config as config_mod

    monkeypatch.setattr(config_mod.os, "cpu_count", lambda: 8)
    assert PipelineConfig(source_dir="s").resolved_workers() == 7
    monkeypatch.setattr(config_mod.os, "cpu_count", lambda: 1)
    assert PipelineConfig(source_dir="s").resolved_workers() == 1
    assert PipelineConfig(source_dir="s", num_workers=3).resolved_workers() == 3


@pytest.mark.parametrize("kwargs", [
    dict(batch_size=0),
    dict(num_workers=0),
    dict(prefix_length=0),
    dict(alphabet=""),
    dict(id_mode="basename"),
    dict(progress_every_s=-1),
])
def test_validate_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        PipelineConfig(source_dir="s", **kwargs).validate()
