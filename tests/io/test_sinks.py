# tests/io/test_sinks.py
from __future__ import annotations

from pathlib import Path

import pytest
import requests

import batchpart.io.sinks as sinks_mod
from batchpart.io.sinks import DirectoryBlobSink, HttpBlobSink


# --- Directory sink -----------------------------------------------------------

def test_directory_sink_writes_nested_keys(tmp_path: Path):
    sink = DirectoryBlobSink(tmp_path)
    assert sink.put("aa/abc.json", b"{}") is True
    assert (tmp_path / "aa" / "abc.json").read_bytes() == b"{}"


def test_directory_sink_overwrite_is_idempotent(tmp_path: Path):
    sink = DirectoryBlobSink(tmp_path)
    sink.put("k.json", b"one")
    sink.put("k.json", b"one")
    assert (tmp_path / "k.json").read_bytes() == b"one"
    assert [p.name for p in tmp_path.iterdir()] == ["k.json"]


@pytest.mark.parametrize("key", ["", "/abs", "../escape", "a/../../b"])
def test_directory_sink_rejects_unsafe_keys(tmp_path: Path, key):
    with pytest.raises(ValueError):
        DirectoryBlobSink(tmp_path).put(key, b"x")


# --- HTTP sink ----------------------------------------------------------------

class FakeResponse:
    def __init__(self, status: int):
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.calls = []

    def put(self, url, data=None, headers=None, timeout=None):
        self.calls.append((url, data, headers, timeout))
        status = self.statuses.pop(0)
        if status is None:
            raise requests.ConnectionError("connection reset")
        return FakeResponse(status)


@pytest.fixture
def no_sleep(monkeypatch):
    delays = []
    monkeypatch.setattr(sinks_mod.time, "sleep", delays.append)
    return delays


def test_http_sink_puts_to_key_url(no_sleep):
    session = FakeSession([200])
    sink = HttpBlobSink("https://store.example/bucket/", session=session)

    assert sink.put("dir/a.json", b"data") is True
    url, data, headers, _ = session.calls[0]
    assert url == "https://store.example/bucket/dir/a.json"
    assert data == b"data"
    assert headers["Content-Type"] == "application/octet-stream"
    assert no_sleep == []


def test_http_sink_retries_with_backoff(no_sleep):
    session = FakeSession([None, 503, 201])
    sink = HttpBlobSink("https://s", session=session, delay_seconds=0.5, backoff=3.0)

    assert sink.put("k", b"x") is True
    assert len(session.calls) == 3
    assert no_sleep == [0.5, 1.5]


def test_http_sink_gives_up_after_max_retries(no_sleep, caplog):
    session = FakeSession([500, 500])
    sink = HttpBlobSink("https://s", session=session, max_retries=2)

    assert sink.put("k", b"x") is False
    assert len(session.calls) == 2
    assert "after 2 attempts" in caplog.text
