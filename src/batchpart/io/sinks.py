# io/sinks.py
"""Blob sinks: durable key -> bytes stores."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path, PurePosixPath
from typing import Optional, Union

import requests

logger = logging.getLogger(__name__)

__all__ = ["BlobSink", "DirectoryBlobSink", "HttpBlobSink"]


class BlobSink:
    """
    Interface for blob storage collaborators.

    ``put`` must be safe to call repeatedly with the same key and equivalent
    data (overwrite-idempotent) and reports success as a bool.
    """

    def put(self, key: str, data: bytes) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


def _safe_key(key: str) -> PurePosixPath:
    path = PurePosixPath(key)
    if not key or path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Invalid blob key: {key!r}")
    return path


class DirectoryBlobSink(BlobSink):
    """Store blobs as files under a root directory (key = relative path)."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"DirectoryBlobSink({str(self.root)!r})"

    def path_for(self, key: str) -> Path:
        return self.root.joinpath(*_safe_key(key).parts)

    def put(self, key: str, data: bytes) -> bool:
        dest = self.path_for(key)
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, dest)
        except OSError:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        return True


class HttpBlobSink(BlobSink):
    """
    PUT blobs to ``{base_url}/{key}`` with retries on transient failures.

    Works against any object store that accepts plain HTTP PUT (signed
    bucket URLs, WebDAV, test servers).
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        max_retries: int = 3,
        delay_seconds: float = 1.0,
        backoff: float = 2.0,
        timeout: float = 60.0,
        content_type: str = "application/octet-stream",
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.max_retries = max_retries
        self.delay_seconds = delay_seconds
        self.backoff = backoff
        self.timeout = timeout
        self.content_type = content_type

    def __repr__(self) -> str:
        return f"HttpBlobSink({self.base_url!r})"

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{_safe_key(key)}"

    def put(self, key: str, data: bytes) -> bool:
        url = self.url_for(key)
        if self.session is None:
            self.session = requests.Session()
        delay = self.delay_seconds

        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self.session.put(
                    url,
                    data=data,
                    headers={"Content-Type": self.content_type},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                return True
            except requests.RequestException as exc:
                if attempt == self.max_retries:
                    logger.error("Failed to upload %s after %d attempts: %s",
                                 url, self.max_retries, exc)
                    return False
                logger.warning("Upload of %s failed (%s); retrying in %.1fs...",
                               key, exc, delay)
                time.sleep(delay)
                delay *= self.backoff
        return False
