"""Run log for the coordinator and its worker processes."""
from __future__ import annotations

import logging
import multiprocessing as mp
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

__all__ = ["setup_logger", "get_log_file_path", "worker_logger"]

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(processName)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries whose DEBUG/INFO chatter drowns the per-round status lines
_NOISY_LOGGERS = ("urllib3",)


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def _log_dir_for(path: Union[str, Path]) -> Path:
    """A directory is used as is; a file path (e.g. a checkpoint) means its parent."""
    p = Path(path).expanduser().resolve()
    return p if p.is_dir() or not p.suffix else p.parent


def _file_handler(
        log_path: Union[str, Path],
        *,
        mode: str = "w",
        rotate: bool = False,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 3,
) -> logging.FileHandler:
    if rotate:
        handler = RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    else:
        handler = logging.FileHandler(log_path, mode=mode, encoding="utf-8")
    handler.setFormatter(_formatter())
    return handler


def setup_logger(
        log_dir: Union[str, Path],
        *,
        level: int = logging.INFO,
        filename_prefix: str = "batchpart",
        console: bool = False,
        rotate: bool = False,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 3,
        force: bool = False,
) -> Path:
    """
    Send the run log to ``<log_dir>/<prefix>_<timestamp>.log``.

    The file is what worker processes append to (see ``worker_logger``), so
    one run produces one log regardless of how many processes took part.

    Args:
        log_dir: Directory for the log, or a file (checkpoint) beside which it goes
        level: Logging level (default: INFO)
        filename_prefix: Prefix for log filename
        console: Also echo records to stderr
        rotate: Use RotatingFileHandler instead of FileHandler
        max_bytes: Size at which a rotating log rolls over
        backup_count: Rolled-over files to keep
        force: Drop (and close) handlers already on the root logger

    Returns:
        Path to the created log file
    """
    directory = _log_dir_for(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / f"{filename_prefix}_{datetime.now():%Y%m%d_%H%M%S}.log"

    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)

    file_handler = _file_handler(
        log_path, rotate=rotate, max_bytes=max_bytes, backup_count=backup_count
    )
    file_handler.setLevel(level)
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(_formatter())
        root.addHandler(console_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root.info("Logging initialized: %s", log_path)
    return log_path


def get_log_file_path() -> Optional[str]:
    """Return the file the root logger writes to, if any."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.FileHandler):
            return handler.baseFilename
    return None


def worker_logger(log_file_path: Optional[str], name: str = "batchpart.worker") -> logging.Logger:
    """
    Logger for code running inside a batch worker.

    Records reach the root handlers whenever the root logger already writes
    the run log: in the coordinator (thread workers included) and in forked
    workers, which inherit its handlers. A spawned worker starts without
    handlers and gets a process-local one appending to ``log_file_path``.
    """
    if (
        not log_file_path
        or mp.parent_process() is None
        or get_log_file_path() == os.path.abspath(log_file_path)
    ):
        return logging.getLogger(name)

    log = logging.getLogger(f"{name}.{os.getpid()}")
    if not log.handlers:
        try:
            log.addHandler(_file_handler(log_file_path, mode="a"))
        except OSError as exc:
            logging.getLogger(name).warning(
                "PID %s: could not open log file %s: %s", os.getpid(), log_file_path, exc
            )
            return logging.getLogger(name)
        log.setLevel(logging.INFO)
        log.propagate = False
    return log
