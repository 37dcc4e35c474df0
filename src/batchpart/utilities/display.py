# utilities/display.py
"""Display formatting helpers shared by the reporter and CLI."""

from datetime import timedelta
from pathlib import Path
from typing import Optional, Union

__all__ = [
    "format_bytes",
    "format_duration",
    "format_rate",
    "truncate_path_to_fit",
    "format_banner",
]


def format_bytes(num_bytes: float) -> str:
    """Convert bytes to human-readable format.

    Examples:
        >>> format_bytes(1024)
        '1.00 KB'
        >>> format_bytes(1536000)
        '1.46 MB'
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(num_bytes) < 1024.0:
            return f"{num_bytes:.2f} {unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.2f} PB"


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as H:MM:SS; unknown durations render as '--'.

    Examples:
        >>> format_duration(3725.4)
        '1:02:05'
        >>> format_duration(None)
        '--'
    """
    if seconds is None:
        return "--"
    return str(timedelta(seconds=int(max(0.0, seconds))))


def format_rate(count: int, elapsed_seconds: float, unit: str = "items") -> str:
    """Format a processing rate per minute.

    Examples:
        >>> format_rate(600, 60.0, "files")
        '600.00 files/min'
    """
    if elapsed_seconds <= 0:
        return f"0.00 {unit}/min"
    return f"{count / (elapsed_seconds / 60.0):,.2f} {unit}/min"


def truncate_path_to_fit(
    path: Union[Path, str],
    prefix: str,
    total_width: int = 100,
) -> str:
    """Truncate path so that prefix + path fits within total_width.

    Examples:
        >>> truncate_path_to_fit("/very/long/path/to/file.db", "Very long prefix: ", 31)
        '...to/file.db'
    """
    path_str = str(path)
    max_path_length = total_width - len(prefix)

    if len(path_str) <= max_path_length:
        return path_str

    if max_path_length < 4:
        return "..."

    return "..." + path_str[-(max_path_length - 3):]


def format_banner(title: str, width: int = 100, style: str = "═") -> str:
    """Title line followed by a separator line."""
    return f"{title}\n{style * width}"
