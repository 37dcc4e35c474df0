# utilities/__init__.py
"""Common display utilities."""

from .display import (
    format_bytes,
    format_duration,
    format_rate,
    truncate_path_to_fit,
    format_banner,
)

__all__ = [
    "format_bytes",
    "format_duration",
    "format_rate",
    "truncate_path_to_fit",
    "format_banner",
]
