"""
Resumable parallel batch processing.

Distributes a large set of independent work items (files or rows) across a
bounded worker pool and checkpoints progress so interrupted runs resume
without redoing completed work.

Main entry points:
    run_pipeline()        - Generic engine (enumerator + handler + store)
    partition_directory() - Copy files into prefix bins
    upload_directory()    - Push files to a blob sink
    export_rows()         - Write row-source records to a blob sink
"""

from batchpart.pipeline.core import (
    run_pipeline,
    partition_directory,
    upload_directory,
    export_rows,
)

__all__ = [
    "run_pipeline",
    "partition_directory",
    "upload_directory",
    "export_rows",
]

__version__ = "0.1.0"
