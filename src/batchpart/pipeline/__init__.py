"""
Resumable batch pipeline.

Key components:
    - enumerator: Candidate work items from a directory or row source
    - scheduler: Batches and rounds over the unprocessed items
    - worker / worker_pool: Per-item handlers and the bounded pool
    - aggregator: Serialized merge of outcomes into progress state
    - reporter: Rate, ETA and bin distribution display
    - core: Orchestration entry points
"""

from .config import PipelineConfig
from .core import RunSummary, run_pipeline, partition_directory, upload_directory, export_rows

__all__ = [
    "PipelineConfig",
    "RunSummary",
    "run_pipeline",
    "partition_directory",
    "upload_directory",
    "export_rows",
]
