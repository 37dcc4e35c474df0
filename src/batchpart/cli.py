#!/usr/bin/env python3
"""
Command-line entry point.

Examples:
  batchpart partition ./extension-dir ./partitioned_extensions
  batchpart partition ./extension-dir ./out --workers 8 --batch-size 200
  batchpart upload ./extension-dir --dest ./mirror --checkpoint ./upload-progress.json
  batchpart upload ./extension-dir --url https://storage.example.com/bucket
  batchpart export-rows ./data ./extension-dir

Re-running the same command after an interruption resumes from the
checkpoint. Exit status is 1 only when the source cannot be read at all.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from batchpart.errors import SourceUnavailableError
from batchpart.io.sinks import DirectoryBlobSink, HttpBlobSink
from batchpart.io.sources import CsvRowSource, find_csv
from batchpart.pipeline.config import DEFAULT_BATCH_SIZE, PipelineConfig
from batchpart.pipeline.core import export_rows, partition_directory, upload_directory
from batchpart.pipeline.logger import setup_logger

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STARTUP_FATAL = 1


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--checkpoint", type=Path, default=None,
                   help="Checkpoint file (default: <destination>/partition_progress.json, "
                        "./upload-progress.json for uploads)")
    p.add_argument("--workers", type=int, default=None,
                   help="Concurrent workers (default: CPUs - 1)")
    p.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE,
                   help=f"Items per worker per round (default: {DEFAULT_BATCH_SIZE})")
    p.add_argument("--threads", action="store_true",
                   help="Use threads instead of processes")
    p.add_argument("--prefix-length", type=int, default=2,
                   help="Characters of the id used as bin label (default: 2)")
    p.add_argument("--progress-every", type=float, default=5.0,
                   help="Seconds between status lines (default: 5)")
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    p.add_argument("--log-dir", type=Path, default=None,
                   help="Write a timestamped log file here")
    p.add_argument("-v", "--verbose", action="store_true", help="Log to the console too")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="batchpart",
        description="Resumable parallel partitioning and upload of work items",
    )
    sub = p.add_subparsers(dest="command", required=True)

    part = sub.add_parser("partition", help="Copy files into prefix bins")
    part.add_argument("source_dir", type=Path)
    part.add_argument("target_dir", type=Path)
    part.add_argument("--suffix", default=".json", help="File extension to include")
    part.add_argument("--skip-bin-sizes", action="store_true",
                      help="Do not measure bin sizes after partitioning")
    _add_common(part)

    up = sub.add_parser("upload", help="Upload files to a blob sink")
    up.add_argument("source_dir", type=Path)
    dest = up.add_mutually_exclusive_group(required=True)
    dest.add_argument("--dest", type=Path, help="Directory sink root")
    dest.add_argument("--url", help="Base URL accepting HTTP PUT")
    up.add_argument("--suffix", default=None, help="Only upload files with this extension")
    _add_common(up)

    rows = sub.add_parser("export-rows", help="Write CSV rows as <id>.json blobs")
    rows.add_argument("data", type=Path, help="CSV file, or directory holding one")
    rows.add_argument("output_dir", type=Path)
    rows.add_argument("--id-field", default="id")
    _add_common(rows)

    return p.parse_args(argv)


def _config(args: argparse.Namespace, **overrides) -> PipelineConfig:
    values = dict(
        checkpoint_path=args.checkpoint,
        batch_size=args.batch_size,
        num_workers=args.workers,
        use_threads=args.threads,
        prefix_length=args.prefix_length,
        progress_every_s=args.progress_every,
        show_progress=not args.no_progress,
    )
    values.update(overrides)
    return PipelineConfig(**values)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.log_dir is not None:
        setup_logger(args.log_dir, console=args.verbose)
    elif args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        )

    try:
        if args.command == "partition":
            config = _config(
                args,
                source_dir=args.source_dir,
                target_dir=args.target_dir,
                file_suffix=args.suffix,
                measure_bins=not args.skip_bin_sizes,
            )
            summary = partition_directory(config)

        elif args.command == "upload":
            if args.url:
                sink = HttpBlobSink(args.url)
                target = None
            else:
                sink = DirectoryBlobSink(args.dest)
                target = args.dest
            config = _config(
                args,
                checkpoint_path=args.checkpoint or Path("upload-progress.json"),
                source_dir=args.source_dir,
                target_dir=target,
                file_suffix=args.suffix,
                recursive=True,
                id_mode="relative",
            )
            summary = upload_directory(config, sink)

        else:
            csv_path = find_csv(args.data) if args.data.is_dir() else args.data
            config = _config(args, source_dir=csv_path, target_dir=args.output_dir)
            summary = export_rows(
                config,
                CsvRowSource(csv_path),
                DirectoryBlobSink(args.output_dir),
                id_field=args.id_field,
            )

    except SourceUnavailableError as exc:
        logger.error("Startup failed: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_STARTUP_FATAL
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    if summary.failed:
        print(f"{summary.failed} items failed; re-run to retry them.")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
