"""External collaborators: row sources and blob sinks."""

from .sinks import BlobSink, DirectoryBlobSink, HttpBlobSink
from .sources import CsvRowSource, find_csv

__all__ = [
    "BlobSink",
    "DirectoryBlobSink",
    "HttpBlobSink",
    "CsvRowSource",
    "find_csv",
]
