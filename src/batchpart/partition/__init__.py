"""Bin assignment and bin usage measurement."""

from .partitioner import PrefixPartitioner, EXTENSION_ID_ALPHABET, OVERFLOW_LABEL
from .bin_sizes import BinUsage, measure_bins, print_bin_usage

__all__ = [
    "PrefixPartitioner",
    "EXTENSION_ID_ALPHABET",
    "OVERFLOW_LABEL",
    "BinUsage",
    "measure_bins",
    "print_bin_usage",
]
