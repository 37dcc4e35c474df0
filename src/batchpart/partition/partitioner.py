# partition/partitioner.py
"""Deterministic prefix binning of item ids."""

from __future__ import annotations

import itertools
import logging
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)

__all__ = ["PrefixPartitioner", "EXTENSION_ID_ALPHABET", "OVERFLOW_LABEL"]

# Characters used in Chrome extension ids
EXTENSION_ID_ALPHABET = "abcdefghijklmnop"

OVERFLOW_LABEL = "_other"


class PrefixPartitioner:
    """
    Map an item id to a bin label taken from its first characters.

    Labels are restricted to combinations of ``alphabet``; ids whose prefix
    falls outside it (or that are too short) go to ``OVERFLOW_LABEL``.
    The mapping is pure, so re-runs place an id in the same bin no matter
    how work was batched.

    Examples:
        >>> p = PrefixPartitioner(prefix_length=2)
        >>> p.bin("aapdbjkdaocdkknhfjcbplbnpbobgfhk")
        'aa'
        >>> p.bin("Zebra")
        '_other'
    """

    def __init__(
        self,
        prefix_length: int = 2,
        alphabet: str = EXTENSION_ID_ALPHABET,
    ):
        if prefix_length < 1:
            raise ValueError(f"prefix_length must be >= 1, got {prefix_length}")
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        self.prefix_length = prefix_length
        self.alphabet = "".join(sorted(set(alphabet.lower())))
        self._allowed = frozenset(self.alphabet)

    def __repr__(self) -> str:
        return (
            f"PrefixPartitioner(prefix_length={self.prefix_length}, "
            f"alphabet={self.alphabet!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PrefixPartitioner):
            return NotImplemented
        return (self.prefix_length, self.alphabet) == (other.prefix_length, other.alphabet)

    def __hash__(self) -> int:
        return hash((self.prefix_length, self.alphabet))

    def bin(self, item_id: str) -> str:
        prefix = item_id[: self.prefix_length].lower()
        if len(prefix) < self.prefix_length or not set(prefix) <= self._allowed:
            return OVERFLOW_LABEL
        return prefix

    def labels(self) -> List[str]:
        """All possible labels, alphabet combinations first."""
        combos = (
            "".join(chars)
            for chars in itertools.product(self.alphabet, repeat=self.prefix_length)
        )
        return [*combos, OVERFLOW_LABEL]

    def materialize(self, target_dir: Union[str, Path]) -> int:
        """
        Create a directory for every label under target_dir.

        All bins exist before any worker starts, so writers never race on
        directory creation. Returns the number of directories created.
        """
        base = Path(target_dir)
        base.mkdir(parents=True, exist_ok=True)

        created = 0
        for label in self.labels():
            bin_path = base / label
            if not bin_path.exists():
                bin_path.mkdir()
                created += 1

        logger.info("Created %d bin directories under %s", created, base)
        return created
