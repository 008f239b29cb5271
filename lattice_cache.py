"""
Bounded caches for exact transform values and gcd labels.

Entries are only valid for one rule configuration, identified by a
Fingerprint. Binding a different fingerprint swaps in empty tables, so a
reader never sees a half-cleared table and stale entries can never be served.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

__all__ = ["BoundedTable", "Fingerprint", "LatticeCaches"]

T = TypeVar("T")

DEFAULT_MAX_ENTRIES = 100_000

_MISSING = object()


@dataclass(frozen=True)
class Fingerprint:
    """Everything that changes what a cached value means."""

    transform_text: str
    rule_text: str
    row_shift_amount: int
    randomize: bool
    rule_kind: str  # "default" or "custom"


class BoundedTable:
    """
    Least-recently-used mapping with a fixed capacity.

    Not thread-safe on its own; LatticeCaches serializes access.
    """

    def __init__(self, max_size: int):
        if max_size <= 0:
            raise ValueError(
                f"Invalid cache size: {max_size}\n"
                f"  Cache tables need room for at least one entry"
            )
        self.max_size = max_size
        self._data: OrderedDict[Hashable, object] = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def get(self, key: Hashable, default: object = None) -> object:
        if key not in self._data:
            return default
        self._data.move_to_end(key)
        return self._data[key]

    def put(self, key: Hashable, value: object) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        elif len(self._data) >= self.max_size:
            self._data.popitem(last=False)
        self._data[key] = value


class LatticeCaches:
    """
    The two shared tables used by a DirectionOracle:
    - "exact": coordinate value -> exact transform value (or DECLINED)
    - "gcd": (x, y) -> gcd label

    Usage:
        caches = LatticeCaches()
        caches.bind(fingerprint)
        value = caches.memoize(fingerprint, "gcd", (x, y), lambda: compute(x, y))
    """

    TABLE_NAMES = ("exact", "gcd")

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries <= 0:
            raise ValueError(
                f"Invalid max_entries: {max_entries}\n"
                f"  LatticeCaches needs a positive table capacity"
            )
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._fingerprint: Fingerprint | None = None
        self._tables = self._fresh_tables()

    def _fresh_tables(self) -> dict[str, BoundedTable]:
        return {name: BoundedTable(self.max_entries) for name in self.TABLE_NAMES}

    @property
    def fingerprint(self) -> Fingerprint | None:
        return self._fingerprint

    def bind(self, fingerprint: Fingerprint) -> bool:
        """
        Make fingerprint the current configuration.

        Returns:
            True if the tables were replaced, False if already bound to it
        """
        with self._lock:
            if fingerprint == self._fingerprint:
                return False
            if self._fingerprint is not None:
                logger.info("LatticeCaches: rule configuration changed, dropping cached values")
            self._fingerprint = fingerprint
            self._tables = self._fresh_tables()
            return True

    def size(self, table: str) -> int:
        with self._lock:
            return len(self._tables[table])

    def memoize(self, fingerprint: Fingerprint, table: str, key: Hashable, compute: Callable[[], T]) -> T:
        """
        Return the cached value for key, computing and storing it on a miss.

        A caller whose fingerprint is no longer current gets a computed value
        and nothing is stored.
        """
        with self._lock:
            if fingerprint != self._fingerprint:
                tables = None
            else:
                tables = self._tables
                hit = tables[table].get(key, _MISSING)
                if hit is not _MISSING:
                    return hit  # type: ignore[return-value]

        value = compute()
        if tables is None:
            return value

        with self._lock:
            # Tables may have been swapped while computing
            if tables is self._tables:
                tables[table].put(key, value)
        return value
