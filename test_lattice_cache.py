"""Tests for lattice_cache module."""

import pytest

from lattice import DirectionOracle
from lattice_cache import BoundedTable, Fingerprint, LatticeCaches
from lattice_types import ExplorerSettings, RowShift


def fingerprint(transform: str = "n", amount: int = 0) -> Fingerprint:
    return Fingerprint(transform, "gcd(x,y)==1", amount, False, "default")


class TestBoundedTable:
    """Tests for the LRU table."""

    def test_evicts_least_recently_used(self) -> None:
        table = BoundedTable(2)
        table.put("a", 1)
        table.put("b", 2)
        assert table.get("a") == 1
        table.put("c", 3)
        assert "a" in table
        assert "b" not in table
        assert "c" in table
        assert len(table) == 2

    def test_overwrite_keeps_size(self) -> None:
        table = BoundedTable(2)
        table.put("a", 1)
        table.put("a", 2)
        assert len(table) == 1
        assert table.get("a") == 2

    def test_missing_key_default(self) -> None:
        assert BoundedTable(1).get("nope", "default") == "default"

    @pytest.mark.parametrize("size", [0, -3])
    def test_invalid_size(self, size: int) -> None:
        with pytest.raises(ValueError, match="Invalid cache size"):
            BoundedTable(size)


class TestLatticeCaches:
    """Tests for fingerprint-bound caches."""

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError, match="Invalid max_entries"):
            LatticeCaches(0)

    def test_bind_reports_changes(self) -> None:
        caches = LatticeCaches()
        assert caches.bind(fingerprint())
        assert not caches.bind(fingerprint())
        assert caches.bind(fingerprint(amount=2))
        assert caches.fingerprint == fingerprint(amount=2)

    def test_memoize_computes_once(self) -> None:
        caches = LatticeCaches()
        fp = fingerprint()
        caches.bind(fp)
        calls: list[int] = []

        def compute() -> int:
            calls.append(1)
            return 42

        assert caches.memoize(fp, "gcd", (1, 2), compute) == 42
        assert caches.memoize(fp, "gcd", (1, 2), compute) == 42
        assert len(calls) == 1
        assert caches.size("gcd") == 1
        assert caches.size("exact") == 0

    def test_rebind_empties_both_tables(self) -> None:
        caches = LatticeCaches()
        fp = fingerprint()
        caches.bind(fp)
        caches.memoize(fp, "gcd", (1, 2), lambda: 1)
        caches.memoize(fp, "exact", 5, lambda: 5)
        caches.bind(fingerprint("fib(n)"))
        assert caches.size("gcd") == 0
        assert caches.size("exact") == 0

    def test_stale_fingerprint_is_not_stored(self) -> None:
        caches = LatticeCaches()
        old, new = fingerprint(), fingerprint("fib(n)")
        caches.bind(old)
        caches.bind(new)
        assert caches.memoize(old, "gcd", (1, 2), lambda: 7) == 7
        assert caches.size("gcd") == 0

    def test_capacity_bounds_tables(self) -> None:
        caches = LatticeCaches(max_entries=3)
        fp = fingerprint()
        caches.bind(fp)
        for i in range(10):
            caches.memoize(fp, "exact", i, lambda: 0)
        assert caches.size("exact") == 3


class TestOracleCaching:
    """Tests for DirectionOracle with shared caches."""

    def test_oracle_populates_caches(self) -> None:
        caches = LatticeCaches()
        oracle = DirectionOracle.from_settings(ExplorerSettings(), caches)
        assert caches.fingerprint == oracle.fingerprint
        oracle.gcd_at(4, 6)
        oracle.gcd_at(4, 6)
        assert caches.size("gcd") == 1
        assert caches.size("exact") == 2

    def test_new_settings_rebind(self) -> None:
        caches = LatticeCaches()
        first = DirectionOracle.from_settings(ExplorerSettings(), caches)
        first.direction(4, 6)
        assert caches.size("exact") > 0
        second = DirectionOracle.from_settings(ExplorerSettings(row_shift=RowShift(2)), caches)
        assert caches.fingerprint == second.fingerprint
        assert caches.size("exact") == 0

    def test_cached_answers_match_uncached(self) -> None:
        settings = ExplorerSettings(transform_text="fib(n)")
        cached = DirectionOracle.from_settings(settings, LatticeCaches())
        plain = DirectionOracle.from_settings(settings)
        for x in range(1, 10):
            for y in range(1, 10):
                assert cached.direction(x, y) is plain.direction(x, y)
                assert cached.gcd_at(x, y) == plain.gcd_at(x, y)
