"""Tests for expr_eval module."""

import math

import pytest

from expr_builtins import NumberTheoryMemo
from expr_eval import DECLINED, Declined, evaluate_boolean, evaluate_exact, evaluate_numeric
from expr_parser import parse_boolean, parse_numeric


def num(text: str, x: float, y: float = 0.0) -> float:
    return evaluate_numeric(parse_numeric(text), x, y, NumberTheoryMemo())


def exact(text: str, x: int):
    return evaluate_exact(parse_numeric(text), x, NumberTheoryMemo())


def cond(text: str, x: float, y: float) -> bool:
    return evaluate_boolean(parse_boolean(text), x, y, NumberTheoryMemo())


class TestFloatEvaluator:
    """Tests for IEEE double evaluation."""

    def test_arithmetic(self) -> None:
        assert num("2x+1", 3) == 7.0
        assert num("2(x+1)", 3) == 8.0
        assert num("x(2)", 3) == 6.0
        assert num("2^3^2", 0) == 512.0
        assert num("-2^2", 0) == 4.0

    def test_division_by_zero_is_infinite(self) -> None:
        assert num("x/0", 5) == math.inf
        assert num("x%0", 5) == math.inf

    def test_truncated_remainder(self) -> None:
        assert num("x%3", -7) == -1.0

    def test_power_edges(self) -> None:
        assert num("10^400", 0) == math.inf
        assert num("(-10)^401", 0) == -math.inf
        assert num("0^-1", 0) == math.inf
        assert math.isnan(num("(-8)^(1/3)", 0))

    def test_builtin_calls(self) -> None:
        assert num("fib(n)", 20) == 6765.0
        assert num("fact(n)", 5) == 120.0


class TestBooleanEvaluator:
    """Tests for predicate evaluation."""

    def test_default_rule(self) -> None:
        assert cond("gcd(x,y)==1", 3, 4)
        assert not cond("gcd(x,y)==1", 4, 6)

    def test_logic(self) -> None:
        assert cond("x>1 && y>1", 2, 2)
        assert not cond("x>1 && y>1", 2, 0)
        assert cond("x>1 || y>1", 0, 2)
        assert cond("!(x>1)", 0, 0)
        assert cond("true", 0, 0)
        assert not cond("false || false", 0, 0)

    def test_nan_comparisons(self) -> None:
        """NaN is unequal to everything, including itself."""
        assert not cond("sqrt(-1)==sqrt(-1)", 0, 0)
        assert cond("sqrt(-1)!=sqrt(-1)", 0, 0)
        assert not cond("sqrt(-1)<1", 0, 0)


class TestExactEvaluator:
    """Tests for arbitrary-precision evaluation."""

    def test_declined_is_a_falsy_singleton(self) -> None:
        assert Declined() is DECLINED
        assert not DECLINED
        assert repr(DECLINED) == "DECLINED"

    def test_large_power(self) -> None:
        """2^40+1 is computed exactly."""
        assert exact("2^40+1", 0) == 2**40 + 1
        assert exact("n^5", 10**20) == 10**100

    def test_exact_division(self) -> None:
        assert exact("n/2", 4) == 2
        assert exact("n/2", 3) is DECLINED
        assert exact("n/0", 3) is DECLINED

    def test_fib_matches_float_path(self) -> None:
        """fib agrees on both paths for small arguments."""
        for n, expected in [(0, 0), (1, 1), (10, 55), (20, 6765)]:
            assert exact("fib(n)", n) == expected
            assert num("fib(n)", n) == float(expected)

    def test_fib_exceeding_double_range(self) -> None:
        """The exact path keeps going where doubles overflow."""
        value = exact("fib(n)", 2000)
        assert isinstance(value, int)
        assert value > 10**400

    @pytest.mark.parametrize(
        "text",
        ["n%2", "mod(n,2)", "1.5n", "n^-1", "n^5000", "pi*n", "sqrt(n)", "e", "fib(n/3)"],
    )
    def test_declines(self, text: str) -> None:
        """Anything outside the exact subset declines."""
        assert exact(text, 7) is DECLINED

    def test_fib_argument_bound(self) -> None:
        assert exact("fib(n)", 200_000) is DECLINED
