"""
Named functions available inside rule expressions.

Float-side functions follow IEEE/JavaScript conventions: they return NaN or
an infinity instead of raising. Integer helpers (primality, factorization,
gcd) are exact on Python ints; primality, factoring and the prime tables
come from sympy.

Fibonacci, factorial and prime tables are memoized in a NumberTheoryMemo
owned by the compiled rule that uses them. Those tables are never evicted:
they are keyed by absolute argument and stay small for realistic inputs.
"""

from __future__ import annotations

import logging
import math
from typing import Callable

import sympy  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

__all__ = [
    "ARITY",
    "FUNCTION_NAMES",
    "NumberTheoryMemo",
    "call_builtin",
    "coprime_fallback",
    "greatest_prime_factor",
    "integer_gcd",
    "is_prime",
    "prime_factor_count",
    "prime_factors",
    "round_half_up",
    "smallest_prime_factor",
    "to_int",
    "truncated_mod",
]

# Largest n whose value still fits in a double
FIB_FLOAT_LIMIT = 1476
FACT_FLOAT_LIMIT = 170

# Table sizes beyond which prime() and pi() give up (NaN)
PRIME_INDEX_LIMIT = 1_000_000
PRIME_PI_LIMIT = 10_000_000

# Trial division bound handed to sympy.factorint
FACTOR_SEARCH_LIMIT = 1 << 16


# =============================================================================
# Rounding
# =============================================================================


def round_half_up(value: float | int) -> float | int:
    """
    Round half toward +infinity, returning an int for finite input.

    Ints pass through untouched and non-finite floats are returned as-is, so
    the result can always be fed back into an evaluator.
    """
    if isinstance(value, int):
        return value
    if not math.isfinite(value):
        return value
    return math.floor(value + 0.5)


def to_int(value: float | int) -> int | None:
    """Round to an int, or None when the value is NaN or infinite."""
    rounded = round_half_up(value)
    if isinstance(rounded, int):
        return rounded
    return None


# =============================================================================
# Integer number theory
# =============================================================================


def is_prime(n: int) -> bool:
    """Primality of n; negatives, 0 and 1 are not prime."""
    return n >= 2 and bool(sympy.isprime(n))


def _factorization(n: int) -> dict[int, int] | None:
    """
    {prime: exponent} for |n| >= 2, or None when a cofactor stays composite.

    Trial division stops at FACTOR_SEARCH_LIMIT, so the result is complete
    for every |n| below FACTOR_SEARCH_LIMIT ** 2 and for larger values whose
    remaining cofactor is prime.
    """
    factors = sympy.factorint(n, limit=FACTOR_SEARCH_LIMIT)
    composite = [int(p) for p in factors if not sympy.isprime(p)]
    if composite:
        logger.info("factorization gave up on a cofactor with %d digits", len(str(composite[0])))
        return None
    return {int(p): int(e) for p, e in factors.items()}


def prime_factors(n: int) -> list[int] | None:
    """
    Prime factors of |n| with multiplicity, ascending.

    Returns [] for 0 and +-1, and None when a cofactor resists factoring.
    """
    n = abs(n)
    if n <= 1:
        return []
    factors = _factorization(n)
    if factors is None:
        return None
    return [p for p in sorted(factors) for _ in range(factors[p])]


def smallest_prime_factor(n: int) -> int | None:
    """Smallest prime factor of |n|; 1 for 0 and +-1; None if factoring gave up."""
    factors = prime_factors(n)
    if factors is None:
        return None
    return factors[0] if factors else 1


def greatest_prime_factor(n: int) -> int | None:
    """Greatest prime factor of |n|; 1 for 0 and +-1; None if factoring gave up."""
    factors = prime_factors(n)
    if factors is None:
        return None
    return factors[-1] if factors else 1


def prime_factor_count(n: int) -> int:
    """Number of prime factors of |n| counted with multiplicity (0 if unknown)."""
    factors = prime_factors(n)
    return len(factors) if factors else 0


def integer_gcd(a: float | int, b: float | int) -> int:
    """gcd of the rounded values; NaN and infinities count as 0."""
    return math.gcd(to_int(a) or 0, to_int(b) or 0)


def coprime_fallback(x: float | int, y: float | int) -> bool:
    """The default move-east test used whenever a rule cannot be evaluated."""
    return integer_gcd(x, y) == 1


# =============================================================================
# Memo tables
# =============================================================================


class NumberTheoryMemo:
    """Fibonacci, factorial and prime tables shared by one compiled rule."""

    def __init__(self) -> None:
        self._fib: dict[int, int] = {}
        self._fact: dict[int, int] = {}
        self._nth_prime: dict[int, int] = {}
        self._prime_pi: dict[int, int] = {}

    def fib(self, n: int) -> int:
        """F(|n|) by iterative fast doubling over the bits of n."""
        n = abs(n)
        cached = self._fib.get(n)
        if cached is not None:
            return cached

        a, b = 0, 1  # F(k), F(k+1) for k = prefix of n's bits
        for bit in bin(n)[2:]:
            c = a * ((b << 1) - a)
            d = a * a + b * b
            if bit == "1":
                a, b = d, c + d
            else:
                a, b = c, d

        self._fib[n] = a
        return a

    def fact(self, n: int) -> int:
        """|n|! as an exact product."""
        n = abs(n)
        cached = self._fact.get(n)
        if cached is None:
            cached = math.factorial(n)
            self._fact[n] = cached
        return cached

    def nth_prime(self, n: int) -> int:
        """The n-th prime, 1-based (nth_prime(1) == 2). n must be >= 1."""
        cached = self._nth_prime.get(n)
        if cached is None:
            cached = int(sympy.prime(n))
            self._nth_prime[n] = cached
        return cached

    def prime_pi(self, n: int) -> int:
        """Number of primes <= n."""
        if n < 2:
            return 0
        cached = self._prime_pi.get(n)
        if cached is None:
            cached = int(sympy.primepi(n))
            self._prime_pi[n] = cached
        return cached



# =============================================================================
# Float-side built-ins
# =============================================================================


def _ieee(fn: Callable[[float], float]) -> Callable[[NumberTheoryMemo, float], float]:
    """Adapt a math function so domain errors give NaN and overflow gives inf."""

    def wrapped(memo: NumberTheoryMemo, value: float) -> float:
        try:
            return fn(value)
        except OverflowError:
            return math.inf
        except ValueError:
            return math.nan

    return wrapped


def _integral(fn: Callable[[float], int]) -> Callable[[NumberTheoryMemo, float], float]:
    """floor/ceil/round variant that passes non-finite input through."""

    def wrapped(memo: NumberTheoryMemo, value: float) -> float:
        if not math.isfinite(value):
            return value
        return float(fn(value))

    return wrapped


def _log(memo: NumberTheoryMemo, value: float) -> float:
    if value == 0:
        return -math.inf
    if value < 0 or math.isnan(value):
        return math.nan
    return math.log(value)


def _sign(memo: NumberTheoryMemo, value: float) -> float:
    if math.isnan(value):
        return math.nan
    if value > 0:
        return 1.0
    if value < 0:
        return -1.0
    return 0.0


def _fib(memo: NumberTheoryMemo, value: float) -> float:
    if not math.isfinite(value):
        return math.inf
    n = math.floor(abs(value))
    if n > FIB_FLOAT_LIMIT:
        return math.inf
    return float(memo.fib(n))


def _fact(memo: NumberTheoryMemo, value: float) -> float:
    if not math.isfinite(value):
        return math.inf
    n = math.floor(abs(value))
    if n > FACT_FLOAT_LIMIT:
        return math.inf
    return float(memo.fact(n))


def _prime(memo: NumberTheoryMemo, value: float) -> float:
    if not math.isfinite(value):
        return math.nan
    n = math.floor(value)
    if n < 1 or n > PRIME_INDEX_LIMIT:
        return math.nan
    return float(memo.nth_prime(n))


def _prime_pi(memo: NumberTheoryMemo, value: float) -> float:
    if not math.isfinite(value):
        return math.nan
    n = math.floor(value)
    if n > PRIME_PI_LIMIT:
        return math.nan
    return float(memo.prime_pi(n))


def _isprime(memo: NumberTheoryMemo, value: float) -> float:
    n = to_int(value)
    return 1.0 if n is not None and is_prime(abs(n)) else 0.0


def _gcd(memo: NumberTheoryMemo, a: float, b: float) -> float:
    return float(integer_gcd(a, b))


def _factor_fn(fn: Callable[[int], int | None]) -> Callable[[NumberTheoryMemo, float], float]:
    def wrapped(memo: NumberTheoryMemo, value: float) -> float:
        n = to_int(value)
        if n is None:
            return math.nan
        result = fn(n)
        return math.nan if result is None else float(result)

    return wrapped


def _mod(memo: NumberTheoryMemo, a: float, b: float) -> float:
    return truncated_mod(a, b)


def truncated_mod(a: float, b: float) -> float:
    """Remainder with the sign of the dividend; a zero divisor gives +inf."""
    if b == 0:
        return math.inf
    try:
        return math.fmod(a, b)
    except ValueError:
        return math.nan


BuiltinFn = Callable[..., float]

# name -> (arity, implementation taking the memo first)
_BUILTINS: dict[str, tuple[int, BuiltinFn]] = {
    "sin": (1, _ieee(math.sin)),
    "cos": (1, _ieee(math.cos)),
    "tan": (1, _ieee(math.tan)),
    "log": (1, _log),
    "sqrt": (1, _ieee(math.sqrt)),
    "abs": (1, _ieee(abs)),
    "floor": (1, _integral(math.floor)),
    "ceil": (1, _integral(math.ceil)),
    "round": (1, _integral(lambda v: math.floor(v + 0.5))),
    "exp": (1, _ieee(math.exp)),
    "sign": (1, _sign),
    "fib": (1, _fib),
    "fact": (1, _fact),
    "prime": (1, _prime),
    "pi": (1, _prime_pi),
    "isprime": (1, _isprime),
    "gcd": (2, _gcd),
    "spf": (1, _factor_fn(smallest_prime_factor)),
    "lpf": (1, _factor_fn(smallest_prime_factor)),
    "gpf": (1, _factor_fn(greatest_prime_factor)),
    "mod": (2, _mod),
}

ARITY: dict[str, int] = {name: arity for name, (arity, _) in _BUILTINS.items()}
FUNCTION_NAMES = frozenset(ARITY)


def call_builtin(name: str, args: list[float], memo: NumberTheoryMemo) -> float:
    """Apply a validated built-in to already-evaluated float arguments."""
    _, fn = _BUILTINS[name]
    return fn(memo, *args)
