"""
The implicit lattice: every integer point has exactly one outgoing edge,
north or east, decided by a compiled transform and move-east rule.

Provides:
- row_shift_offset: per-row x offset
- DirectionOracle / direction_of: the edge at a point
- traverse_forward / trace_forward: follow edges from a start point
"""

from __future__ import annotations

import logging
import math
from typing import Iterator

from expr_builtins import integer_gcd, is_prime, round_half_up
from expr_eval import DECLINED, Declined
from lattice_cache import Fingerprint, LatticeCaches
from lattice_types import Direction, ExplorerSettings, Path, Point, RowShift, TerminationReason
from rule_compiler import CompiledPredicate, CompiledTransform, compile_predicate, compile_transform

logger = logging.getLogger(__name__)

__all__ = [
    "DirectionOracle",
    "TraceResult",
    "direction_of",
    "row_shift_offset",
    "trace_forward",
    "traverse_forward",
]

# Exceptions a duck-typed predicate may raise before the coprimality fallback applies
_PREDICATE_ERRORS = (ArithmeticError, ValueError, RecursionError)


# =============================================================================
# Row shift
# =============================================================================


def row_shift_offset(gy: int, k: int, randomize: bool = False) -> int:
    """
    Signed x offset applied to row gy for shift amount k.

    Rows with |gy| <= |k| (other than row 0) are shifted; the offset points
    away from row 0 for positive k and toward it for negative k. With
    randomize, the magnitude is a deterministic pseudo-random value in
    [0, |k|) per row.
    """
    if k == 0 or gy == 0 or abs(gy) > abs(k):
        return 0

    sign = (1 if k > 0 else -1) * (1 if gy > 0 else -1)
    if not randomize:
        return sign * abs(k)

    seed = gy * 374761393 + abs(k) * 668265263 + (1013904223 if k < 0 else 0)
    noise = abs(math.sin(seed) * 10000)
    fraction = noise - math.floor(noise)
    return sign * math.floor(fraction * abs(k))


# =============================================================================
# Direction oracle
# =============================================================================


class DirectionOracle:
    """
    Decides the outgoing edge at any point.

    Three tiers, first applicable wins:
    1. Exact: default rule and exact transform values -> N iff gcd != 1
    2. Rule: predicate on half-up rounded float transform values -> N iff false
    3. Fallback: predicate raised -> N iff the rounded values share a factor

    Usage:
        oracle = DirectionOracle.from_settings(ExplorerSettings(transform_text="fib(n)"))
        oracle.direction(3, 4)  # Direction.N or Direction.E
    """

    def __init__(
        self,
        transform: CompiledTransform,
        predicate: CompiledPredicate,
        row_shift: RowShift = RowShift(),
        caches: LatticeCaches | None = None,
    ):
        self.transform = transform
        self.predicate = predicate
        self.row_shift = row_shift
        self.caches = caches
        self.fingerprint = Fingerprint(
            transform_text=transform.source,
            rule_text=predicate.source,
            row_shift_amount=row_shift.amount,
            randomize=row_shift.randomize,
            rule_kind="default" if predicate.is_default_rule else "custom",
        )
        if caches is not None:
            caches.bind(self.fingerprint)

    @classmethod
    def from_settings(cls, settings: ExplorerSettings, caches: LatticeCaches | None = None) -> DirectionOracle:
        """Compile the settings' rule text and build an oracle for it."""
        return cls(
            compile_transform(settings.transform_text),
            compile_predicate(settings.rule_text),
            settings.row_shift,
            caches,
        )

    @property
    def is_jump_eligible(self) -> bool:
        """True when east runs on prime rows can be skipped arithmetically."""
        return self.transform.is_identity and self.predicate.is_default_rule

    def effective_x(self, x: int, y: int) -> int:
        return x - row_shift_offset(y, self.row_shift.amount, self.row_shift.randomize)

    def _exact_value(self, value: int) -> int | Declined:
        if self.caches is None:
            return self.transform.exact_evaluate(value)
        return self.caches.memoize(
            self.fingerprint, "exact", value, lambda: self.transform.exact_evaluate(value)
        )

    def _exact_gcd(self, ex: int, y: int) -> int | None:
        """gcd of the exact transform values, or None if either declined."""
        tx = self._exact_value(ex)
        if tx is DECLINED:
            return None
        ty = self._exact_value(y)
        if ty is DECLINED:
            return None
        return math.gcd(tx, ty)

    def direction(self, x: int, y: int) -> Direction:
        ex = self.effective_x(x, y)

        if self.predicate.is_default_rule:
            g = self._exact_gcd(ex, y)
            if g is not None:
                return Direction.N if g != 1 else Direction.E

        vx = round_half_up(self.transform.evaluate(ex))
        vy = round_half_up(self.transform.evaluate(y))
        try:
            moves_east = self.predicate.evaluate(vx, vy)
        except _PREDICATE_ERRORS as e:
            logger.debug("rule raised at (%d, %d), using coprimality: %s", x, y, e)
            moves_east = integer_gcd(vx, vy) == 1
        return Direction.E if moves_east else Direction.N

    def goes_north(self, x: int, y: int) -> bool:
        return self.direction(x, y) is Direction.N

    def gcd_at(self, x: int, y: int) -> int:
        """
        gcd of the transformed coordinates at (x, y), used to label nodes.

        Exact when the exact tier applies; otherwise the gcd of the rounded
        float values (non-finite values count as 0).
        """
        ex = self.effective_x(x, y)

        def compute() -> int:
            if self.predicate.is_default_rule:
                g = self._exact_gcd(ex, y)
                if g is not None:
                    return g
            return integer_gcd(self.transform.evaluate(ex), self.transform.evaluate(y))

        if self.caches is None:
            return compute()
        return self.caches.memoize(self.fingerprint, "gcd", (x, y), compute)


def direction_of(
    x: int,
    y: int,
    transform: CompiledTransform,
    predicate: CompiledPredicate,
    row_shift: RowShift = RowShift(),
) -> Direction:
    """The outgoing edge at (x, y) for the given rules, without caching."""
    return DirectionOracle(transform, predicate, row_shift).direction(x, y)


# =============================================================================
# Forward tracing
# =============================================================================


class TraceResult:
    """
    Iterator wrapper for traverse_forward() that tracks why tracing stopped.

    Usage:
        result = traverse_forward(Point(1, 1), 100, oracle)
        for point in result:
            print(point)
        print(result.termination_reason)
        print(result.steps_taken)
    """

    def __init__(self) -> None:
        self._iterator: Iterator[Point] = iter(())
        self.termination_reason: TerminationReason | None = None
        self.steps_taken = 0

    def __iter__(self) -> Iterator[Point]:
        return self

    def __next__(self) -> Point:
        return next(self._iterator)


def _outside(point: Point, cap: int | None) -> bool:
    return cap is not None and (abs(point.x) > cap or abs(point.y) > cap)


def traverse_forward(
    start: Point,
    step_budget: int,
    oracle: DirectionOracle,
    coordinate_cap: int | None = None,
    target: Point | None = None,
) -> TraceResult:
    """
    Follow outgoing edges from start, yielding start and every landed point.

    A north move or a unit east move costs one step. In the jump-eligible
    configuration an east move on a row with prime |y| = p skips directly to
    the next column whose effective x is divisible by p, costing the jump
    length (capped by the remaining budget, and never past target on the
    target's row).

    Args:
        start: First point of the trace
        step_budget: Maximum total cost; values below 1 count as 1
        oracle: Edge oracle for the current rules
        coordinate_cap: Stop before landing on a point with |x| or |y| above it
        target: Stop after landing on this point

    Returns:
        TraceResult iterator with termination_reason and steps_taken
    """
    result = TraceResult()

    def generator() -> Iterator[Point]:
        budget = max(1, step_budget)
        jump_eligible = oracle.is_jump_eligible
        prime_row: tuple[int, bool] | None = None  # (y, |y| is prime)
        current = start

        yield current
        if current == target:
            result.termination_reason = TerminationReason.TARGET_REACHED
            return

        while result.steps_taken < budget:
            x, y = current.x, current.y
            if oracle.goes_north(x, y):
                nxt = Point(x, y + 1)
                cost = 1
            else:
                stride = 1
                if jump_eligible:
                    if prime_row is None or prime_row[0] != y:
                        prime_row = (y, abs(y) > 1 and is_prime(abs(y)))
                    if prime_row[1]:
                        p = abs(y)
                        stride = p - oracle.effective_x(x, y) % p
                        stride = min(stride, budget - result.steps_taken)
                        if target is not None and target.y == y and x < target.x < x + stride:
                            stride = target.x - x
                nxt = Point(x + stride, y)
                cost = stride

            if _outside(nxt, coordinate_cap):
                result.termination_reason = TerminationReason.COORDINATE_CAP
                return

            current = nxt
            result.steps_taken += cost
            yield current
            if current == target:
                result.termination_reason = TerminationReason.TARGET_REACHED
                return

        result.termination_reason = TerminationReason.BUDGET_EXHAUSTED

    result._iterator = generator()
    return result


def trace_forward(
    start: Point,
    step_budget: int,
    oracle: DirectionOracle,
    *,
    coordinate_cap: int | None = None,
    target: Point | None = None,
) -> Path:
    """List of points visited by traverse_forward(); index 0 is start."""
    return list(traverse_forward(start, step_budget, oracle, coordinate_cap, target))
