"""
Tree-walking evaluators for parsed rule expressions.

evaluate_numeric / evaluate_boolean work in IEEE doubles: division or modulo
by zero gives +inf, overflow gives +-inf and domain errors give NaN.

evaluate_exact works on Python ints and returns DECLINED for anything it
cannot compute exactly. Declining is an expected outcome, not an error.
"""

from __future__ import annotations

import math

from expr_builtins import NumberTheoryMemo, call_builtin, truncated_mod
from expr_parser import (
    BinOp,
    BoolLit,
    BoolNode,
    Call,
    Compare,
    EvaluationFailure,
    Logic,
    Neg,
    Not,
    Num,
    NumNode,
    Var,
)

__all__ = ["DECLINED", "Declined", "evaluate_boolean", "evaluate_exact", "evaluate_numeric"]

EXACT_EXPONENT_LIMIT = 4096
EXACT_BIT_LIMIT = 1 << 20  # Largest power result the exact path will build
FIB_EXACT_LIMIT = 100_000


class Declined:
    """Marker returned when the exact evaluator cannot produce an integer."""

    _instance: Declined | None = None

    def __new__(cls) -> Declined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DECLINED"

    def __bool__(self) -> bool:
        return False


DECLINED = Declined()


# =============================================================================
# Floating evaluator
# =============================================================================


def _float_binop(op: str, a: float, b: float) -> float:
    match op:
        case "+":
            return a + b
        case "-":
            return a - b
        case "*":
            return a * b
        case "/":
            if b == 0:
                return math.inf
            return a / b
        case "%":
            return truncated_mod(a, b)
        case "^":
            try:
                return math.pow(a, b)
            except OverflowError:
                # |a| > 1 raised to a large power; odd integer powers keep the sign
                if a < 0 and b == math.floor(b) and int(b) % 2 == 1:
                    return -math.inf
                return math.inf
            except ValueError:
                if a == 0 and b < 0:
                    return math.inf
                return math.nan
        case _:
            raise EvaluationFailure(f"Unknown operator '{op}'")


def evaluate_numeric(node: NumNode, x: float, y: float, memo: NumberTheoryMemo) -> float:
    """Evaluate a numeric tree with variables bound to x and y."""
    match node:
        case Num(value=value):
            return value
        case Var(name="x"):
            return x
        case Var(name="y"):
            return y
        case Neg(operand=operand):
            return -evaluate_numeric(operand, x, y, memo)
        case BinOp(op=op, left=left, right=right):
            a = evaluate_numeric(left, x, y, memo)
            b = evaluate_numeric(right, x, y, memo)
            return _float_binop(op, a, b)
        case Call(name=name, args=args):
            values = [evaluate_numeric(arg, x, y, memo) for arg in args]
            return call_builtin(name, values, memo)
        case _:
            raise EvaluationFailure(f"Cannot evaluate {node!r} as a number")


def _compare(op: str, a: float, b: float) -> bool:
    match op:
        case "==":
            return a == b
        case "!=":
            return a != b
        case "<":
            return a < b
        case "<=":
            return a <= b
        case ">":
            return a > b
        case ">=":
            return a >= b
        case _:
            raise EvaluationFailure(f"Unknown comparison '{op}'")


def evaluate_boolean(node: BoolNode, x: float, y: float, memo: NumberTheoryMemo) -> bool:
    """Evaluate a boolean tree; && and || short-circuit."""
    match node:
        case BoolLit(value=value):
            return value
        case Not(operand=operand):
            return not evaluate_boolean(operand, x, y, memo)
        case Logic(op="&&", left=left, right=right):
            return evaluate_boolean(left, x, y, memo) and evaluate_boolean(right, x, y, memo)
        case Logic(op="||", left=left, right=right):
            return evaluate_boolean(left, x, y, memo) or evaluate_boolean(right, x, y, memo)
        case Compare(op=op, left=left, right=right):
            a = evaluate_numeric(left, x, y, memo)
            b = evaluate_numeric(right, x, y, memo)
            return _compare(op, a, b)
        case _:
            raise EvaluationFailure(f"Cannot evaluate {node!r} as a condition")


# =============================================================================
# Exact evaluator
# =============================================================================


def _exact_binop(op: str, a: int, b: int) -> int | Declined:
    match op:
        case "+":
            return a + b
        case "-":
            return a - b
        case "*":
            return a * b
        case "/":
            if b == 0 or a % b != 0:
                return DECLINED
            return a // b
        case "^":
            if b < 0 or b > EXACT_EXPONENT_LIMIT:
                return DECLINED
            if abs(a) > 1 and a.bit_length() * b > EXACT_BIT_LIMIT:
                return DECLINED
            return a**b
        case _:
            return DECLINED


def evaluate_exact(node: NumNode, x: int, memo: NumberTheoryMemo) -> int | Declined:
    """
    Evaluate a single-variable tree on Python ints.

    Supports integer literals, the coordinate variable, negation, + - *,
    exact division, ^ with a small non-negative exponent, and fib().
    Everything else returns DECLINED.
    """
    match node:
        case Num(exact=exact):
            return DECLINED if exact is None else exact
        case Var(name="x"):
            return x
        case Neg(operand=operand):
            value = evaluate_exact(operand, x, memo)
            return DECLINED if value is DECLINED else -value
        case BinOp(op=op, left=left, right=right):
            a = evaluate_exact(left, x, memo)
            if a is DECLINED:
                return DECLINED
            b = evaluate_exact(right, x, memo)
            if b is DECLINED:
                return DECLINED
            return _exact_binop(op, a, b)
        case Call(name="fib", args=(arg,)):
            value = evaluate_exact(arg, x, memo)
            if value is DECLINED or abs(value) > FIB_EXACT_LIMIT:
                return DECLINED
            return memo.fib(value)
        case _:
            return DECLINED
