"""
Compile rule text into immutable evaluators.

compile_transform / compile_predicate never raise: text that fails to
compile produces a fallback evaluator together with an error message that the
caller may show to the user.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from expr_builtins import NumberTheoryMemo, coprime_fallback
from expr_eval import DECLINED, Declined, evaluate_boolean, evaluate_exact, evaluate_numeric
from expr_parser import (
    BoolNode,
    ExpressionError,
    NumNode,
    Var,
    parse_boolean,
    parse_numeric,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CompiledPredicate",
    "CompiledTransform",
    "DEFAULT_RULE_TEXT",
    "IDENTITY_TRANSFORM_TEXT",
    "compile_predicate",
    "compile_transform",
    "describe_error",
]

DEFAULT_RULE_TEXT = "gcd(x,y)==1"
IDENTITY_TRANSFORM_TEXT = "n"

# Anything a tree-walk can raise on hostile input
_EVALUATION_ERRORS = (ExpressionError, ArithmeticError, ValueError, RecursionError)


def describe_error(exc: BaseException) -> str:
    """User-facing one-line description of a compile failure."""
    if isinstance(exc, RecursionError):
        return "ParseError: Expression is nested too deeply"
    return f"{type(exc).__name__}: {exc}"


@dataclass(frozen=True)
class CompiledTransform:
    """
    A coordinate transform f(n).

    Attributes:
        source: The text that was compiled (identity text when blank)
        tree: Parsed expression; Var("x") for the identity or a failed compile
        error: Empty when compilation succeeded
    """

    source: str
    tree: NumNode
    error: str = ""
    memo: NumberTheoryMemo = field(default_factory=NumberTheoryMemo, compare=False, repr=False)

    @property
    def is_identity(self) -> bool:
        return isinstance(self.tree, Var)

    def evaluate(self, value: int | float) -> int | float:
        """Float-valued f(value); returns value itself on failure or NaN."""
        try:
            result = evaluate_numeric(self.tree, float(value), float(value), self.memo)
        except _EVALUATION_ERRORS as e:
            logger.debug("transform %r failed at %r: %s", self.source, value, e)
            return value
        if math.isnan(result):
            return value
        return result

    def exact_evaluate(self, value: int) -> int | Declined:
        """Integer f(value), or DECLINED when it cannot be computed exactly."""
        try:
            return evaluate_exact(self.tree, value, self.memo)
        except _EVALUATION_ERRORS as e:
            logger.debug("exact transform %r failed at %r: %s", self.source, value, e)
            return DECLINED


@dataclass(frozen=True)
class CompiledPredicate:
    """
    A move-east rule P(x, y).

    A false result sends the path north. When the rule cannot be evaluated the
    answer falls back to gcd(x, y) == 1 on the rounded inputs.
    """

    source: str
    tree: BoolNode | None
    error: str = ""
    is_default_rule: bool = False
    memo: NumberTheoryMemo = field(default_factory=NumberTheoryMemo, compare=False, repr=False)

    def evaluate(self, x: int | float, y: int | float) -> bool:
        if self.tree is None:
            return coprime_fallback(x, y)
        try:
            return evaluate_boolean(self.tree, float(x), float(y), self.memo)
        except _EVALUATION_ERRORS as e:
            logger.debug("rule %r failed at (%r, %r): %s", self.source, x, y, e)
            return coprime_fallback(x, y)


def compile_transform(text: str) -> CompiledTransform:
    """
    Compile a transform such as "fib(n)" or "2x+1".

    Blank text compiles to the identity. Invalid text also behaves as the
    identity, with the reason in .error.
    """
    source = text.strip() or IDENTITY_TRANSFORM_TEXT
    try:
        tree = parse_numeric(source)
    except (ExpressionError, RecursionError) as e:
        message = describe_error(e)
        logger.info("compile_transform: %r rejected: %s", text, message)
        return CompiledTransform(source, Var("x"), error=message)
    return CompiledTransform(source, tree)


def compile_predicate(text: str) -> CompiledPredicate:
    """
    Compile a rule such as "gcd(x,y)==1 && x>0".

    Blank text compiles to the default coprimality rule. Only the exact
    canonical text "gcd(x,y)==1" (ignoring surrounding whitespace) counts as
    the default rule for the exact arithmetic tier.
    """
    source = text.strip() or DEFAULT_RULE_TEXT
    is_default = source == DEFAULT_RULE_TEXT
    try:
        tree = parse_boolean(source)
    except (ExpressionError, RecursionError) as e:
        message = describe_error(e)
        logger.info("compile_predicate: %r rejected: %s", text, message)
        return CompiledPredicate(source, None, error=message, is_default_rule=is_default)
    return CompiledPredicate(source, tree, is_default_rule=is_default)
