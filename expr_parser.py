"""
Expression compiler for lattice rules.

Two grammars share one lexer:
1. Numeric expressions (transforms such as "fib(n)" or "2x+1")
2. Boolean expressions (predicates such as "gcd(x,y)==1 && x>0")

Pipeline: lex -> implicit multiplication -> recursive-descent parse -> static
validation. The result is a closed union of frozen dataclass nodes that the
evaluators dispatch on with match/case.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from expr_builtins import ARITY, FUNCTION_NAMES

__all__ = [
    "BinOp",
    "BoolLit",
    "BoolNode",
    "Call",
    "Compare",
    "EvaluationFailure",
    "ExpressionError",
    "LexError",
    "Logic",
    "Neg",
    "Not",
    "Num",
    "NumNode",
    "ParseError",
    "PREDICATE_VARIABLES",
    "TRANSFORM_VARIABLES",
    "Token",
    "TokenKind",
    "Var",
    "parse_boolean",
    "parse_numeric",
    "tokenize",
    "validate",
]


# =============================================================================
# Errors
# =============================================================================


class ExpressionError(ValueError):
    """Base class for problems found in rule text."""

    def __init__(self, message: str, position: int | None = None):
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
        self.position = position


class LexError(ExpressionError):
    """Invalid character or malformed numeric literal."""


class ParseError(ExpressionError):
    """Grammar violation, missing token, unknown identifier or wrong arity."""


class EvaluationFailure(ExpressionError):
    """Runtime condition hit while walking an expression tree."""


# =============================================================================
# Tokens
# =============================================================================


class TokenKind(Enum):
    NUMBER = "number"
    IDENT = "ident"
    OP = "op"
    COMMA = "comma"
    LPAREN = "lparen"
    RPAREN = "rparen"
    END = "end"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    pos: int
    value: float = 0.0  # NUMBER only
    exact: int | None = None  # NUMBER only, integer literals


_TWO_CHAR_OPS = ("==", "!=", "<=", ">=", "&&", "||")
_ONE_CHAR_OPS = "+-*/%^<>!"
_NUMBER_CHARS = re.compile(r"[0-9.]+")
_VALID_NUMBER = re.compile(r"\d+(\.\d*)?|\.\d+")
_IDENT_CHARS = re.compile(r"[a-zA-Z]+")
_MAX_LITERAL_LENGTH = 4000  # below the interpreter's int() digit limit

COMPARISON_OPS = frozenset(("==", "!=", "<", "<=", ">", ">="))


def _lex(text: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isspace():
            i += 1
            continue

        found = _NUMBER_CHARS.match(text, i)
        if found:
            literal = found.group()
            if not _VALID_NUMBER.fullmatch(literal):
                raise LexError(f"Malformed number '{literal}'", i)
            if len(literal) > _MAX_LITERAL_LENGTH:
                raise LexError("Number literal is too long", i)
            try:
                exact = int(literal) if "." not in literal else None
            except ValueError as e:
                raise LexError("Number literal is too long", i) from e
            tokens.append(Token(TokenKind.NUMBER, literal, i, float(literal), exact))
            i = found.end()
            continue

        found = _IDENT_CHARS.match(text, i)
        if found:
            tokens.append(Token(TokenKind.IDENT, found.group().lower(), i))
            i = found.end()
            continue

        pair = text[i : i + 2]
        if pair in _TWO_CHAR_OPS:
            tokens.append(Token(TokenKind.OP, pair, i))
            i += 2
        elif ch in _ONE_CHAR_OPS:
            tokens.append(Token(TokenKind.OP, ch, i))
            i += 1
        elif ch == ",":
            tokens.append(Token(TokenKind.COMMA, ch, i))
            i += 1
        elif ch == "(":
            tokens.append(Token(TokenKind.LPAREN, ch, i))
            i += 1
        elif ch == ")":
            tokens.append(Token(TokenKind.RPAREN, ch, i))
            i += 1
        else:
            raise LexError(f"Unexpected character '{ch}'", i)

    tokens.append(Token(TokenKind.END, "", len(text)))
    return tokens


def _ends_factor(token: Token) -> bool:
    return token.kind in (TokenKind.NUMBER, TokenKind.IDENT, TokenKind.RPAREN)


def _starts_factor(token: Token) -> bool:
    return token.kind in (TokenKind.NUMBER, TokenKind.IDENT, TokenKind.LPAREN)


def _insert_implicit_multiplication(tokens: list[Token]) -> list[Token]:
    """
    Insert '*' between adjacent factors: "2x" -> "2*x", "2(x+1)" -> "2*(x+1)",
    "x(2)" -> "x*(2)". A function name followed by '(' stays a call.
    """
    result: list[Token] = []
    for token in tokens:
        if result:
            prev = result[-1]
            is_call = (
                prev.kind == TokenKind.IDENT
                and prev.text in FUNCTION_NAMES
                and token.kind == TokenKind.LPAREN
            )
            if _ends_factor(prev) and _starts_factor(token) and not is_call:
                result.append(Token(TokenKind.OP, "*", token.pos))
        result.append(token)
    return result


def tokenize(text: str) -> list[Token]:
    """Lex text and insert implicit multiplication. The last token is END."""
    return _insert_implicit_multiplication(_lex(text))


# =============================================================================
# AST
# =============================================================================


@dataclass(frozen=True)
class Num:
    value: float
    exact: int | None = None  # Set for integer literals


@dataclass(frozen=True)
class Var:
    name: str  # Canonical variable: "x" or "y"


@dataclass(frozen=True)
class Neg:
    operand: NumNode


@dataclass(frozen=True)
class BinOp:
    op: str  # One of + - * / % ^
    left: NumNode
    right: NumNode


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple[NumNode, ...]


@dataclass(frozen=True)
class BoolLit:
    value: bool


@dataclass(frozen=True)
class Not:
    operand: BoolNode


@dataclass(frozen=True)
class Logic:
    op: str  # "&&" or "||"
    left: BoolNode
    right: BoolNode


@dataclass(frozen=True)
class Compare:
    op: str  # One of == != < <= > >=
    left: NumNode
    right: NumNode


NumNode = Num | Var | Neg | BinOp | Call
BoolNode = BoolLit | Not | Logic | Compare

# Source identifier -> canonical variable name
PREDICATE_VARIABLES: Mapping[str, str] = {"x": "x", "y": "y"}
TRANSFORM_VARIABLES: Mapping[str, str] = {"x": "x", "n": "x"}

_CONSTANTS = {"pi": math.pi, "e": math.e}


# =============================================================================
# Parser
# =============================================================================


class _Parser:
    def __init__(self, tokens: list[Token], variables: Mapping[str, str]):
        self.tokens = tokens
        self.variables = variables
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.current
        if token.kind != TokenKind.END:
            self.index += 1
        return token

    def at_op(self, *ops: str) -> bool:
        return self.current.kind == TokenKind.OP and self.current.text in ops

    def expect(self, kind: TokenKind, what: str) -> Token:
        token = self.current
        if token.kind != kind:
            found = "end of input" if token.kind == TokenKind.END else f"'{token.text}'"
            raise ParseError(f"Expected {what} but found {found}", token.pos)
        return self.advance()

    def expect_end(self) -> None:
        token = self.current
        if token.kind != TokenKind.END:
            raise ParseError(f"Unexpected '{token.text}' after expression", token.pos)

    # --- boolean grammar ---------------------------------------------------

    def parse_or(self) -> BoolNode:
        node = self.parse_and()
        while self.at_op("||"):
            self.advance()
            node = Logic("||", node, self.parse_and())
        return node

    def parse_and(self) -> BoolNode:
        node = self.parse_not()
        while self.at_op("&&"):
            self.advance()
            node = Logic("&&", node, self.parse_not())
        return node

    def parse_not(self) -> BoolNode:
        if self.at_op("!"):
            self.advance()
            return Not(self.parse_not())
        return self.parse_bool_atom()

    def parse_bool_atom(self) -> BoolNode:
        token = self.current
        if token.kind == TokenKind.IDENT and token.text in ("true", "false"):
            self.advance()
            return BoolLit(token.text == "true")

        if token.kind == TokenKind.LPAREN:
            # "(a || b)" groups booleans, "(x+1) > 2" groups a number
            saved = self.index
            self.advance()
            try:
                node = self.parse_or()
                self.expect(TokenKind.RPAREN, "')'")
                return node
            except ParseError:
                self.index = saved

        return self.parse_comparison()

    def parse_comparison(self) -> BoolNode:
        left = self.parse_add()
        token = self.current
        if not (token.kind == TokenKind.OP and token.text in COMPARISON_OPS):
            raise ParseError("Expected a comparison like 'gcd(x,y)==1'", token.pos)
        self.advance()
        return Compare(token.text, left, self.parse_add())

    # --- numeric grammar ---------------------------------------------------

    def parse_add(self) -> NumNode:
        node = self.parse_mul()
        while self.at_op("+", "-"):
            op = self.advance().text
            node = BinOp(op, node, self.parse_mul())
        return node

    def parse_mul(self) -> NumNode:
        node = self.parse_pow()
        while self.at_op("*", "/", "%"):
            op = self.advance().text
            node = BinOp(op, node, self.parse_pow())
        return node

    def parse_pow(self) -> NumNode:
        base = self.parse_unary()
        if self.at_op("^"):
            self.advance()
            return BinOp("^", base, self.parse_pow())
        return base

    def parse_unary(self) -> NumNode:
        if self.at_op("-"):
            self.advance()
            return Neg(self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> NumNode:
        token = self.current

        if token.kind == TokenKind.NUMBER:
            self.advance()
            return Num(token.value, token.exact)

        if token.kind == TokenKind.LPAREN:
            self.advance()
            node = self.parse_add()
            self.expect(TokenKind.RPAREN, "')'")
            return node

        if token.kind == TokenKind.IDENT:
            self.advance()
            name = token.text
            followed_by_paren = self.current.kind == TokenKind.LPAREN
            if name in self.variables:
                return Var(self.variables[name])
            if name in _CONSTANTS and not followed_by_paren:
                return Num(_CONSTANTS[name])
            if followed_by_paren:
                return Call(name, self.parse_args(token))
            raise ParseError(f"Unknown identifier '{name}'", token.pos)

        found = "end of input" if token.kind == TokenKind.END else f"'{token.text}'"
        raise ParseError(f"Expected a number, variable or function call but found {found}", token.pos)

    def parse_args(self, name_token: Token) -> tuple[NumNode, ...]:
        self.expect(TokenKind.LPAREN, "'('")
        args: list[NumNode] = []
        if self.current.kind != TokenKind.RPAREN:
            args.append(self.parse_add())
            while self.current.kind == TokenKind.COMMA:
                self.advance()
                args.append(self.parse_add())
        self.expect(TokenKind.RPAREN, f"')' to close {name_token.text}(")
        return tuple(args)


# =============================================================================
# Validation
# =============================================================================


def validate(node: NumNode | BoolNode) -> None:
    """
    Reject unknown functions and wrong-arity calls before evaluation.

    Raises:
        ParseError: describing the first offending call found
    """
    match node:
        case Num() | Var() | BoolLit():
            return
        case Neg(operand=operand) | Not(operand=operand):
            validate(operand)
        case BinOp(left=left, right=right) | Logic(left=left, right=right) | Compare(left=left, right=right):
            validate(left)
            validate(right)
        case Call(name=name, args=args):
            if name not in ARITY:
                known = ", ".join(sorted(ARITY))
                raise ParseError(f"Unknown function '{name}()'\n  Known functions: {known}")
            expected = ARITY[name]
            if len(args) != expected:
                plural = "argument" if expected == 1 else "arguments"
                raise ParseError(f"{name}() takes {expected} {plural}, got {len(args)}")
            for arg in args:
                validate(arg)
        case _:
            raise ParseError(f"Unknown node {node!r}")


def parse_numeric(text: str, variables: Mapping[str, str] = TRANSFORM_VARIABLES) -> NumNode:
    """
    Parse and validate a numeric expression.

    Args:
        text: Expression source, e.g. "fib(n)" or "2x+1"
        variables: Allowed identifiers mapped to their canonical names

    Raises:
        LexError, ParseError: when the text is not a valid expression
    """
    parser = _Parser(tokenize(text), variables)
    node = parser.parse_add()
    parser.expect_end()
    validate(node)
    return node


def parse_boolean(text: str, variables: Mapping[str, str] = PREDICATE_VARIABLES) -> BoolNode:
    """Parse and validate a boolean expression such as "gcd(x,y)==1"."""
    parser = _Parser(tokenize(text), variables)
    node = parser.parse_or()
    parser.expect_end()
    validate(node)
    return node
