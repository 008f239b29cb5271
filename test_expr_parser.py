"""Tests for expr_parser module."""

import math

import pytest

from expr_parser import (
    BinOp,
    BoolLit,
    Call,
    Compare,
    ExpressionError,
    LexError,
    Logic,
    Neg,
    Not,
    Num,
    ParseError,
    TokenKind,
    Var,
    parse_boolean,
    parse_numeric,
    tokenize,
    validate,
)


# =============================================================================
# Lexer
# =============================================================================


class TestTokenize:
    """Tests for lexing and implicit multiplication."""

    def test_basic_tokens(self) -> None:
        """Operators, numbers and identifiers are recognized."""
        tokens = tokenize("gcd(x, y) >= 10")
        kinds = [t.kind for t in tokens]
        assert kinds == [
            TokenKind.IDENT,
            TokenKind.LPAREN,
            TokenKind.IDENT,
            TokenKind.COMMA,
            TokenKind.IDENT,
            TokenKind.RPAREN,
            TokenKind.OP,
            TokenKind.NUMBER,
            TokenKind.END,
        ]
        assert tokens[6].text == ">="

    def test_identifiers_are_lowercased(self) -> None:
        """Identifiers are case-insensitive."""
        assert [t.text for t in tokenize("GCD")][:1] == ["gcd"]

    def test_integer_literal_keeps_exact_value(self) -> None:
        """Integer literals carry an exact int, decimals do not."""
        assert tokenize("12")[0].exact == 12
        assert tokenize("1.5")[0].exact is None
        assert tokenize("2.0")[0].exact is None
        assert tokenize(".5")[0].value == 0.5

    def test_implicit_multiplication_number_ident(self) -> None:
        """'2x' becomes '2*x'."""
        assert [t.text for t in tokenize("2x")] == ["2", "*", "x", ""]

    def test_implicit_multiplication_before_paren(self) -> None:
        """'2(x+1)' becomes '2*(x+1)'."""
        assert [t.text for t in tokenize("2(x+1)")][:3] == ["2", "*", "("]

    def test_function_call_not_split(self) -> None:
        """A built-in name followed by '(' stays a call."""
        assert [t.text for t in tokenize("fib(n)")] == ["fib", "(", "n", ")", ""]

    def test_variable_before_paren_multiplies(self) -> None:
        """'x(2)' is x*2, not a call."""
        assert [t.text for t in tokenize("x(2)")][:3] == ["x", "*", "("]

    def test_adjacent_parens_multiply(self) -> None:
        """')(' gets a '*' between."""
        assert "*" in [t.text for t in tokenize("(x)(2)")]

    @pytest.mark.parametrize("text", ["1.2.3", ".", "1..2"])
    def test_malformed_number(self, text: str) -> None:
        """Numbers with more than one decimal point are rejected."""
        with pytest.raises(LexError, match="Malformed number"):
            tokenize(text)

    @pytest.mark.parametrize("text", ["x $ 2", "x = 1", "x & y", "x | y", "x_1"])
    def test_unexpected_character(self, text: str) -> None:
        """Characters outside the grammar are rejected."""
        with pytest.raises(LexError, match="Unexpected character"):
            tokenize(text)

    def test_error_carries_position(self) -> None:
        """The error remembers where the bad character was."""
        with pytest.raises(LexError) as exc_info:
            tokenize("x $")
        assert exc_info.value.position == 2
        assert "position 2" in str(exc_info.value)

    def test_errors_are_value_errors(self) -> None:
        """All expression errors are ValueErrors."""
        assert issubclass(LexError, ExpressionError)
        assert issubclass(ParseError, ExpressionError)
        assert issubclass(ExpressionError, ValueError)


# =============================================================================
# Numeric grammar
# =============================================================================


class TestParseNumeric:
    """Tests for numeric expressions."""

    def test_precedence(self) -> None:
        """Multiplication binds tighter than addition."""
        assert parse_numeric("1+2*x") == BinOp("+", Num(1.0, 1), BinOp("*", Num(2.0, 2), Var("x")))

    def test_implicit_multiplication_tree(self) -> None:
        """'2x+1' parses as (2*x)+1."""
        assert parse_numeric("2x+1") == BinOp("+", BinOp("*", Num(2.0, 2), Var("x")), Num(1.0, 1))

    def test_power_is_right_associative(self) -> None:
        """2^3^2 is 2^(3^2)."""
        assert parse_numeric("2^3^2") == BinOp("^", Num(2.0, 2), BinOp("^", Num(3.0, 3), Num(2.0, 2)))

    def test_unary_minus_binds_tighter_than_power(self) -> None:
        """-2^2 is (-2)^2."""
        assert parse_numeric("-2^2") == BinOp("^", Neg(Num(2.0, 2)), Num(2.0, 2))

    def test_negative_exponent(self) -> None:
        """2^-1 parses."""
        assert parse_numeric("2^-1") == BinOp("^", Num(2.0, 2), Neg(Num(1.0, 1)))

    def test_n_is_alias_for_x(self) -> None:
        """Transforms accept both n and x."""
        assert parse_numeric("n") == Var("x")
        assert parse_numeric("x") == Var("x")

    def test_function_call(self) -> None:
        """fib(n) is a call with one argument."""
        assert parse_numeric("fib(n)") == Call("fib", (Var("x"),))

    def test_constants(self) -> None:
        """pi and e are constants unless called."""
        assert parse_numeric("pi") == Num(math.pi)
        assert parse_numeric("e") == Num(math.e)
        assert parse_numeric("pi(10)") == Call("pi", (Num(10.0, 10),))

    def test_y_not_allowed_in_transform(self) -> None:
        """Transforms are single-variable."""
        with pytest.raises(ParseError, match="Unknown identifier 'y'"):
            parse_numeric("x+y")

    def test_unknown_identifier(self) -> None:
        """Unknown names are rejected before evaluation."""
        with pytest.raises(ParseError, match="Unknown identifier 'foo'"):
            parse_numeric("foo(2)")

    def test_wrong_arity(self) -> None:
        """Calls are checked against the built-in arity table."""
        with pytest.raises(ParseError, match=r"gcd\(\) takes 2 arguments, got 1"):
            parse_numeric("gcd(n)")
        with pytest.raises(ParseError, match=r"fib\(\) takes 1 argument, got 2"):
            parse_numeric("fib(n, 2)")

    def test_missing_paren(self) -> None:
        """Unclosed parentheses are reported."""
        with pytest.raises(ParseError, match="Expected"):
            parse_numeric("(n+1")

    def test_trailing_tokens(self) -> None:
        """Leftover input is an error."""
        with pytest.raises(ParseError, match="after expression"):
            parse_numeric("n)")

    def test_empty_expression(self) -> None:
        """Nothing to parse is an error."""
        with pytest.raises(ParseError, match="end of input"):
            parse_numeric("")


# =============================================================================
# Boolean grammar
# =============================================================================


class TestParseBoolean:
    """Tests for predicate expressions."""

    def test_default_rule(self) -> None:
        """The canonical rule parses to a single comparison."""
        assert parse_boolean("gcd(x,y)==1") == Compare(
            "==", Call("gcd", (Var("x"), Var("y"))), Num(1.0, 1)
        )

    def test_logic_precedence(self) -> None:
        """&& binds tighter than ||."""
        node = parse_boolean("x>1 || x>2 && y>3")
        assert isinstance(node, Logic)
        assert node.op == "||"
        assert isinstance(node.right, Logic)
        assert node.right.op == "&&"

    def test_not_and_literals(self) -> None:
        """'!' applies to the following atom."""
        assert parse_boolean("!(x>1) && true") == Logic(
            "&&", Not(Compare(">", Var("x"), Num(1.0, 1))), BoolLit(True)
        )

    def test_parenthesized_number_on_left(self) -> None:
        """A comparison may start with a parenthesized number."""
        assert parse_boolean("(x+1) > 2") == Compare(">", BinOp("+", Var("x"), Num(1.0, 1)), Num(2.0, 2))

    def test_uppercase_variables(self) -> None:
        """Variables are case-insensitive."""
        assert parse_boolean("X > Y") == Compare(">", Var("x"), Var("y"))

    def test_bare_number_is_not_a_condition(self) -> None:
        """A numeric expression alone needs a comparison."""
        with pytest.raises(ParseError, match="Expected a comparison like 'gcd\\(x,y\\)==1'"):
            parse_boolean("x+1")

    def test_unclosed_call(self) -> None:
        """'gcd(x,y' is a ParseError."""
        with pytest.raises(ParseError):
            parse_boolean("gcd(x,y")

    def test_n_not_allowed_in_predicate(self) -> None:
        """Predicates only know x and y."""
        with pytest.raises(ParseError, match="Unknown identifier 'n'"):
            parse_boolean("n > 1")


class TestValidate:
    """Tests for static validation of hand-built trees."""

    def test_unknown_function(self) -> None:
        """Calls to names outside the table are rejected."""
        with pytest.raises(ParseError, match="Unknown function 'nope\\(\\)'"):
            validate(Call("nope", (Num(1.0, 1),)))

    def test_nested_arity(self) -> None:
        """Arity is checked inside comparisons too."""
        with pytest.raises(ParseError):
            validate(Compare("==", Call("sin", ()), Num(0.0, 0)))
