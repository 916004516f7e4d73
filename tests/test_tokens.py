"""Test names, keywords, operators, numbers and positions."""

import pytest

from serpentine.errors import LexError, UnterminatedBracketError
from serpentine.lexer import Lexer
from serpentine.tokens import (
    TokenType,
    is_identifier_continue,
    is_identifier_start,
    is_line_terminator,
    is_whitespace,
)

from .conftest import assert_types, assert_values


class TestClassifier:
    def test_identifier_start(self):
        assert is_identifier_start("a")
        assert is_identifier_start("_")
        assert is_identifier_start("é")
        assert not is_identifier_start("1")
        assert not is_identifier_start("")

    def test_identifier_continue(self):
        assert is_identifier_continue("1")
        assert is_identifier_continue("_")
        assert not is_identifier_continue("-")

    def test_whitespace(self):
        assert is_whitespace(" ")
        assert is_whitespace("\t")
        assert is_whitespace("\f")
        assert is_whitespace("\ufeff")
        assert not is_whitespace("\n")

    def test_line_terminator(self):
        assert is_line_terminator("\n")
        assert is_line_terminator("\r")
        assert not is_line_terminator(" ")


class TestNames:
    def test_identifier(self, lex):
        tokens = lex("spam\n")
        assert_types(tokens, [TokenType.IDENTIFIER, TokenType.NEWLINE])
        assert tokens[0].value == "spam"

    def test_unicode_identifier(self, lex):
        tokens = lex("café = 1\n")
        assert tokens[0].type == TokenType.IDENTIFIER
        assert tokens[0].value == "café"

    def test_keyword(self, lex):
        tokens = lex("while True\n")
        assert_types(tokens, [TokenType.KEYWORD, TokenType.KEYWORD, TokenType.NEWLINE])

    def test_async_await_are_keywords(self, lex):
        tokens = lex("async await\n")
        assert tokens[0].type == TokenType.KEYWORD
        assert tokens[1].type == TokenType.KEYWORD

    def test_print_and_exec_are_identifiers(self, lex):
        tokens = lex("print exec\n")
        assert tokens[0].type == TokenType.IDENTIFIER
        assert tokens[1].type == TokenType.IDENTIFIER

    def test_keyword_prefix_is_identifier(self, lex):
        tokens = lex("iffy\n")
        assert tokens[0].type == TokenType.IDENTIFIER


class TestOperators:
    def test_longest_match(self, lex):
        tokens = lex("a **= b // c\n")
        assert_values(tokens, ["a", "**=", "b", "//", "c", "\n"])

    def test_comparison_operators(self, lex):
        tokens = lex("a <= b != c <> d\n")
        assert_values(tokens, ["a", "<=", "b", "!=", "c", "<>", "d", "\n"])

    def test_arrow_and_walrus(self, lex):
        tokens = lex("-> :=\n")
        assert_values(tokens, ["->", ":=", "\n"])

    def test_ellipsis(self, lex):
        tokens = lex("...\n")
        assert_types(tokens, [TokenType.OPERATOR, TokenType.NEWLINE])
        assert tokens[0].value == "..."

    def test_invalid_character(self):
        with pytest.raises(LexError, match="invalid character"):
            Lexer("x = $\n").tokenize()


class TestNumbers:
    @pytest.mark.parametrize(
        "text",
        ["0", "42", "1_000_000", "0x1F", "0Xdead_beef", "0o17", "0b1010", "10L", "7j"],
    )
    def test_integers(self, lex, text):
        tokens = lex(text + "\n")
        assert_types(tokens, [TokenType.INTEGER, TokenType.NEWLINE])
        assert tokens[0].value == text

    @pytest.mark.parametrize("text", ["3.14", "1.", ".5", "1e10", "2.5E-3", "1.5j", "1_0.0_1"])
    def test_floats(self, lex, text):
        tokens = lex(text + "\n")
        assert_types(tokens, [TokenType.FLOAT, TokenType.NEWLINE])
        assert tokens[0].value == text

    def test_exponent_needs_digits(self, lex):
        tokens = lex("1e\n")
        assert_types(tokens, [TokenType.INTEGER, TokenType.IDENTIFIER, TokenType.NEWLINE])

    def test_empty_hex_literal(self):
        with pytest.raises(LexError, match="invalid hexadecimal literal"):
            Lexer("0x\n").tokenize()

    def test_attribute_on_integer(self, lex):
        tokens = lex("1 .real\n")
        assert_values(tokens, ["1", ".", "real", "\n"])


class TestLinesAndComments:
    def test_comment_skipped(self, lex):
        tokens = lex("x = 1  # note\n")
        assert_values(tokens, ["x", "=", "1", "\n"])

    def test_newline_synthesized_at_eof(self, lex):
        tokens = lex("x")
        assert_types(tokens, [TokenType.IDENTIFIER, TokenType.NEWLINE])
        assert tokens[1].raw == ""

    def test_crlf_line_ending(self, lex):
        tokens = lex("a\r\nb\r\n")
        assert_types(
            tokens,
            [TokenType.IDENTIFIER, TokenType.NEWLINE, TokenType.IDENTIFIER, TokenType.NEWLINE],
        )
        assert tokens[1].raw == "\r\n"
        assert tokens[2].span.start.line == 2

    def test_explicit_continuation(self, lex):
        tokens = lex("x = 1 + \\\n    2\n")
        assert_values(tokens, ["x", "=", "1", "+", "2", "\n"])

    def test_character_after_continuation(self):
        with pytest.raises(LexError, match="after line continuation"):
            Lexer("x = \\ 1\n").tokenize()

    def test_implicit_joining_in_brackets(self, lex):
        tokens = lex("f(a,\n      b)\n")
        assert_values(tokens, ["f", "(", "a", ",", "b", ")", "\n"])

    def test_byte_order_mark(self, lex):
        tokens = lex("\ufeffx = 1\n")
        assert tokens[0].type == TokenType.IDENTIFIER


class TestBrackets:
    def test_unterminated_bracket(self):
        with pytest.raises(UnterminatedBracketError) as exc_info:
            Lexer("x = (1,\n  2\n").tokenize()
        assert exc_info.value.position.line == 1
        assert exc_info.value.position.column == 5

    def test_unmatched_close(self):
        with pytest.raises(LexError, match="unmatched"):
            Lexer("x)\n").tokenize()

    def test_mismatched_close(self):
        with pytest.raises(LexError, match="does not match"):
            Lexer("(]\n").tokenize()


class TestPositions:
    def test_column_and_offset(self, lex):
        tokens = lex("a = bc\n")
        bc = tokens[2]
        assert bc.span.start.line == 1
        assert bc.span.start.column == 5
        assert bc.span.start.offset == 4
        assert bc.span.end.column == 7

    def test_second_line(self, lex):
        tokens = lex("a\nbb\n")
        assert tokens[2].span.start.line == 2
        assert tokens[2].span.start.column == 1


class TestLazyStream:
    def test_next_token_is_incremental(self):
        lexer = Lexer("a b\n")
        assert lexer.next_token().value == "a"
        assert lexer.next_token().value == "b"

    def test_eof_repeats(self):
        lexer = Lexer("")
        first = lexer.next_token()
        assert first.type == TokenType.EOF
        assert lexer.next_token() is first

    def test_iteration_stops_after_eof(self):
        tokens = list(Lexer("x\n"))
        assert tokens[-1].type == TokenType.EOF
        assert sum(1 for t in tokens if t.type == TokenType.EOF) == 1
