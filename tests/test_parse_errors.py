"""Tests for parser error messages and positions."""

from __future__ import annotations

import pytest

from serpentine.errors import (
    LexError,
    ParseError,
    UnexpectedTokenError,
    UnterminatedBracketError,
    UnterminatedStringError,
)
from serpentine.parser import parse


class TestMissingParts:
    def test_missing_colon(self):
        with pytest.raises(ParseError, match="expected ':', found newline"):
            parse("while x\n    pass\n")

    def test_missing_close_paren(self):
        with pytest.raises(ParseError, match="expected '\\)'"):
            parse("f(a b)\n")

    def test_missing_function_name(self):
        with pytest.raises(ParseError, match="expected identifier"):
            parse("def (x):\n    pass\n")

    def test_missing_in(self):
        with pytest.raises(ParseError, match="expected 'in'"):
            parse("for x of y:\n    pass\n")

    def test_missing_import(self):
        with pytest.raises(ParseError, match="expected 'import'"):
            parse("from a b\n")

    def test_empty_block_at_eof(self):
        with pytest.raises(ParseError, match="expected an indented block"):
            parse("def f():\n")


class TestStatementBoundaries:
    def test_two_expressions_on_a_line(self):
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse("a = 1 2\n")
        assert exc_info.value.expected == ("newline", "';'")
        assert exc_info.value.column == 7

    def test_keyword_as_expression(self):
        with pytest.raises(ParseError, match="expected expression, found 'else'"):
            parse("x = else\n")

    def test_unexpected_indent_inside_block(self):
        with pytest.raises(ParseError, match="unexpected indent") as exc_info:
            parse("if a:\n    b\n        c\n")
        assert exc_info.value.line == 3

    def test_stray_elif(self):
        with pytest.raises(ParseError, match="found 'elif'"):
            parse("x = 1\nelif y:\n    pass\n")

    def test_async_needs_def(self):
        with pytest.raises(ParseError, match="expected 'def'"):
            parse("async x\n")


class TestScannerErrorsSurface:
    def test_unterminated_string(self):
        with pytest.raises(UnterminatedStringError):
            parse("x = 'abc\n")

    def test_unterminated_bracket(self):
        with pytest.raises(UnterminatedBracketError) as exc_info:
            parse("x = [1,\n    2\n")
        assert exc_info.value.line == 1
        assert exc_info.value.column == 5

    def test_scanner_error_is_not_parse_error(self):
        with pytest.raises(LexError) as exc_info:
            parse("x = 1 ? 2\n")
        assert not isinstance(exc_info.value, ParseError)


class TestFirstErrorOnly:
    def test_reports_earliest_error(self):
        with pytest.raises(ParseError) as exc_info:
            parse("a = = 1\nb = = 2\n")
        assert exc_info.value.line == 1

    def test_scan_stops_at_parse_error(self):
        # The invalid character on line 2 is never scanned
        with pytest.raises(UnexpectedTokenError):
            parse("a = = 1\n$\n")


class TestNestingLimit:
    def test_moderate_nesting_parses(self):
        depth = 30
        tree = parse("(" * depth + "1" + ")" * depth + "\n")
        assert tree.kind == "program"

    def test_deep_nesting_is_a_syntax_error(self):
        depth = 1000
        with pytest.raises(UnexpectedTokenError, match="too many nested levels") as exc_info:
            parse("(" * depth + "1" + ")" * depth + "\n")
        assert exc_info.value.line == 1
