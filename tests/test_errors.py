"""Test error messages, position accuracy, and context snippets."""

import pytest

from serpentine.errors import (
    IndentError,
    LexError,
    ParseError,
    SourceError,
    UnexpectedTokenError,
)
from serpentine.lexer import tokenize
from serpentine.parser import parse


class TestErrorPositions:
    def test_invalid_character_position(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("x = $")
        err = exc_info.value
        assert err.position.line == 1
        assert err.position.column == 5
        assert err.token_text == "$"

    def test_error_on_second_line(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("x = 1\ny = ?\n")
        err = exc_info.value
        assert err.line == 2
        assert err.column == 5

    def test_parse_error_position(self):
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse("x = 1\ny = = 2\n")
        err = exc_info.value
        assert err.line == 2
        assert err.column == 5
        assert err.token_text == "="

    def test_parse_error_spans_token(self):
        with pytest.raises(ParseError) as exc_info:
            parse("x = 1 import\n")
        err = exc_info.value
        assert err.span.start.column == 7
        assert err.span.end.column == 13


class TestErrorMessages:
    def test_expected_set(self):
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse("x = = 1\n")
        assert exc_info.value.expected == ("expression",)
        assert exc_info.value.message == "expected expression, found '='"

    def test_end_of_input_described(self):
        with pytest.raises(UnexpectedTokenError, match="expected .except. or .finally., found end of input"):
            parse("try:\n    pass\n")

    def test_newline_described(self):
        with pytest.raises(UnexpectedTokenError, match="found newline"):
            parse("x = \n")


class TestErrorKinds:
    def test_lex_error_kind(self):
        with pytest.raises(SourceError) as exc_info:
            tokenize("$")
        assert exc_info.value.kind == "SyntaxError"

    def test_indent_error_kind(self):
        with pytest.raises(IndentError) as exc_info:
            tokenize("if a:\n    b\n  c\n")
        assert exc_info.value.kind == "IndentationError"

    def test_unmatched_bracket_kind(self):
        with pytest.raises(SourceError) as exc_info:
            parse("(\n)\n)\n")
        assert exc_info.value.kind == "SyntaxError"

    def test_to_dict(self):
        with pytest.raises(SourceError) as exc_info:
            parse("x = = 1\n")
        assert exc_info.value.to_dict() == {
            "kind": "UnexpectedTokenError",
            "message": "expected expression, found '='",
            "line": 1,
            "column": 5,
            "offending_token_text": "=",
        }


class TestErrorFormatting:
    def test_format_contains_line(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("some = text $ more\n")
        formatted = exc_info.value.format()
        assert "some = text $ more" in formatted

    def test_format_contains_carets(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("$")
        formatted = exc_info.value.format()
        assert "^" in formatted

    def test_format_contains_kind_prefix(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("$")
        formatted = exc_info.value.format()
        assert formatted.startswith("error[SyntaxError]:")

    def test_format_contains_position(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("$")
        formatted = exc_info.value.format()
        assert "1:1" in formatted

    def test_format_with_custom_filename(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("$", filename="test.py")
        formatted = exc_info.value.format("test.py")
        assert "--> test.py:1:1" in formatted

    def test_caret_width_follows_span(self):
        with pytest.raises(ParseError) as exc_info:
            parse("x = 1 import\n")
        last_line = exc_info.value.format().splitlines()[-1]
        assert last_line.endswith("      ^^^^^^")

    def test_multiline_error_position(self):
        with pytest.raises(ParseError) as exc_info:
            parse("a = 1\nb = 2\nc d\n")
        formatted = exc_info.value.format()
        assert "3:3" in formatted
