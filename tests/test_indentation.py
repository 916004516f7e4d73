"""Test NEWLINE, INDENT and DEDENT synthesis."""

import pytest

from serpentine.config import ScanConfig
from serpentine.errors import IndentError
from serpentine.lexer import Lexer, tokenize
from serpentine.tokens import TokenType

from .conftest import assert_types, find_tokens

KW = TokenType.KEYWORD
ID = TokenType.IDENTIFIER
OP = TokenType.OPERATOR
NL = TokenType.NEWLINE
IN = TokenType.INDENT
DE = TokenType.DEDENT


class TestBlocks:
    def test_indent_and_dedent(self, lex):
        tokens = lex("if x:\n    y\nz\n")
        assert_types(tokens, [KW, ID, OP, NL, IN, ID, NL, DE, ID, NL])

    def test_indent_raw_is_whitespace(self, lex):
        tokens = lex("if x:\n    y\n")
        assert find_tokens(tokens, IN)[0].raw == "    "

    def test_multiple_dedents(self, lex):
        tokens = lex("if a:\n  if b:\n    c\nd\n")
        d_index = next(i for i, t in enumerate(tokens) if t.value == "d")
        assert_types(tokens[d_index - 2 : d_index], [DE, DE])

    def test_dedents_at_eof(self, lex):
        tokens = lex("if a:\n    b\n")
        assert_types(tokens[-2:], [NL, DE])

    def test_dedents_at_eof_without_newline(self, lex):
        tokens = lex("if a:\n    b")
        assert_types(tokens[-2:], [NL, DE])

    def test_dedent_mismatch(self):
        with pytest.raises(IndentError, match="unindent does not match") as exc_info:
            Lexer("if a:\n    b\n  c\n").tokenize()
        assert exc_info.value.kind == "IndentationError"
        assert exc_info.value.position.line == 3


class TestBlankLines:
    def test_blank_and_comment_lines_ignored(self, lex):
        tokens = lex("if a:\n\n    # note\n    b\n")
        assert_types(tokens, [KW, ID, OP, NL, IN, ID, NL, DE])

    def test_leading_blank_lines(self, lex):
        tokens = lex("\n\n   \nx\n")
        assert_types(tokens, [ID, NL])

    def test_only_comments(self, lex):
        assert lex("# a\n  # b\n") == []

    def test_empty_source(self):
        tokens = tokenize("")
        assert_types(tokens, [TokenType.EOF])


class TestJoining:
    def test_no_layout_inside_brackets(self, lex):
        tokens = lex("x = [\n  1,\n    2,\n]\n")
        assert not find_tokens(tokens, IN)
        assert len(find_tokens(tokens, NL)) == 1

    def test_continuation_line_not_indented(self, lex):
        tokens = lex("x = 1 + \\\n        2\ny\n")
        assert not find_tokens(tokens, IN)


class TestTabs:
    def test_tab_matches_eight_spaces(self, lex):
        tokens = lex("if a:\n\tb\n        c\n")
        assert len(find_tokens(tokens, IN)) == 1

    def test_custom_tab_width(self):
        config = ScanConfig(tab_width=4)
        tokens = tokenize("if a:\n\tb\n        c\n", config=config)
        assert len(find_tokens(tokens, IN)) == 2

    def test_mixed_indentation_rejected(self):
        config = ScanConfig(reject_mixed_indentation=True)
        with pytest.raises(IndentError, match="inconsistent use of tabs"):
            tokenize("if a:\n\tb\n        c\n", config=config)

    def test_consistent_tabs_accepted(self):
        config = ScanConfig(reject_mixed_indentation=True)
        tokens = tokenize("if a:\n\tb\n\tc\n", config=config)
        assert len(find_tokens(tokens, IN)) == 1

    def test_form_feed_resets_width(self, lex):
        tokens = lex("if a:\n    b\n\fc\n")
        c = next(t for t in tokens if t.value == "c")
        assert tokens[tokens.index(c) - 1].type == DE


class TestBalance:
    @pytest.mark.parametrize(
        "source",
        [
            "x\n",
            "if a:\n    b\n",
            "if a:\n  if b:\n    if c:\n      d\n",
            "class A:\n    def f(self):\n        pass\n\n    x = 1\ny = 2\n",
            "while a:\n    b\nelse:\n    c",
            "def f():\n    return [\n1,\n]\n",
        ],
    )
    def test_indent_count_equals_dedent_count(self, lex, source):
        tokens = lex(source)
        assert len(find_tokens(tokens, IN)) == len(find_tokens(tokens, DE))
