"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from serpentine.ast import Node
from serpentine.lexer import tokenize
from serpentine.parser import parse
from serpentine.tokens import Token, TokenType


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str) -> list[Token]:
        tokens = tokenize(source)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def parse_source():
    """Return a helper that parses source and returns the program node."""

    def _parse(source: str, filename: str = "test.py") -> Node:
        return parse(source, filename)

    return _parse


@pytest.fixture
def parse_expr():
    """Return a helper that parses one expression statement and returns the expression."""

    def _parse_expr(source: str) -> Node:
        tree = parse(source + "\n")
        stmt = first_statement(tree)
        assert stmt.kind == "expression_statement", f"Expected expression_statement, got {stmt.kind}"
        value = stmt["value"]
        assert isinstance(value, Node)
        return value

    return _parse_expr


def assert_types(tokens: list[Token], expected: list[TokenType]) -> None:
    """Assert that the token types match the expected list."""
    actual = [t.type for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_values(tokens: list[Token], expected: list[str]) -> None:
    """Assert that the token values match the expected list."""
    actual = [t.value for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def find_tokens(tokens: list[Token], tt: TokenType) -> list[Token]:
    """Return all tokens of the given type."""
    return [t for t in tokens if t.type == tt]


def statements(tree: Node) -> list[Node]:
    """Flatten the top-level statements of a program.

    Simple statements are unwrapped from their ``simple_statements`` line.
    """
    result: list[Node] = []
    for stmt in tree["statement_list"]:
        assert isinstance(stmt, Node)
        if stmt.kind == "simple_statements":
            result.extend(s for s in stmt["statement_list"] if isinstance(s, Node))
        else:
            result.append(stmt)
    return result


def first_statement(tree: Node) -> Node:
    """Return the first (unwrapped) statement of a program."""
    stmts = statements(tree)
    assert stmts, "Expected at least one statement"
    return stmts[0]


def field_node(node: Node, name: str) -> Node:
    """Return a field that must hold a single node."""
    value = node[name]
    assert isinstance(value, Node), f"Expected node in {node.kind}.{name}, got {value!r}"
    return value


def block_statements(block: Node) -> list[Node]:
    """Flatten the statements of a block the same way as ``statements``."""
    assert block.kind == "block", f"Expected block, got {block.kind}"
    return statements(block)
