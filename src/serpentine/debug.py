"""Tree and token dumps, and canonical re-printing of a parsed tree."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import Any, TextIO

from serpentine.ast import Empty, FieldValue, Node
from serpentine.tokens import Token, TokenType, is_identifier_continue


def format_tree(node: Node) -> str:
    """Return an indented, span-free dump of the tree's kinds and fields."""
    lines: list[str] = []
    _format_node(node, 0, lines)
    return "\n".join(lines)


def dump_tree(node: Node, *, file: TextIO | None = None) -> None:
    """Print a human-readable tree to *file* (default: stderr)."""
    out = file if file is not None else sys.stderr
    out.write(format_tree(node))
    out.write("\n")


def dump_tokens(tokens: Iterable[Token], *, file: TextIO | None = None) -> None:
    """Print one line per token: position, type and resolved value (default: stdout)."""
    out = file if file is not None else sys.stdout
    for tok in tokens:
        pos = tok.span.start
        out.write(f"{pos.line}:{pos.column}\t{tok.type.name}\t{tok.value!r}\n")


def tree_to_dict(node: Node) -> dict[str, Any]:
    """Return a JSON-ready form of the tree: kind, span and fields."""
    start, end = node.span.start, node.span.end
    result: dict[str, Any] = {
        "kind": node.kind,
        "start": [start.line, start.column],
        "end": [end.line, end.column],
    }
    if not node.fields:
        result["text"] = node.text
        return result
    result["fields"] = {name: _value_to_json(value) for name, value in node.fields}
    return result


def _value_to_json(value: FieldValue) -> Any:
    if isinstance(value, Empty):
        return None
    if isinstance(value, Token):
        return value.value
    if isinstance(value, Node):
        return tree_to_dict(value)
    return [_value_to_json(item) for item in value]


def _indent(depth: int) -> str:
    return "  " * depth


def _format_node(node: Node, depth: int, lines: list[str]) -> None:
    if not node.fields:
        lines.append(f"{_indent(depth)}{_leaf_label(node)}")
        return
    lines.append(f"{_indent(depth)}{node.kind}")
    for name, value in node.fields:
        _format_field(name, value, depth + 1, lines)


def _format_field(name: str, value: FieldValue, depth: int, lines: list[str]) -> None:
    prefix = f"{_indent(depth)}{name}:"
    if isinstance(value, Empty):
        lines.append(f"{prefix} <empty>")
    elif isinstance(value, Token):
        lines.append(f"{prefix} {value.value!r}")
    elif isinstance(value, Node) and not value.fields:
        lines.append(f"{prefix} {_leaf_label(value)}")
    elif isinstance(value, Node):
        lines.append(prefix)
        _format_node(value, depth + 1, lines)
    else:
        lines.append(prefix)
        for item in value:
            if isinstance(item, Token):
                lines.append(f"{_indent(depth + 1)}{item.value!r}")
            else:
                _format_node(item, depth + 1, lines)


def _leaf_label(node: Node) -> str:
    if node.children:
        return f"{node.kind} {node.text!r}"
    return node.kind


# ----------------------------------------------------------------------
# Re-printing
# ----------------------------------------------------------------------

_LEFT_CODE = frozenset(
    {TokenType.IDENTIFIER, TokenType.KEYWORD, TokenType.OPERATOR, TokenType.INTEGER, TokenType.FLOAT}
)
_RIGHT_CODE = _LEFT_CODE | {TokenType.STRING_START}


def reprint(node: Node) -> str:
    """Re-print a tree from its tokens in a canonical layout.

    Comments and original spacing are dropped: tokens are separated by a
    space only where two word characters would otherwise merge, and blocks
    are indented four spaces per level.
    """
    out: list[str] = []
    depth = 0
    at_line_start = True
    prev: Token | None = None

    for tok in node.tokens():
        if tok.type == TokenType.NEWLINE:
            out.append("\n")
            at_line_start = True
            prev = None
            continue
        if tok.type == TokenType.INDENT:
            depth += 1
            continue
        if tok.type == TokenType.DEDENT:
            depth -= 1
            continue

        if at_line_start:
            out.append("    " * depth)
            at_line_start = False
        elif prev is not None and _needs_space(prev, tok):
            out.append(" ")
        out.append(tok.raw)
        prev = tok

    return "".join(out)


def _needs_space(prev: Token, tok: Token) -> bool:
    # "1 .real" must not become the float "1."
    if prev.type == TokenType.INTEGER and tok.raw.startswith("."):
        return True
    # '' followed by 'x' would open a triple-quoted string
    if prev.type == TokenType.STRING_END and tok.type == TokenType.STRING_START:
        return True
    # A dict display at the edge of an interpolation must not read as {{ or }}
    if prev.type == TokenType.INTERPOLATION_OPEN and tok.raw == "{":
        return True
    if prev.raw == "}" and tok.type == TokenType.INTERPOLATION_CLOSE:
        return prev.type == TokenType.OPERATOR
    if prev.type not in _LEFT_CODE or tok.type not in _RIGHT_CODE:
        return False
    return _is_word_char(prev.raw[-1]) and _is_word_char(tok.raw[0])


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or is_identifier_continue(ch)
