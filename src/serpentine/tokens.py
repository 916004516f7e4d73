"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    # Words and symbols
    IDENTIFIER = auto()
    KEYWORD = auto()
    OPERATOR = auto()  # punctuation and operators, value is the symbol

    # Numeric literals
    INTEGER = auto()
    FLOAT = auto()

    # String sub-tokens
    STRING_START = auto()  # prefix + opening quote(s)
    STRING_CONTENT = auto()  # literal text run, value has {{ }} collapsed
    ESCAPE_SEQUENCE = auto()  # value is the resolved character(s)
    INTERPOLATION_OPEN = auto()  # { entering an interpolation region
    INTERPOLATION_CLOSE = auto()  # } leaving it
    CONVERSION = auto()  # !r / !s / !a, value is the letter
    FORMAT_SPEC = auto()  # : introducing a format specifier
    STRING_END = auto()  # closing quote(s)

    # Layout
    NEWLINE = auto()
    INDENT = auto()
    DEDENT = auto()

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based code point offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexer token with resolved value and original source text."""

    type: TokenType
    value: str
    raw: str
    span: Span


KEYWORDS: frozenset[str] = frozenset(
    {
        "False",
        "None",
        "True",
        "and",
        "as",
        "assert",
        "async",
        "await",
        "break",
        "class",
        "continue",
        "def",
        "del",
        "elif",
        "else",
        "except",
        "finally",
        "for",
        "from",
        "global",
        "if",
        "import",
        "in",
        "is",
        "lambda",
        "nonlocal",
        "not",
        "or",
        "pass",
        "raise",
        "return",
        "try",
        "while",
        "with",
        "yield",
    }
)

# Longest first so that prefix matching picks "**=" over "**" over "*".
OPERATORS: tuple[str, ...] = (
    "**=",
    "//=",
    ">>=",
    "<<=",
    "...",
    "**",
    "//",
    "<<",
    ">>",
    "<=",
    ">=",
    "==",
    "!=",
    "<>",
    "->",
    ":=",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "@=",
    "&=",
    "|=",
    "^=",
    "+",
    "-",
    "*",
    "/",
    "%",
    "@",
    "&",
    "|",
    "^",
    "~",
    "<",
    ">",
    "(",
    ")",
    "[",
    "]",
    "{",
    "}",
    ",",
    ":",
    ".",
    ";",
    "=",
)

OPEN_BRACKETS: dict[str, str] = {"(": ")", "[": "]", "{": "}"}
CLOSE_BRACKETS: frozenset[str] = frozenset(OPEN_BRACKETS.values())

# Horizontal whitespace, including the zero-width characters the grammar skips.
_WHITESPACE = frozenset(" \t\f\ufeff\u2060\u200b")

_ASCII_START = frozenset("_abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
_ASCII_CONTINUE = _ASCII_START | frozenset("0123456789")


def is_identifier_start(ch: str) -> bool:
    """Return True if ch may begin an identifier (``_`` or XID_Start)."""
    if ch in _ASCII_START:
        return True
    if not ch or ch < "\x80":
        return False
    # str.isidentifier() consults the interpreter's XID_Start table.
    return ch.isidentifier()


def is_identifier_continue(ch: str) -> bool:
    """Return True if ch may continue an identifier (XID_Continue)."""
    if ch in _ASCII_CONTINUE:
        return True
    if not ch or ch < "\x80":
        return False
    return ("_" + ch).isidentifier()


def is_whitespace(ch: str) -> bool:
    """Return True for horizontal whitespace (never a line terminator)."""
    return ch in _WHITESPACE


def is_line_terminator(ch: str) -> bool:
    """Return True if ch starts a line terminator (\\n, \\r\\n or \\r)."""
    return ch in ("\n", "\r")


def is_hex_digit(ch: str) -> bool:
    """Return True if ch is a hexadecimal digit."""
    return ch != "" and ch in "0123456789abcdefABCDEF"


def is_octal_digit(ch: str) -> bool:
    """Return True if ch is an octal digit."""
    return ch != "" and ch in "01234567"


def is_digit(ch: str) -> bool:
    """Return True if ch is an ASCII decimal digit."""
    return ch != "" and ch in "0123456789"
