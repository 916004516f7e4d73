"""String literal scanning: prefixes, quote styles, escapes and interpolation.

The scanning methods are mixed into :class:`serpentine.lexer.Lexer` and run
while a string frame is on top of the lexer's frame stack. A string is
emitted as STRING_START, then any mix of STRING_CONTENT, ESCAPE_SEQUENCE and
interpolation regions, then STRING_END.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import TYPE_CHECKING

from serpentine.errors import InvalidEscapeSequenceError, LexError
from serpentine.tokens import (
    Position,
    TokenType,
    is_hex_digit,
    is_identifier_start,
    is_line_terminator,
    is_octal_digit,
)

if TYPE_CHECKING:
    from serpentine.tokens import Token

VALID_PREFIXES: frozenset[str] = frozenset({"r", "u", "b", "f", "br", "rb", "fr", "rf"})

SIMPLE_ESCAPES: dict[str, str] = {
    "\\": "\\",
    "'": "'",
    '"': '"',
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}

_UNICODE_ESCAPE_DIGITS = {"u": 4, "U": 8}


@dataclass(frozen=True, slots=True)
class StringPrefix:
    raw: bool = False
    is_bytes: bool = False
    is_format: bool = False


def parse_prefix(text: str) -> StringPrefix | None:
    """Return the flags for a string prefix, or None if it is not one."""
    lowered = text.lower()
    if lowered not in VALID_PREFIXES and lowered != "":
        return None
    return StringPrefix(raw="r" in lowered, is_bytes="b" in lowered, is_format="f" in lowered)


def string_prefix_length(source: str, pos: int) -> int | None:
    """Length of the string prefix starting at pos, if a quote follows it."""
    for length in (2, 1):
        text = source[pos : pos + length]
        if text.lower() in VALID_PREFIXES and source[pos + length : pos + length + 1] in ("'", '"'):
            return length
    return None


@dataclass(frozen=True, slots=True)
class StringScan:
    """State of one open string literal."""

    quote: str  # ', ", ''' or \"\"\"
    prefix: StringPrefix
    start: Position
    opening: str  # raw prefix and quote, as written

    @property
    def triple(self) -> bool:
        return len(self.quote) == 3


class StringScannerMixin:
    """String modes of the lexer.

    Relies on the host class for position tracking, token emission and the
    frame stack (``_push_string``, ``_push_interpolation``,
    ``_push_format_spec``, ``_pop_frame``).
    """

    _source: str
    _pos: int

    if TYPE_CHECKING:

        def _current_pos(self) -> Position: ...
        def _peek(self, offset: int = 0) -> str: ...
        def _advance(self) -> str: ...
        def _take_line_terminator(self) -> str: ...
        def _emit(
            self, tt: TokenType, value: str, raw: str, start: Position | None = None
        ) -> Token: ...
        def _error(
            self,
            message: str,
            pos: Position | None = None,
            cls: type[LexError] = LexError,
            token_text: str = "",
        ) -> LexError: ...
        def _unterminated(self, scan: StringScan) -> LexError: ...
        def _push_string(self, scan: StringScan) -> None: ...
        def _push_interpolation(self, scan: StringScan) -> None: ...
        def _push_format_spec(self, scan: StringScan) -> None: ...
        def _pop_frame(self) -> None: ...

    # ------------------------------------------------------------------
    # Opening and literal parts
    # ------------------------------------------------------------------

    def _scan_string_open(self, prefix_len: int) -> None:
        start = self._current_pos()
        prefix_text = "".join(self._advance() for _ in range(prefix_len))
        prefix = parse_prefix(prefix_text)
        assert prefix is not None

        quote_char = self._peek()
        quote = quote_char * 3 if self._source.startswith(quote_char * 3, self._pos) else quote_char
        for _ in quote:
            self._advance()

        opening = self._source[start.offset : self._pos]
        scan = StringScan(quote, prefix, start, opening)
        self._emit(TokenType.STRING_START, quote, opening, start)
        self._push_string(scan)

    def _scan_string_part(self, scan: StringScan) -> None:
        ch = self._peek()

        if ch == "":
            raise self._unterminated(scan)

        if self._source.startswith(scan.quote, self._pos):
            start = self._current_pos()
            for _ in scan.quote:
                self._advance()
            self._emit(TokenType.STRING_END, scan.quote, scan.quote, start)
            self._pop_frame()
            return

        if ch == "\\" and not scan.prefix.raw:
            self._scan_escape(scan)
            return

        if scan.prefix.is_format and ch == "{" and self._peek(1) != "{":
            start = self._current_pos()
            self._advance()
            self._emit(TokenType.INTERPOLATION_OPEN, "{", "{", start)
            self._push_interpolation(scan)
            return

        if scan.prefix.is_format and ch == "}" and self._peek(1) != "}":
            raise self._error("f-string: single '}' is not allowed", token_text="}")

        if is_line_terminator(ch) and not scan.triple:
            raise self._unterminated(scan)

        self._scan_string_text(scan)

    def _scan_string_text(self, scan: StringScan) -> None:
        """Accumulate a run of literal characters into one STRING_CONTENT."""
        start = self._current_pos()
        chars: list[str] = []
        quote_char = scan.quote[0]

        while True:
            ch = self._peek()
            if ch == "" or self._source.startswith(scan.quote, self._pos):
                break

            if ch == "\\":
                if not scan.prefix.raw:
                    break
                # In raw strings the backslash stays, and shields a quote,
                # a backslash or a line break from their usual meaning.
                chars.append(self._advance())
                nxt = self._peek()
                if nxt in (quote_char, "\\"):
                    chars.append(self._advance())
                elif is_line_terminator(nxt):
                    self._take_line_terminator()
                    chars.append("\n")
                continue

            if scan.prefix.is_format and ch in ("{", "}"):
                if self._peek(1) != ch:
                    break
                self._advance()
                self._advance()
                chars.append(ch)
                continue

            if is_line_terminator(ch):
                if not scan.triple:
                    break
                self._take_line_terminator()
                chars.append("\n")
                continue

            chars.append(self._advance())

        raw = self._source[start.offset : self._pos]
        if raw:
            self._emit(TokenType.STRING_CONTENT, "".join(chars), raw, start)

    # ------------------------------------------------------------------
    # Escape sequences
    # ------------------------------------------------------------------

    def _scan_escape(self, scan: StringScan) -> None:
        start = self._current_pos()
        self._advance()  # consume backslash
        ch = self._peek()

        if ch == "":
            raise self._unterminated(scan)

        if is_line_terminator(ch):
            raw = "\\" + self._take_line_terminator()
            self._emit(TokenType.ESCAPE_SEQUENCE, "", raw, start)
            return

        if ch in SIMPLE_ESCAPES:
            self._advance()
            self._emit(TokenType.ESCAPE_SEQUENCE, SIMPLE_ESCAPES[ch], "\\" + ch, start)
            return

        if ch == "x":
            self._advance()
            value = self._read_hex_escape(2, start)
            self._emit(TokenType.ESCAPE_SEQUENCE, value, self._raw_from(start), start)
            return

        if ch in _UNICODE_ESCAPE_DIGITS and not scan.prefix.is_bytes:
            self._advance()
            value = self._read_hex_escape(_UNICODE_ESCAPE_DIGITS[ch], start)
            self._emit(TokenType.ESCAPE_SEQUENCE, value, self._raw_from(start), start)
            return

        if ch == "N" and not scan.prefix.is_bytes:
            self._advance()
            value = self._read_named_escape(start)
            self._emit(TokenType.ESCAPE_SEQUENCE, value, self._raw_from(start), start)
            return

        if is_octal_digit(ch):
            digits = []
            while len(digits) < 3 and is_octal_digit(self._peek()):
                digits.append(self._advance())
            value = chr(int("".join(digits), 8))
            self._emit(TokenType.ESCAPE_SEQUENCE, value, self._raw_from(start), start)
            return

        # Unrecognized escape: the backslash is ordinary text
        self._emit(TokenType.STRING_CONTENT, "\\", "\\", start)

    def _raw_from(self, start: Position) -> str:
        return self._source[start.offset : self._pos]

    def _read_hex_escape(self, count: int, start: Position) -> str:
        """Read `count` hex digits and return the resolved character."""
        digits = []
        for i in range(count):
            ch = self._peek()
            if not is_hex_digit(ch):
                raise self._error(
                    f"truncated \\{self._raw_from(start)[1]} escape: expected {count} hex digits, got {i}",
                    start,
                    InvalidEscapeSequenceError,
                    self._raw_from(start),
                )
            digits.append(self._advance())
        hex_str = "".join(digits)
        codepoint = int(hex_str, 16)
        if codepoint > 0x10FFFF:
            raise self._error(
                f"Unicode codepoint U+{hex_str} is out of range",
                start,
                InvalidEscapeSequenceError,
                self._raw_from(start),
            )
        return chr(codepoint)

    def _read_named_escape(self, start: Position) -> str:
        if self._peek() != "{":
            raise self._error(
                "malformed \\N character escape",
                start,
                InvalidEscapeSequenceError,
                self._raw_from(start),
            )
        self._advance()
        chars = []
        while True:
            ch = self._peek()
            if ch == "}":
                self._advance()
                break
            if ch == "" or ch in ("'", '"') or is_line_terminator(ch):
                raise self._error(
                    "malformed \\N character escape",
                    start,
                    InvalidEscapeSequenceError,
                    self._raw_from(start),
                )
            chars.append(self._advance())

        name = "".join(chars)
        try:
            return unicodedata.lookup(name)
        except KeyError:
            raise self._error(
                f"unknown Unicode character name '{name}'",
                start,
                InvalidEscapeSequenceError,
                self._raw_from(start),
            ) from None

    # ------------------------------------------------------------------
    # Interpolation regions
    # ------------------------------------------------------------------

    def _scan_interpolation_delimiter(self, scan: StringScan) -> bool:
        """Handle }, ! and : at the outermost bracket level of an interpolation."""
        ch = self._peek()
        start = self._current_pos()

        if ch == "}":
            self._advance()
            self._emit(TokenType.INTERPOLATION_CLOSE, "}", "}", start)
            self._pop_frame()
            return True

        if ch == ":":
            self._advance()
            self._emit(TokenType.FORMAT_SPEC, ":", ":", start)
            self._push_format_spec(scan)
            return True

        if ch == "!" and is_identifier_start(self._peek(1)) and self._peek(2) in (":", "}"):
            self._advance()
            letter = self._advance()
            self._emit(TokenType.CONVERSION, letter, "!" + letter, start)
            return True

        return False

    def _scan_format_spec(self, scan: StringScan) -> None:
        ch = self._peek()
        start = self._current_pos()

        if ch == "":
            raise self._unterminated(scan)

        if ch == "{":
            self._advance()
            self._emit(TokenType.INTERPOLATION_OPEN, "{", "{", start)
            self._push_interpolation(scan)
            return

        if ch == "}":
            self._advance()
            self._emit(TokenType.INTERPOLATION_CLOSE, "}", "}", start)
            self._pop_frame()  # format specifier
            self._pop_frame()  # interpolation
            return

        if self._at_spec_boundary(scan):
            raise self._error("f-string: expecting '}'", start)

        chars = []
        while self._peek() not in ("", "{", "}") and not self._at_spec_boundary(scan):
            chars.append(self._advance())
        text = "".join(chars)
        self._emit(TokenType.STRING_CONTENT, text, text, start)

    def _at_spec_boundary(self, scan: StringScan) -> bool:
        if self._source.startswith(scan.quote, self._pos):
            return True
        return is_line_terminator(self._peek()) and not scan.triple
