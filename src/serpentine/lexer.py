"""Serpentine lexer: converts source text into a lazy token stream.

Layout is significant: the lexer emits NEWLINE at the end of each logical
line, INDENT/DEDENT when the indentation width changes, and suppresses all
three inside brackets and interpolation regions. String literals are scanned
by the modes in :mod:`serpentine.strings`.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum, auto

from serpentine.config import DEFAULT_CONFIG, ScanConfig
from serpentine.errors import IndentError, LexError, UnterminatedBracketError, UnterminatedStringError
from serpentine.strings import StringScan, StringScannerMixin, string_prefix_length
from serpentine.tokens import (
    CLOSE_BRACKETS,
    KEYWORDS,
    OPEN_BRACKETS,
    OPERATORS,
    Position,
    Span,
    Token,
    TokenType,
    is_digit,
    is_hex_digit,
    is_identifier_continue,
    is_identifier_start,
    is_line_terminator,
    is_octal_digit,
    is_whitespace,
)


class _Mode(Enum):
    CODE = auto()  # ordinary source, also the inside of an interpolation
    STRING = auto()  # literal part of a string
    FORMAT_SPEC = auto()  # format specifier after ':' in an interpolation


@dataclass(slots=True)
class _Frame:
    mode: _Mode
    string: StringScan | None = None
    bracket_base: int = 0  # open brackets outside this frame


_LAYOUT_TOKENS = frozenset({TokenType.NEWLINE, TokenType.INDENT, TokenType.DEDENT, TokenType.EOF})

_RADIX_DIGITS = {
    "x": ("hexadecimal", is_hex_digit),
    "o": ("octal", is_octal_digit),
    "b": ("binary", lambda ch: ch in ("0", "1")),
}


class Lexer(StringScannerMixin):
    """Tokenize source text on demand, one token per next_token() call."""

    def __init__(
        self,
        source: str,
        filename: str = "<input>",
        config: ScanConfig | None = None,
    ) -> None:
        self._source = source
        self._filename = filename
        self._config = config or DEFAULT_CONFIG
        self._pos = 0
        self._line = 1
        self._col = 1
        self._pending: deque[Token] = deque()
        self._frames: list[_Frame] = [_Frame(_Mode.CODE)]
        # (width, width with tabs counted as one column); the base level is never popped
        self._indents: list[tuple[int, int]] = [(0, 0)]
        self._brackets: list[Token] = []
        self._at_line_start = True
        self._line_has_content = False
        self._eof: Token | None = None

    def next_token(self) -> Token:
        """Return the next token; EOF is returned again once reached."""
        while not self._pending:
            if self._eof is not None:
                return self._eof
            self._scan()
        return self._pending.popleft()

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next_token()
            yield tok
            if tok.type == TokenType.EOF:
                return

    def tokenize(self) -> list[Token]:
        """Tokenize the full source and return the token list."""
        return list(self)

    @property
    def source(self) -> str:
        return self._source

    @property
    def filename(self) -> str:
        return self._filename

    def _scan(self) -> None:
        frame = self._frames[-1]
        if frame.mode == _Mode.STRING:
            assert frame.string is not None
            self._scan_string_part(frame.string)
        elif frame.mode == _Mode.FORMAT_SPEC:
            assert frame.string is not None
            self._scan_format_spec(frame.string)
        elif self._at_line_start:
            self._scan_indentation()
        else:
            self._scan_code()

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n" or (ch == "\r" and self._peek() != "\n"):
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _take_line_terminator(self) -> str:
        """Consume one \\n, \\r\\n or \\r and return its raw text."""
        if self._peek() == "\r" and self._peek(1) == "\n":
            return self._advance() + self._advance()
        return self._advance()

    def _emit(self, tt: TokenType, value: str, raw: str, start: Position | None = None) -> Token:
        end = self._current_pos()
        if start is None:
            start = end
        tok = Token(tt, value, raw, Span(start, end))
        self._pending.append(tok)
        if tt not in _LAYOUT_TOKENS:
            self._line_has_content = True
        return tok

    def _error(
        self,
        message: str,
        pos: Position | None = None,
        cls: type[LexError] = LexError,
        token_text: str = "",
    ) -> LexError:
        if pos is None:
            pos = self._current_pos()
        return cls(message, pos, self._source, token_text)

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def _push_string(self, scan: StringScan) -> None:
        self._frames.append(_Frame(_Mode.STRING, scan))

    def _push_interpolation(self, scan: StringScan) -> None:
        self._frames.append(_Frame(_Mode.CODE, scan, len(self._brackets)))

    def _push_format_spec(self, scan: StringScan) -> None:
        self._frames.append(_Frame(_Mode.FORMAT_SPEC, scan, len(self._brackets)))

    def _pop_frame(self) -> None:
        assert len(self._frames) > 1, "scanner frame stack underflow"
        self._frames.pop()

    def _in_interpolation(self) -> bool:
        return len(self._frames) > 1

    # ------------------------------------------------------------------
    # Logical lines and indentation
    # ------------------------------------------------------------------

    def _scan_indentation(self) -> None:
        """Measure the indentation of a physical line outside brackets.

        Blank and comment-only lines are consumed whole and leave the
        indentation stack untouched.
        """
        start = self._current_pos()
        tab_width = self._config.tab_width
        width = 0
        alt_width = 0
        while True:
            ch = self._peek()
            if ch == " ":
                width += 1
                alt_width += 1
            elif ch == "\t":
                width = (width // tab_width + 1) * tab_width
                alt_width += 1
            elif ch == "\f":
                width = 0
                alt_width = 0
            else:
                break
            self._advance()

        ch = self._peek()
        if ch == "#":
            self._skip_comment()
            ch = self._peek()
        if ch == "":
            self._scan_eof()
            return
        if is_line_terminator(ch):
            self._take_line_terminator()
            return

        self._at_line_start = False
        self._apply_indentation(width, alt_width, start)

    def _apply_indentation(self, width: int, alt_width: int, start: Position) -> None:
        here = self._current_pos()
        top, top_alt = self._indents[-1]

        if width > top:
            if self._config.reject_mixed_indentation and alt_width <= top_alt:
                raise self._mixed_indentation_error(start)
            self._indents.append((width, alt_width))
            self._emit(TokenType.INDENT, "", self._source[start.offset : here.offset], start)
            return

        while self._indents[-1][0] > width:
            self._indents.pop()
            self._emit(TokenType.DEDENT, "", "", here)

        top, top_alt = self._indents[-1]
        if top != width:
            raise self._error(
                "unindent does not match any outer indentation level",
                here,
                IndentError,
                self._source[start.offset : here.offset],
            )
        if self._config.reject_mixed_indentation and alt_width != top_alt:
            raise self._mixed_indentation_error(start)

    def _mixed_indentation_error(self, start: Position) -> LexError:
        return self._error(
            "inconsistent use of tabs and spaces in indentation",
            start,
            IndentError,
            self._source[start.offset : self._pos],
        )

    def _scan_line_end(self) -> None:
        start = self._current_pos()
        raw = self._take_line_terminator()
        if self._brackets or self._in_interpolation():
            # Implicit line joining
            return
        if self._line_has_content:
            self._emit(TokenType.NEWLINE, "\n", raw, start)
            self._line_has_content = False
        self._at_line_start = True

    def _scan_continuation(self) -> None:
        start = self._current_pos()
        self._advance()  # consume backslash
        ch = self._peek()
        if ch == "":
            raise self._error("unexpected end of input after line continuation character", start)
        if not is_line_terminator(ch):
            raise self._error(
                "unexpected character after line continuation character", start, token_text="\\"
            )
        self._take_line_terminator()

    def _skip_comment(self) -> None:
        while self._pos < len(self._source) and not is_line_terminator(self._peek()):
            self._advance()

    def _scan_eof(self) -> None:
        for frame in reversed(self._frames):
            if frame.string is not None:
                raise self._unterminated(frame.string)
        if self._brackets:
            tok = self._brackets[-1]
            raise UnterminatedBracketError(
                f"'{tok.value}' was never closed",
                tok.span.start,
                self._source,
                tok.raw,
                tok.span.end,
            )

        if self._line_has_content:
            self._emit(TokenType.NEWLINE, "", "")
            self._line_has_content = False
        while len(self._indents) > 1:
            self._indents.pop()
            self._emit(TokenType.DEDENT, "", "")
        self._eof = self._emit(TokenType.EOF, "", "")

    def _unterminated(self, scan: StringScan) -> LexError:
        what = "triple-quoted string literal" if scan.triple else "string literal"
        return UnterminatedStringError(
            f"unterminated {what} (opened with {scan.opening})",
            scan.start,
            self._source,
            scan.opening,
        )

    # ------------------------------------------------------------------
    # Code mode
    # ------------------------------------------------------------------

    def _scan_code(self) -> None:
        while is_whitespace(self._peek()):
            self._advance()

        ch = self._peek()

        if ch == "":
            self._scan_eof()
            return

        if ch == "#":
            self._skip_comment()
            return

        if is_line_terminator(ch):
            self._scan_line_end()
            return

        if ch == "\\":
            self._scan_continuation()
            return

        frame = self._frames[-1]
        if frame.string is not None and len(self._brackets) == frame.bracket_base:
            if self._scan_interpolation_delimiter(frame.string):
                return

        if is_digit(ch) or (ch == "." and is_digit(self._peek(1))):
            self._scan_number()
            return

        if ch in ("'", '"'):
            self._scan_string_open(0)
            return

        if is_identifier_start(ch):
            prefix_len = string_prefix_length(self._source, self._pos)
            if prefix_len is not None:
                self._scan_string_open(prefix_len)
            else:
                self._scan_name()
            return

        self._scan_operator()

    def _scan_name(self) -> None:
        start = self._current_pos()
        chars = []
        while is_identifier_continue(self._peek()):
            chars.append(self._advance())
        text = "".join(chars)
        tt = TokenType.KEYWORD if text in KEYWORDS else TokenType.IDENTIFIER
        self._emit(tt, text, text, start)

    def _scan_operator(self) -> None:
        start = self._current_pos()
        for op in OPERATORS:
            if self._source.startswith(op, self._pos):
                break
        else:
            ch = self._peek()
            raise self._error(f"invalid character '{ch}' (U+{ord(ch):04X})", start, token_text=ch)

        if op in CLOSE_BRACKETS:
            self._check_close_bracket(op, start)
        for _ in op:
            self._advance()
        tok = self._emit(TokenType.OPERATOR, op, op, start)
        if op in OPEN_BRACKETS:
            self._brackets.append(tok)

    def _check_close_bracket(self, op: str, start: Position) -> None:
        if len(self._brackets) <= self._frames[-1].bracket_base:
            raise self._error(f"unmatched '{op}'", start, token_text=op)
        opener = self._brackets.pop()
        if OPEN_BRACKETS[opener.value] != op:
            raise self._error(
                f"closing parenthesis '{op}' does not match opening parenthesis '{opener.value}'",
                start,
                token_text=op,
            )

    # ------------------------------------------------------------------
    # Numbers
    # ------------------------------------------------------------------

    def _scan_number(self) -> None:
        start = self._current_pos()

        radix = self._peek(1).lower()
        if self._peek() == "0" and radix in _RADIX_DIGITS:
            name, accepts = _RADIX_DIGITS[radix]
            self._advance()
            self._advance()
            count = 0
            while True:
                ch = self._peek()
                if ch == "_" and accepts(self._peek(1)):
                    self._advance()
                elif ch != "" and accepts(ch):
                    self._advance()
                    count += 1
                else:
                    break
            if count == 0:
                raise self._error(f"invalid {name} literal", start)
            if self._peek() in ("l", "L"):
                self._advance()
            text = self._source[start.offset : self._pos]
            self._emit(TokenType.INTEGER, text, text, start)
            return

        is_float = False
        self._scan_digits()
        if self._peek() == ".":
            self._advance()
            is_float = True
            self._scan_digits()
        if self._peek() in ("e", "E"):
            sign = self._peek(1)
            if is_digit(sign) or (sign in ("+", "-") and is_digit(self._peek(2))):
                self._advance()
                if sign in ("+", "-"):
                    self._advance()
                self._scan_digits()
                is_float = True
        if self._peek() in ("j", "J", "l", "L"):
            self._advance()

        text = self._source[start.offset : self._pos]
        self._emit(TokenType.FLOAT if is_float else TokenType.INTEGER, text, text, start)

    def _scan_digits(self) -> None:
        while is_digit(self._peek()) or (self._peek() == "_" and is_digit(self._peek(1))):
            self._advance()


def tokenize(
    source: str,
    filename: str = "<input>",
    config: ScanConfig | None = None,
) -> list[Token]:
    """Convenience function: tokenize source text and return token list."""
    return Lexer(source, filename, config).tokenize()
