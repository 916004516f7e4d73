"""Error types with formatted source context."""

from __future__ import annotations

from typing import Any

from serpentine.tokens import Position, Span


class SourceError(Exception):
    """Base for all user-facing syntax errors, with span and source context.

    Scanning and parsing stop at the first error; there is no recovery.
    """

    kind = "SyntaxError"

    def __init__(self, message: str, span: Span, source: str, token_text: str = "") -> None:
        self.message = message
        self.span = span
        self.source = source
        self.token_text = token_text
        super().__init__(self.format())

    @property
    def line(self) -> int:
        return self.span.start.line

    @property
    def column(self) -> int:
        return self.span.start.column

    def to_dict(self) -> dict[str, Any]:
        """Return the structured form used by the CLI's JSON output."""
        return {
            "kind": self.kind,
            "message": self.message,
            "line": self.line,
            "column": self.column,
            "offending_token_text": self.token_text,
        }

    def format(self, filename: str = "<input>") -> str:
        lines = self.source.splitlines(keepends=True)
        line_idx = self.span.start.line - 1
        col = self.span.start.column

        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        # Underline the full span when on one line, otherwise to end of line
        if self.span.end.line == self.span.start.line:
            underline_len = max(1, self.span.end.column - col)
        else:
            underline_len = max(1, len(source_line) - col + 1)

        pad = " " * (col - 1)
        carets = "^" * underline_len

        line_num = str(self.span.start.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        return (
            f"error[{self.kind}]: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{self.span.start.line}:{col}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}{carets}"
        )


class LexError(SourceError):
    """Raised by the scanner on the first error, anchored at one position."""

    def __init__(
        self,
        message: str,
        position: Position,
        source: str,
        token_text: str = "",
        end: Position | None = None,
    ) -> None:
        self.position = position
        super().__init__(message, Span(position, end or position), source, token_text)


class IndentError(LexError):
    """Dedent to a width that no enclosing block uses, or tab/space mixing."""

    kind = "IndentationError"


class UnterminatedStringError(LexError):
    """End of input or a disallowed line break before the closing quote."""

    kind = "UnterminatedStringError"


class UnterminatedBracketError(LexError):
    """End of input while a bracket is still open."""

    kind = "UnterminatedBracketError"


class InvalidEscapeSequenceError(LexError):
    """Malformed \\x, \\u, \\U or \\N{...} escape in a non-raw string."""

    kind = "InvalidEscapeSequenceError"


class ParseError(SourceError):
    """Raised by the parser on the first error."""


class UnexpectedTokenError(ParseError):
    """The parser expected one of a specific set of tokens."""

    kind = "UnexpectedTokenError"

    def __init__(
        self,
        message: str,
        span: Span,
        source: str,
        token_text: str = "",
        expected: tuple[str, ...] = (),
    ) -> None:
        self.expected = expected
        super().__init__(message, span, source, token_text)


class InvalidTargetError(ParseError):
    """An expression in binding position that has no pattern form."""

    kind = "InvalidTargetError"


class ParseCancelled(Exception):
    """The caller's cancellation flag was set; no tree is produced."""

    def __init__(self, statements_done: int = 0) -> None:
        self.statements_done = statements_done
        super().__init__(f"parse cancelled after {statements_done} statement(s)")
