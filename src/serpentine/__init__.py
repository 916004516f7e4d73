"""Serpentine: lexer and concrete-syntax parser for Python-like source."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from serpentine.ast import Node
    from serpentine.config import ScanConfig
    from serpentine.parser import CancelFlag
    from serpentine.tokens import Token

__version__ = "0.1.0"


def parse(
    source: str,
    filename: str = "<input>",
    *,
    config: ScanConfig | None = None,
    cancel: CancelFlag | None = None,
) -> Node:
    """Parse source text into a ``program`` tree."""
    from serpentine.parser import parse as _parse

    return _parse(source, filename, config=config, cancel=cancel)


def tokenize(
    source: str,
    filename: str = "<input>",
    config: ScanConfig | None = None,
) -> list[Token]:
    """Scan source text into a token list ending with EOF."""
    from serpentine.lexer import tokenize as _tokenize

    return _tokenize(source, filename, config)
