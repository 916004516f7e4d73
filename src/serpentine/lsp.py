"""Minimal LSP server for Serpentine, publishing syntax diagnostics only."""

from __future__ import annotations

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from serpentine import __version__
from serpentine.errors import SourceError
from serpentine.parser import parse

server = LanguageServer(
    "serpentine-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full
)


def diagnostic_for(exc: SourceError) -> Diagnostic:
    """Convert a syntax error into an LSP diagnostic (0-based positions)."""
    start = exc.span.start
    end = exc.span.end
    end_col = end.column - 1
    if end == start:
        # Zero-width spans still need a visible range
        end_col += 1
    return Diagnostic(
        range=Range(
            start=Position(line=start.line - 1, character=start.column - 1),
            end=Position(line=end.line - 1, character=end_col),
        ),
        message=exc.message,
        severity=DiagnosticSeverity.Error,
        source="serpentine",
        code=exc.kind,
    )


def _validate(ls: LanguageServer, uri: str) -> None:
    """Parse the document and publish its diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    filename = uri.rsplit("/", 1)[-1] if "/" in uri else uri
    diagnostics: list[Diagnostic] = []

    try:
        parse(doc.source, filename)
    except SourceError as exc:
        diagnostics.append(diagnostic_for(exc))

    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
