"""Command-line interface for Serpentine."""

from __future__ import annotations

import argparse
import io
import json
import sys
import time
from dataclasses import dataclass
from pathlib import Path

from serpentine.config import ScanConfig, load_config, scan_config_from
from serpentine.errors import SourceError
from serpentine.tokens import Token


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    output_file: Path | None
    scan_config: ScanConfig
    tokens: bool
    json: bool
    watch: bool
    debug: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="serpentine",
        description="Parse Python-like source into a concrete syntax tree",
    )
    p.add_argument("input", help="Input source file")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument("--tokens", action="store_true", help="Print the token stream instead of the tree")
    p.add_argument("--json", action="store_true", help="Emit the tree and errors as JSON")
    p.add_argument(
        "--tab-width",
        type=int,
        default=None,
        metavar="N",
        help="Columns per tab stop for indentation (default: 8)",
    )
    p.add_argument(
        "--reject-mixed-indentation",
        action="store_true",
        default=None,
        help="Reject indentation whose meaning depends on the tab width",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover serpentine.toml)",
    )
    p.add_argument("--watch", action="store_true", help="Watch for changes and re-parse")
    p.add_argument("--debug", action="store_true", help="Dump the tree to stderr")
    return p


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)
    scan_config = scan_config_from(config)

    tab_width = scan_config.tab_width
    if args.tab_width is not None:
        tab_width = args.tab_width

    reject_mixed = scan_config.reject_mixed_indentation
    if args.reject_mixed_indentation is not None:
        reject_mixed = args.reject_mixed_indentation

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        output_file=output_file,
        scan_config=ScanConfig(tab_width=tab_width, reject_mixed_indentation=reject_mixed),
        tokens=args.tokens,
        json=args.json,
        watch=args.watch,
        debug=args.debug,
    )


def process_file(options: CliOptions) -> str:
    """Read and scan or parse a file, returning the text to output."""
    from serpentine.debug import dump_tokens, dump_tree, format_tree, tree_to_dict
    from serpentine.lexer import tokenize
    from serpentine.parser import parse

    source = options.input_file.read_text(encoding="utf-8")
    filename = str(options.input_file)

    if options.tokens:
        tokens = tokenize(source, filename, options.scan_config)
        if options.json:
            return json.dumps([_token_to_dict(t) for t in tokens], indent=2) + "\n"
        buf = io.StringIO()
        dump_tokens(tokens, file=buf)
        return buf.getvalue()

    tree = parse(source, filename, config=options.scan_config)

    if options.debug:
        dump_tree(tree)

    if options.json:
        return json.dumps(tree_to_dict(tree), indent=2) + "\n"
    return format_tree(tree) + "\n"


def _token_to_dict(tok: Token) -> dict[str, object]:
    return {
        "type": tok.type.name,
        "value": tok.value,
        "line": tok.span.start.line,
        "column": tok.span.start.column,
    }


def _report(exc: SourceError, options: CliOptions) -> None:
    if options.json:
        print(json.dumps(exc.to_dict()), file=sys.stderr)
    else:
        print(exc.format(str(options.input_file)), file=sys.stderr)


def _write(text: str, options: CliOptions) -> None:
    if options.output_file:
        options.output_file.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)


def watch_loop(options: CliOptions) -> None:
    """Poll input file for changes, re-parse on each modification."""
    last_mtime = 0.0
    print(f"Watching {options.input_file} for changes...", file=sys.stderr)
    try:
        while True:
            try:
                mtime = options.input_file.stat().st_mtime
            except OSError:
                time.sleep(0.5)
                continue
            if mtime != last_mtime:
                last_mtime = mtime
                try:
                    _write(process_file(options), options)
                    sys.stdout.flush()
                    print(f"Parsed {options.input_file}", file=sys.stderr)
                except SourceError as exc:
                    _report(exc, options)
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = resolve_options(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if options.watch:
        watch_loop(options)
        return 0

    try:
        text = process_file(options)
    except SourceError as exc:
        _report(exc, options)
        return 1
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    _write(text, options)
    return 0
