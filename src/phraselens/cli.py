"""Command-line interface for phraselens.

Usage:
    phraselens segments "Hillary Clinton spoke to CNN"
    phraselens rewrite page.html
    phraselens rewrite --text < notes.txt
    phraselens patterns
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from phraselens import __version__

if TYPE_CHECKING:
    import argparse

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    """Build argparse parser for phraselens subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="phraselens",
        description="Rewrite known phrases in text and HTML.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--log", action="store_true", help="Write a log file under the log dir"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # segments
    seg_p = sub.add_parser("segments", help="Show the segments found in TEXT")
    seg_p.add_argument("text", help="Text to scan")

    # rewrite
    rw_p = sub.add_parser("rewrite", help="Rewrite an HTML file (or stdin)")
    rw_p.add_argument("file", nargs="?", type=Path, help="Input file (default: stdin)")
    rw_p.add_argument(
        "--text",
        action="store_true",
        help="Treat input as plain text and print the rewritten string",
    )

    # patterns
    sub.add_parser("patterns", help="List the built-in registry")

    return parser


def _cmd_segments(text: str, *, console: Console | None = None) -> None:
    """Print identified segments as a Rich table."""
    from phraselens.rewrite import default_pattern_table, identify_segments

    con = console or globals()["console"]
    segments = identify_segments(text, default_pattern_table())
    if not segments:
        con.print("[yellow]No segments found.[/]")
        return

    table = Table(title="Segments")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Original", style="cyan")
    table.add_column("Replacement", style="green")
    for segment in segments:
        table.add_row(
            str(segment.start_index),
            str(segment.end_index),
            segment.original_text,
            segment.replacement_text,
        )
    con.print(table)


def _cmd_rewrite(
    source: str, *, plain_text: bool = False, console: Console | None = None
) -> None:
    """Print the rewritten markup (or plain string)."""
    from phraselens.engine import rewrite_html
    from phraselens.rewrite import default_pattern_table, rewrite_text

    con = console or globals()["console"]
    if plain_text:
        result = rewrite_text(source, default_pattern_table())
    else:
        result = rewrite_html(source)
    # Raw output: no markup interpretation, no wrapping
    con.print(result, markup=False, highlight=False, soft_wrap=True)


def _cmd_patterns(*, console: Console | None = None) -> None:
    """List registry entries with their key terms."""
    from phraselens.rewrite import default_pattern_table

    con = console or globals()["console"]
    patterns = default_pattern_table()

    table = Table(title=f"Patterns ({len(patterns)})")
    table.add_column("Id", style="cyan")
    table.add_column("Pattern")
    table.add_column("Replacement", style="green")
    table.add_column("Key terms", style="dim")
    for key, entry in patterns.items():
        table.add_row(
            key,
            entry.matcher.pattern,
            entry.replacement,
            ", ".join(entry.key_terms) or "[red]none[/]",
        )
    con.print(table)
    if not patterns.has_prefilter:
        con.print("[yellow]Pre-check disabled: an entry has no key terms.[/]")


def _read_source(path: Path | None) -> str:
    if path is None:
        return sys.stdin.read()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        console.print(f"[red]Error:[/] cannot read {path}: {exc.strerror}")
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``phraselens`` command."""
    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.log:
        from phraselens import setup_logging

        setup_logging()

    match args.command:
        case "segments":
            _cmd_segments(args.text)
        case "rewrite":
            _cmd_rewrite(_read_source(args.file), plain_text=args.text)
        case "patterns":
            _cmd_patterns()
