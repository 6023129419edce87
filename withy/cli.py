"""CLI entry point for withy."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from withy import __version__
from withy.config import get_settings
from withy.core.extractor import extract_lineage
from withy.core.fixtures import unwrap_fixture
from withy.core.mermaid import lineage_to_mermaid
from withy.core.models import QueryLineage
from withy.core.parser import parse_serialized_sql
from withy.exceptions import SerializedSQLError

FORMATS = ("json", "mermaid")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
STATEMENT_DIVIDER = "\n\n---\n\n"


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="withy",
        description="Turn DuckDB json_serialize_sql() output into CTE/subquery lineage graphs.",
        epilog="If no file is given, JSON is read from stdin.",
    )
    parser.add_argument(
        "file",
        nargs="?",
        default=None,
        help="File holding json_serialize_sql() output",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=FORMATS,
        default=settings.output_format if settings.output_format in FORMATS else "json",
        help="Output format (default: json)",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=__version__,
    )
    log_level = settings.log_level.upper() if settings.log_level.upper() in LOG_LEVELS else "WARNING"
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=log_level,
        help=f"Logging level (default: {log_level})",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Launch the HTTP API instead of reading input",
    )
    parser.add_argument(
        "--host",
        default=settings.api_host,
        help=f"Host to bind to with --serve (default: {settings.api_host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.api_port,
        help=f"Port to bind to with --serve (default: {settings.api_port})",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.serve:
        _cmd_serve(args)
        return

    text = _read_input(args.file)
    try:
        output = render(text, args.format)
    except SerializedSQLError as e:
        print(e.message, file=sys.stderr)
        sys.exit(1)
    sys.stdout.write(output + "\n")


def _read_input(path: Optional[str]) -> str:
    if path is None:
        return sys.stdin.read()
    try:
        with open(path, encoding="utf-8") as fh:
            return fh.read()
    except OSError as e:
        print(f"Error reading file: {e}", file=sys.stderr)
        sys.exit(1)


def render(text: str, output_format: str = "json") -> str:
    """Parse input text and render every statement's lineage.

    Raises:
        SerializedSQLError: If the input is not a usable response.
    """
    root = parse_serialized_sql(unwrap_fixture(text))

    lineages = extract_lineage(root.statements)
    if output_format == "mermaid":
        return format_mermaid(lineages)
    return json.dumps([lineage.to_dict() for lineage in lineages], indent=2)


def format_mermaid(lineages: list[QueryLineage]) -> str:
    """One diagram per statement, numbered when there are several."""
    parts = []
    for index, lineage in enumerate(lineages, 1):
        diagram = lineage_to_mermaid(lineage)
        if len(lineages) > 1:
            diagram = f"%% Statement {index}\n{diagram}"
        parts.append(diagram)
    return STATEMENT_DIVIDER.join(parts)


def _cmd_serve(args: argparse.Namespace) -> None:
    """Launch the HTTP API server."""
    import uvicorn

    print(f"withy API listening on http://{args.host}:{args.port}", file=sys.stderr)
    uvicorn.run(
        "withy.api.server:app",
        host=args.host,
        port=args.port,
        reload=False,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
