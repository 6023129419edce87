"""Generate EXAMPLES.md from the JSON fixtures under tests/fixtures."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import sqlglot
from sqlglot.errors import SqlglotError

from withy.core.extractor import extract_lineage
from withy.core.fixtures import split_fixture
from withy.core.mermaid import lineage_to_mermaid
from withy.core.parser import parse_serialized_sql
from withy.exceptions import SerializedSQLError

logger = logging.getLogger(__name__)

DEFAULT_FIXTURES = Path("tests") / "fixtures"
DEFAULT_OUTPUT = Path("EXAMPLES.md")


def list_fixtures(fixtures_dir: Path) -> list[Path]:
    """Fixture inputs in name order (``*.expected.json`` golden files excluded)."""
    return sorted(
        p for p in fixtures_dir.glob("*.json") if not p.name.endswith(".expected.json")
    )


def format_sql(sql: str) -> str:
    """Pretty-print a DuckDB statement; returns it unchanged if sqlglot cannot parse it."""
    try:
        return ";\n".join(sqlglot.transpile(sql, read="duckdb", write="duckdb", pretty=True))
    except SqlglotError as e:
        logger.debug("Keeping SQL unformatted: %s", e)
        return sql


def _text_block(lines: list[str], title: str, body: str) -> None:
    lines.extend([title, "", "```text", body, "```", ""])


def render_examples(fixtures_dir: Path, repo_root: Optional[Path] = None) -> str:
    """Render one Markdown section per fixture with its Mermaid diagram(s).

    Fixture paths are shown relative to ``repo_root`` (default: the working
    directory).
    """
    repo_root = repo_root if repo_root is not None else Path.cwd()
    lines = [
        "# withy examples",
        "",
        "Generated from `tests/fixtures/*.json`.",
        "",
    ]

    for path in list_fixtures(fixtures_dir):
        try:
            rel = path.resolve().relative_to(repo_root.resolve()).as_posix()
        except ValueError:
            rel = path.as_posix()
        name = path.stem.replace("`", "\\`")
        lines.extend([f"## {name}", "", f"- Fixture: `{rel}`", ""])

        try:
            fixture = split_fixture(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            _text_block(lines, "Could not parse fixture JSON:", str(e))
            continue

        if fixture.statement is not None:
            lines.extend(["DuckDB call used to generate the payload:", "", "```sql"])
            lines.append(format_sql(fixture.statement))
            lines.extend(["```", ""])

        try:
            root = parse_serialized_sql(fixture.payload_json)
        except SerializedSQLError as e:
            _text_block(lines, "Parse error:", e.message)
            continue

        lineages = extract_lineage(root.statements)
        if not lineages:
            lines.extend(["No statements found.", ""])
            continue

        for index, lineage in enumerate(lineages, 1):
            if len(lineages) > 1:
                lines.extend([f"### Statement {index}", ""])
            lines.extend(["```mermaid", lineage_to_mermaid(lineage), "```", ""])

    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> None:
    """Write EXAMPLES.md (``withy-examples`` console script)."""
    parser = argparse.ArgumentParser(prog="withy-examples", description=__doc__)
    parser.add_argument(
        "--fixtures",
        type=Path,
        default=DEFAULT_FIXTURES,
        help="Directory of fixture JSON files (default: tests/fixtures under the working directory)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT,
        help="Markdown file to write (default: EXAMPLES.md in the working directory)",
    )
    args = parser.parse_args(argv)

    if not args.fixtures.is_dir():
        print(f"Error: fixtures directory not found: {args.fixtures}", file=sys.stderr)
        sys.exit(1)

    markdown = render_examples(args.fixtures)
    args.output.write_text(markdown, encoding="utf-8")
    print(f"Wrote {args.output}")


if __name__ == "__main__":
    main()
