"""Envelope parser for DuckDB json_serialize_sql() responses."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from withy.core.ast import SerializedSQL, is_serialized_sql_success
from withy.exceptions import (
    EngineReportedError,
    InvalidJsonError,
    NoStatementsError,
    NotAnObjectError,
)

logger = logging.getLogger(__name__)


def parse_serialized_sql(text: str) -> SerializedSQL:
    """Parse the JSON output of DuckDB's json_serialize_sql().

    Args:
        text: The raw JSON response.

    Returns:
        The validated response, holding at least one statement.

    Raises:
        InvalidJsonError: If the text is not JSON.
        NotAnObjectError: If the top-level value is not a JSON object.
        EngineReportedError: If DuckDB reported an error (``"error": true``).
        NoStatementsError: If the response holds no statements.
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug("Rejected input: %s", e)
        raise InvalidJsonError(str(e)) from e
    except RecursionError as e:
        logger.debug("Rejected input: nested too deeply")
        raise InvalidJsonError("document is nested too deeply") from e

    if not isinstance(raw, dict):
        raise NotAnObjectError()

    if raw.get("error") is True:
        message = raw.get("error_message") or raw.get("error_type") or "Unknown DuckDB error"
        logger.debug("DuckDB reported an error: %s", message)
        raise EngineReportedError(
            str(message),
            error_type=raw.get("error_type"),
            error_subtype=raw.get("error_subtype"),
            position=raw.get("position"),
        )

    root = SerializedSQL.model_validate(raw)
    if not is_serialized_sql_success(root):
        raise NoStatementsError()
    return root


def parse_file(file_path: str | Path) -> SerializedSQL:
    """Parse a file holding json_serialize_sql() output."""
    path = Path(file_path)
    return parse_serialized_sql(path.read_text(encoding="utf-8"))
