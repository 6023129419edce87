"""Exception classes raised while reading serialized SQL.

The lineage extractor itself never raises: everything here is reported by the
envelope parser before a statement reaches the extractor.
"""

from __future__ import annotations

from typing import Optional


class WithyError(Exception):
    """Base exception class for all withy errors.

    Attributes:
        message: Human-readable error message.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class SerializedSQLError(WithyError):
    """The input is not a usable json_serialize_sql() response."""


class InvalidJsonError(SerializedSQLError):
    """Raised when the input text cannot be decoded as JSON."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid JSON: {detail}")


class NotAnObjectError(SerializedSQLError):
    """Raised when the top-level JSON value is not an object."""

    def __init__(self) -> None:
        super().__init__("Expected a JSON object")


class EngineReportedError(SerializedSQLError):
    """Raised when DuckDB itself reported an error (``"error": true``).

    Attributes:
        message: ``error_message``, else ``error_type``, else a generic text.
        error_type: DuckDB's error category (e.g. ``"parser"``), if given.
        error_subtype: DuckDB's error subtype, if given.
        position: Character position DuckDB reported, if given.
    """

    def __init__(
        self,
        message: str,
        error_type: Optional[str] = None,
        error_subtype: Optional[str] = None,
        position: Optional[str] = None,
    ) -> None:
        self.error_type = error_type
        self.error_subtype = error_subtype
        self.position = position
        super().__init__(message)


class NoStatementsError(SerializedSQLError):
    """Raised when a successful response carries no statements."""

    def __init__(self) -> None:
        super().__init__("No statements in serialized SQL response")
