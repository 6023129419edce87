"""Fixture format helpers.

Besides the bare response object, withy accepts a one-element array whose
single key is the DuckDB call that produced the payload::

    [{"SELECT json_serialize_sql('SELECT 1')": {"error": false, ...}}]

which is what DuckDB's JSON output mode prints for such a call.
"""

from __future__ import annotations

import json
from typing import Any, NamedTuple, Optional


class FixturePayload(NamedTuple):
    """A fixture split into the producing call (if wrapped) and its payload."""

    statement: Optional[str]
    payload_json: str


def split_fixture(text: str) -> FixturePayload:
    """Split fixture text; raises ``json.JSONDecodeError`` on invalid JSON."""
    parsed: Any = json.loads(text)
    if isinstance(parsed, list) and parsed and isinstance(parsed[0], dict) and len(parsed[0]) == 1:
        statement, payload = next(iter(parsed[0].items()))
        return FixturePayload(statement, json.dumps(payload))
    return FixturePayload(None, text)


def unwrap_fixture(text: str) -> str:
    """Return the payload JSON of a wrapped fixture, else the text unchanged.

    Text that is not JSON is passed through so the envelope parser reports it.
    """
    try:
        return split_fixture(text).payload_json
    except json.JSONDecodeError:
        return text
