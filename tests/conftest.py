"""Shared fixtures: JSON fixture files under tests/fixtures."""

import json
from pathlib import Path

import pytest

from withy.core.extractor import extract_lineage
from withy.core.fixtures import unwrap_fixture
from withy.core.parser import parse_serialized_sql

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir():
    return FIXTURES_DIR


@pytest.fixture
def load_payload():
    """Return the (unwrapped) serialized-SQL JSON text of a fixture file."""

    def _load(name: str) -> str:
        return unwrap_fixture((FIXTURES_DIR / name).read_text(encoding="utf-8"))

    return _load


@pytest.fixture
def lineages_for(load_payload):
    """Parse a fixture and extract its lineage graphs."""

    def _extract(name: str):
        return extract_lineage(parse_serialized_sql(load_payload(name)).statements)

    return _extract


@pytest.fixture
def load_expected():
    def _load(name: str):
        path = FIXTURES_DIR / name.replace(".json", ".expected.json")
        return json.loads(path.read_text(encoding="utf-8"))

    return _load
