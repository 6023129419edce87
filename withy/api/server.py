"""FastAPI backend exposing lineage extraction over HTTP."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from withy import __version__
from withy.config import get_settings
from withy.core.extractor import extract_lineage
from withy.core.fixtures import unwrap_fixture
from withy.core.mermaid import lineage_to_mermaid
from withy.core.parser import parse_serialized_sql
from withy.exceptions import SerializedSQLError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="withy",
    description="CTE and subquery lineage from DuckDB json_serialize_sql() output",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health():
    """Liveness probe."""
    return {"status": "ok", "version": __version__}


@app.post("/api/lineage")
async def lineage(request: Request, format: Literal["json", "mermaid"] = "json"):
    """Extract lineage from a json_serialize_sql() response sent as the raw body.

    The fixture format (``[{"<duckdb call>": payload}]``) is accepted too.
    Returns ``{"lineages": [...]}`` or, with ``?format=mermaid``,
    ``{"diagrams": [...]}`` with one entry per statement.
    """
    body = (await request.body()).decode("utf-8", errors="replace")
    try:
        root = parse_serialized_sql(unwrap_fixture(body))
    except SerializedSQLError as e:
        logger.info("Rejected lineage request: %s", e.message)
        raise HTTPException(status_code=400, detail=e.message) from e

    lineages = extract_lineage(root.statements)
    if format == "mermaid":
        return {"diagrams": [lineage_to_mermaid(item) for item in lineages]}
    return {"lineages": [item.to_dict() for item in lineages]}
