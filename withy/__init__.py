"""withy: CTE and subquery lineage from DuckDB's serialized SQL."""

__version__ = "0.1.0"

from withy.core.models import (
    LineageEdge,
    LineageNode,
    NodeKind,
    QueryLineage,
    RelationshipKind,
)
from withy.core.extractor import extract_lineage
from withy.core.mermaid import lineage_to_mermaid
from withy.core.parser import parse_serialized_sql
from withy.exceptions import SerializedSQLError

__all__ = [
    "LineageNode",
    "LineageEdge",
    "QueryLineage",
    "NodeKind",
    "RelationshipKind",
    "extract_lineage",
    "lineage_to_mermaid",
    "parse_serialized_sql",
    "SerializedSQLError",
]
