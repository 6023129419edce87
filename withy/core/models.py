"""Data models for representing query lineage graphs."""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeKind(str, enum.Enum):
    """What a lineage node stands for."""

    MAIN = "main"
    CTE = "cte"
    SUBQUERY = "subquery"
    SCALAR_SUBQUERY = "scalar_subquery"
    BASE_TABLE = "base_table"
    TABLE_FUNCTION = "table_function"


class RelationshipKind(str, enum.Enum):
    """How a source feeds its consumer."""

    CTE = "cte"
    FROM_TABLE = "from_table"
    FROM_SUBQUERY = "from_subquery"
    JOIN = "join"
    FROM_TABLE_FUNCTION = "from_table_function"
    SCALAR_SUBQUERY = "scalar_subquery"


class SetopSide(str, enum.Enum):
    LEFT = "left"
    RIGHT = "right"


class LineageNode(BaseModel):
    """A table, CTE, subquery or table function in one statement's graph."""

    id: str
    label: str
    kind: NodeKind
    alias: Optional[str] = None  # name used in the query (e.g. in JOIN ON refs)
    query_location: Optional[int] = None
    select_list: Optional[list[str]] = None  # output column labels


class LineageEdge(BaseModel):
    """A directed edge from a source to the select that reads it."""

    model_config = ConfigDict(populate_by_name=True)

    from_id: str = Field(alias="fromId")
    to_id: str = Field(alias="toId")
    relationship_kind: RelationshipKind
    # Set when the edge sits under a UNION / INTERSECT / EXCEPT branch
    setop_type: Optional[str] = None
    setop_side: Optional[SetopSide] = None
    # Set when relationship_kind is "join"
    join_type: Optional[str] = None
    ref_type: Optional[str] = None
    columns: Optional[list[str]] = None  # USING columns or ON condition refs
    left_alias: Optional[str] = None
    right_alias: Optional[str] = None
    condition_class: Optional[str] = None
    condition_type: Optional[str] = None


class QueryLineage(BaseModel):
    """Lineage graph of one statement."""

    nodes: list[LineageNode] = Field(default_factory=list)
    edges: list[LineageEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[LineageNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def has_edge(self, from_id: str, to_id: str) -> bool:
        return any(e.from_id == from_id and e.to_id == to_id for e in self.edges)

    def add_node(self, node: LineageNode) -> str:
        """Add a node unless one with the same id exists. Returns the node ID."""
        if not self.has_node(node.id):
            self.nodes.append(node)
        return node.id

    def add_edge(self, edge: LineageEdge) -> None:
        """Add an edge. Edges are not deduplicated: one per reference site."""
        self.edges.append(edge)

    def get_upstream(self, node_id: str) -> list[str]:
        """Get the ids of all nodes that feed directly into the given node."""
        return [e.from_id for e in self.edges if e.to_id == node_id]

    def get_downstream(self, node_id: str) -> list[str]:
        """Get the ids of all nodes the given node feeds directly into."""
        return [e.to_id for e in self.edges if e.from_id == node_id]

    def to_dict(self) -> dict[str, Any]:
        """Export to the JSON shape other tools consume (absent fields omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
