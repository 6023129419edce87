"""Mermaid flowchart rendering of lineage graphs."""

from __future__ import annotations

import re

from withy.core.models import LineageEdge, LineageNode, NodeKind, QueryLineage, RelationshipKind

# Open/close brackets around the label, per node kind
SHAPES: dict[NodeKind, tuple[str, str]] = {
    NodeKind.MAIN: ("([", "])"),  # stadium
    NodeKind.BASE_TABLE: ("[(", ")]"),  # cylinder
    NodeKind.CTE: ("(", ")"),  # rounded
    NodeKind.SUBQUERY: ("[[", "]]"),  # subroutine
    NodeKind.SCALAR_SUBQUERY: ("{{", "}}"),  # hexagon
    NodeKind.TABLE_FUNCTION: ("[/", "/]"),  # parallelogram
}

# classDef name, fill, stroke, text color; iteration order is the classDef order
NODE_STYLES: dict[NodeKind, tuple[str, str, str, str]] = {
    NodeKind.MAIN: ("main", "#e3f2fd", "#1565c0", "#0d47a1"),
    NodeKind.BASE_TABLE: ("baseTable", "#e8f5e9", "#2e7d32", "#1b5e20"),
    NodeKind.CTE: ("cte", "#f3e5f5", "#7b1fa2", "#4a148c"),
    NodeKind.SUBQUERY: ("subquery", "#fff3e0", "#e65100", "#bf360c"),
    NodeKind.SCALAR_SUBQUERY: ("scalarSubquery", "#fffde7", "#f9a825", "#f57f17"),
    NodeKind.TABLE_FUNCTION: ("tableFunction", "#e0f7fa", "#00838f", "#006064"),
}

EDGE_LABELS: dict[RelationshipKind, str] = {
    RelationshipKind.FROM_TABLE: "reads",
    RelationshipKind.FROM_SUBQUERY: "from subquery",
    RelationshipKind.SCALAR_SUBQUERY: "scalar",
    RelationshipKind.FROM_TABLE_FUNCTION: "table function",
    RelationshipKind.CTE: "CTE",
    RelationshipKind.JOIN: "join",
}

# stroke, stroke-width, label color
EDGE_STYLES: dict[RelationshipKind, tuple[str, str, str]] = {
    RelationshipKind.FROM_TABLE: ("#2e7d32", "2.5px", "#1b5e20"),
    RelationshipKind.FROM_SUBQUERY: ("#e65100", "2px", "#bf360c"),
    RelationshipKind.SCALAR_SUBQUERY: ("#f9a825", "2px", "#f57f17"),
    RelationshipKind.FROM_TABLE_FUNCTION: ("#00838f", "2px", "#006064"),
    RelationshipKind.CTE: ("#7b1fa2", "2px", "#4a148c"),
    RelationshipKind.JOIN: ("#5c6bc0", "2px", "#3949ab"),
}
DEFAULT_EDGE_STYLE = ("#546e7a", "2px", "#37474f")

_UNSAFE_ID = re.compile(r"[^a-zA-Z0-9_]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_id(node_id: str) -> str:
    """Mermaid node ids may only hold letters, digits and underscores."""
    return _UNSAFE_ID.sub("_", node_id)


def escape_label(label: str) -> str:
    """Make a label safe inside ``"..."``: no quotes, brackets or newlines."""
    label = label.replace("\\", "\\\\").replace('"', "#quot;")
    label = label.replace("[", " ").replace("]", " ").replace("\n", " ")
    return _WHITESPACE.sub(" ", label).strip()


def edge_label(edge: LineageEdge) -> str:
    """Human-friendly edge label: the join type for joins, else a fixed word."""
    if edge.relationship_kind == RelationshipKind.JOIN and edge.join_type:
        return edge.join_type.replace("_", " ").lower()
    return EDGE_LABELS.get(edge.relationship_kind, edge.relationship_kind.value)


def _format_node(node: LineageNode, sanitized_id: str) -> str:
    open_, close = SHAPES.get(node.kind, ("[", "]"))
    return f'  {sanitized_id}{open_}"{escape_label(node.label)}"{close}'


def _format_edge(from_id: str, to_id: str, edge: LineageEdge) -> str:
    label = edge_label(edge)
    label_part = f"|{escape_label(label)}|" if label else ""
    return f"  {from_id} -->{label_part} {to_id}"


def lineage_to_mermaid(lineage: QueryLineage) -> str:
    """Convert one statement's lineage graph into a Mermaid flowchart.

    Top-down layout, one shape and color scheme per node kind, one stroke
    style per relationship kind. Edges with an unknown endpoint are dropped.
    """
    id_map = {node.id: sanitize_id(node.id) for node in lineage.nodes}

    lines = ["flowchart TD", "  %% Node styles by kind"]
    for node in lineage.nodes:
        lines.append(_format_node(node, id_map[node.id]))

    kinds_used = {node.kind for node in lineage.nodes}
    for kind, (class_name, fill, stroke, color) in NODE_STYLES.items():
        if kind in kinds_used:
            lines.append(f"  classDef {class_name} fill:{fill},stroke:{stroke},color:{color},stroke-width:2px")

    for node in lineage.nodes:
        lines.append(f"  class {id_map[node.id]} {NODE_STYLES[node.kind][0]}")

    drawn: list[LineageEdge] = []
    lines.append("")
    for edge in lineage.edges:
        from_id = id_map.get(edge.from_id)
        to_id = id_map.get(edge.to_id)
        if from_id is None or to_id is None:
            continue
        lines.append(_format_edge(from_id, to_id, edge))
        drawn.append(edge)

    if drawn:
        lines.append("  %% Edge styles by relationship")
        for index, edge in enumerate(drawn):
            stroke, width, color = EDGE_STYLES.get(edge.relationship_kind, DEFAULT_EDGE_STYLE)
            lines.append(f"  linkStyle {index} stroke:{stroke},stroke-width:{width},color:{color}")

    return "\n".join(lines)
