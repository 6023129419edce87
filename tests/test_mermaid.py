"""Tests for the Mermaid renderer."""

from withy.core.mermaid import edge_label, escape_label, lineage_to_mermaid, sanitize_id
from withy.core.models import (
    LineageEdge,
    LineageNode,
    NodeKind,
    QueryLineage,
    RelationshipKind,
)


def _graph(nodes, edges=()):
    lineage = QueryLineage()
    for node_id, label, kind in nodes:
        lineage.add_node(LineageNode(id=node_id, label=label, kind=kind))
    for edge in edges:
        lineage.add_edge(edge)
    return lineage


def _edge(from_id, to_id, kind, **extra):
    return LineageEdge(from_id=from_id, to_id=to_id, relationship_kind=kind, **extra)


class TestHelpers:
    def test_sanitize_id(self):
        assert sanitize_id("cte:cte1") == "cte_cte1"
        assert sanitize_id("base:my-schema.t") == "base_my_schema_t"
        assert sanitize_id("subquery_0") == "subquery_0"

    def test_escape_label(self):
        assert escape_label('say "hi"') == "say #quot;hi#quot;"
        assert escape_label("a[0]\nb") == "a 0 b"
        assert escape_label("  spaced   out ") == "spaced out"

    def test_join_edge_label_uses_join_type(self):
        assert edge_label(_edge("a", "b", RelationshipKind.JOIN, join_type="LEFT")) == "left"
        assert edge_label(_edge("a", "b", RelationshipKind.JOIN, join_type="POSITIONAL_JOIN")) == "positional join"
        assert edge_label(_edge("a", "b", RelationshipKind.JOIN)) == "join"

    def test_fixed_edge_labels(self):
        assert edge_label(_edge("a", "b", RelationshipKind.FROM_TABLE)) == "reads"
        assert edge_label(_edge("a", "b", RelationshipKind.CTE)) == "CTE"
        assert edge_label(_edge("a", "b", RelationshipKind.SCALAR_SUBQUERY)) == "scalar"


class TestDiagram:
    def test_header_and_shapes(self):
        lineage = _graph(
            [
                ("main", "main", NodeKind.MAIN),
                ("cte:c", "c", NodeKind.CTE),
                ("base:t", "t", NodeKind.BASE_TABLE),
                ("subquery_0", "s", NodeKind.SUBQUERY),
                ("scalar_subquery_1", "x", NodeKind.SCALAR_SUBQUERY),
                ("table_function_0", "range", NodeKind.TABLE_FUNCTION),
            ]
        )
        lines = lineage_to_mermaid(lineage).split("\n")

        assert lines[0] == "flowchart TD"
        assert '  main(["main"])' in lines
        assert '  cte_c("c")' in lines
        assert '  base_t[("t")]' in lines
        assert '  subquery_0[["s"]]' in lines
        assert '  scalar_subquery_1{{"x"}}' in lines
        assert '  table_function_0[/"range"/]' in lines
        assert "  class cte_c cte" in lines
        assert "  class base_t baseTable" in lines

    def test_class_defs_only_for_present_kinds(self):
        diagram = lineage_to_mermaid(_graph([("main", "main", NodeKind.MAIN), ("base:t", "t", NodeKind.BASE_TABLE)]))

        assert "classDef main fill:#e3f2fd,stroke:#1565c0,color:#0d47a1,stroke-width:2px" in diagram
        assert "classDef baseTable" in diagram
        assert "classDef cte" not in diagram
        assert "classDef subquery" not in diagram

    def test_edges_and_link_styles(self):
        lineage = _graph(
            [("main", "main", NodeKind.MAIN), ("base:a", "a", NodeKind.BASE_TABLE), ("base:b", "b", NodeKind.BASE_TABLE)],
            [
                _edge("base:a", "main", RelationshipKind.FROM_TABLE),
                _edge("base:b", "main", RelationshipKind.JOIN, join_type="LEFT"),
            ],
        )
        lines = lineage_to_mermaid(lineage).split("\n")

        assert "  base_a -->|reads| main" in lines
        assert "  base_b -->|left| main" in lines
        assert "  linkStyle 0 stroke:#2e7d32,stroke-width:2.5px,color:#1b5e20" in lines
        assert "  linkStyle 1 stroke:#5c6bc0,stroke-width:2px,color:#3949ab" in lines

    def test_edges_with_unknown_endpoint_are_dropped(self):
        lineage = _graph(
            [("main", "main", NodeKind.MAIN), ("base:a", "a", NodeKind.BASE_TABLE)],
            [
                _edge("base:ghost", "main", RelationshipKind.FROM_TABLE),
                _edge("base:a", "main", RelationshipKind.FROM_TABLE),
            ],
        )
        diagram = lineage_to_mermaid(lineage)

        assert "ghost" not in diagram
        assert "linkStyle 0" in diagram
        assert "linkStyle 1" not in diagram

    def test_no_edges_no_link_styles(self):
        diagram = lineage_to_mermaid(_graph([("main", "main", NodeKind.MAIN)]))
        assert "linkStyle" not in diagram
        assert "%% Edge styles" not in diagram

    def test_quoted_label(self):
        diagram = lineage_to_mermaid(_graph([("subquery_0", 'SQ FROM ("odd")', NodeKind.SUBQUERY)]))
        assert '  subquery_0[["SQ FROM (#quot;odd#quot;)"]]' in diagram

    def test_cte_fixture(self, lineages_for):
        (lineage,) = lineages_for("cte.json")
        lines = lineage_to_mermaid(lineage).split("\n")

        assert '  cte_cte1("cte1")' in lines
        assert "  cte_cte1 -->|CTE| main" in lines
        assert "  base_orders -->|reads| cte_cte1" in lines

    def test_render_is_deterministic(self, lineages_for):
        (lineage,) = lineages_for("where_subquery.json")
        assert lineage_to_mermaid(lineage) == lineage_to_mermaid(lineage)
