"""Lineage extractor: walks json_serialize_sql() trees into lineage graphs.

Edges always point from a source (table, CTE, subquery, table function) to
the select that reads it. Base tables and CTEs are keyed by name, so a name
referenced twice yields one node with one edge per reference; subqueries and
table functions get a fresh id per occurrence.

The walk is depth-first but runs off an explicit stack of pending steps
(``ExtractionContext.schedule``), so query nesting depth is not bounded by
the interpreter's recursion limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Iterable, Optional, Union

from withy.core.ast import (
    CTEMap,
    CTEMapEntry,
    Expression,
    SelectNode,
    SetOperationNode,
    Statement,
    get_subquery_statement,
    is_base_table,
    is_join_table,
    is_select_node,
    is_set_operation_node,
    is_subquery_table,
    is_table_function,
    primary_source_label,
)
from withy.core.models import (
    LineageEdge,
    LineageNode,
    NodeKind,
    QueryLineage,
    RelationshipKind,
    SetopSide,
)

logger = logging.getLogger(__name__)

MAIN_ID = "main"
DEFAULT_SETOP_TYPE = "UNION"

QueryNode = Union[SelectNode, SetOperationNode]
Step = Callable[[], None]


@dataclass(frozen=True)
class SetopContext:
    """Which branch of a set operation the current traversal is under."""

    setop_type: str
    setop_side: SetopSide


@dataclass(frozen=True)
class JoinInfo:
    """Join metadata stamped on the edge of a join's right-hand side."""

    join_type: Optional[str] = None
    ref_type: Optional[str] = None
    columns: Optional[list[str]] = None
    left_alias: Optional[str] = None
    right_alias: Optional[str] = None
    condition_class: Optional[str] = None
    condition_type: Optional[str] = None


@dataclass
class ExtractionContext:
    """Traversal state for one statement: the graph being built and its id counters."""

    lineage: QueryLineage = field(default_factory=QueryLineage)
    subquery_count: int = 0
    table_function_count: int = 0
    pending: list[Step] = field(default_factory=list)

    def next_subquery_id(self, prefix: str = "subquery") -> str:
        node_id = f"{prefix}_{self.subquery_count}"
        self.subquery_count += 1
        return node_id

    def next_table_function_id(self) -> str:
        node_id = f"table_function_{self.table_function_count}"
        self.table_function_count += 1
        return node_id

    def schedule(self, *steps: Step) -> None:
        """Run ``steps`` next, in order, ahead of anything scheduled earlier.

        Call at most once per step so that its children keep their order.
        """
        self.pending.extend(reversed(steps))

    def run(self) -> None:
        while self.pending:
            self.pending.pop()()


def extract_lineage(statements: Iterable[Statement]) -> list[QueryLineage]:
    """Extract one lineage graph per statement.

    Args:
        statements: Statements of a successful json_serialize_sql() response.

    Returns:
        A QueryLineage per statement whose root is a select or set operation,
        in input order. Other statements are skipped.
    """
    results: list[QueryLineage] = []
    for index, statement in enumerate(statements):
        lineage = extract_statement_lineage(statement)
        if lineage is None:
            logger.debug("Skipping statement %d: no select or set operation root", index)
            continue
        results.append(lineage)
    return results


def extract_statement_lineage(statement: Statement) -> Optional[QueryLineage]:
    """Build the lineage graph of a single statement (``None`` if unrecognized)."""
    node = statement.node
    if not (is_select_node(node) or is_set_operation_node(node)):
        return None

    ctx = ExtractionContext()
    ctx.lineage.add_node(
        LineageNode(
            id=MAIN_ID,
            label="main",
            kind=NodeKind.MAIN,
            query_location=node.query_location,
            select_list=select_list_labels(node) if is_select_node(node) else None,
        )
    )
    ctx.schedule(partial(_visit_node, ctx, node, MAIN_ID))
    ctx.run()
    return ctx.lineage


def select_list_labels(select: SelectNode) -> list[str]:
    """Output column labels of a select: alias, column ref, ``*`` or a placeholder."""
    labels: list[str] = []
    for item in select.select_list:
        if item.alias:
            labels.append(item.alias)
        elif item.column_names:
            labels.append(".".join(item.column_names))
        elif (item.type or item.expression_class) == "STAR":
            labels.append("*")
        elif item.subquery is not None:
            labels.append("(scalar)")
        else:
            labels.append("(expr)")
    return labels


def _sq_from_label(source: Optional[str]) -> str:
    return f"SQ FROM ({source})" if source else "SQ FROM ()"


def _select_source_label(select: SelectNode) -> Optional[str]:
    if select.from_table is None:
        return None
    return primary_source_label(select.from_table)


def _subquery_label(ctx: ExtractionContext, query: QueryNode, consumer_id: str) -> str:
    """``SQ FROM (<primary source>)``; set operations use the consumer's label."""
    if is_select_node(query):
        return _sq_from_label(_select_source_label(query))
    consumer = ctx.lineage.get_node(consumer_id)
    return _sq_from_label(consumer.label if consumer is not None else None)


def _nested_query(statement: Optional[Statement]) -> Optional[QueryNode]:
    if statement is not None and (is_select_node(statement.node) or is_set_operation_node(statement.node)):
        return statement.node
    return None


def _edge(
    source_id: str,
    consumer_id: str,
    kind: RelationshipKind,
    setop: Optional[SetopContext] = None,
    join: Optional[JoinInfo] = None,
) -> LineageEdge:
    edge = LineageEdge(from_id=source_id, to_id=consumer_id, relationship_kind=kind)
    if setop is not None:
        edge.setop_type = setop.setop_type
        edge.setop_side = setop.setop_side
    if join is not None:
        edge.join_type = join.join_type
        edge.ref_type = join.ref_type
        edge.columns = join.columns
        edge.left_alias = join.left_alias
        edge.right_alias = join.right_alias
        edge.condition_class = join.condition_class
        edge.condition_type = join.condition_type
    return edge


# --- Statement traversal ------------------------------------------------------


def _visit_node(
    ctx: ExtractionContext,
    node: QueryNode,
    consumer_id: str,
    setop: Optional[SetopContext] = None,
) -> None:
    if is_select_node(node):
        _visit_select(ctx, node, consumer_id, setop)
    elif is_set_operation_node(node):
        setop_type = node.setop_type or DEFAULT_SETOP_TYPE
        ctx.schedule(
            *_cte_steps(ctx, node.cte_map, consumer_id, setop),
            *(
                partial(_visit_node, ctx, branch, consumer_id, SetopContext(setop_type, SetopSide(side)))
                for side, branch in node.branches()
            ),
        )
    else:
        logger.debug("Ignoring unmodeled query node %r", getattr(node, "type", None))


def _visit_select(
    ctx: ExtractionContext,
    select: SelectNode,
    consumer_id: str,
    setop: Optional[SetopContext] = None,
) -> None:
    steps = _cte_steps(ctx, select.cte_map, consumer_id, setop)

    if select.from_table is not None:
        steps.append(partial(_resolve_from_table, ctx, select.from_table, consumer_id, setop=setop))

    for item in select.select_list:
        nested = _nested_query(item.subquery)
        if nested is not None:
            steps.append(
                partial(_add_scalar_subquery, ctx, nested, consumer_id, item.alias, item.query_location, setop)
            )
        else:
            steps.append(partial(_collect_expression_subqueries, ctx, item, consumer_id, setop))

    for expression in (select.where_clause, select.having, select.qualify):
        steps.append(partial(_collect_expression_subqueries, ctx, expression, consumer_id, setop))

    for modifier in select.modifiers:
        if modifier.type != "ORDER_MODIFIER":
            continue
        for order in modifier.orders:
            steps.append(partial(_collect_expression_subqueries, ctx, order.expression, consumer_id, setop))

    ctx.schedule(*steps)


def _cte_steps(
    ctx: ExtractionContext,
    cte_map: CTEMap,
    consumer_id: str,
    setop: Optional[SetopContext] = None,
) -> list[Step]:
    return [partial(_visit_cte, ctx, entry, consumer_id, setop) for entry in cte_map.map]


def _visit_cte(
    ctx: ExtractionContext,
    entry: CTEMapEntry,
    consumer_id: str,
    setop: Optional[SetopContext] = None,
) -> None:
    body = _nested_query(entry.value.query if entry.value is not None else None)
    if body is None:
        return

    name = entry.key or "cte"
    cte_id = f"cte:{name}"
    ctx.lineage.add_node(
        LineageNode(
            id=cte_id,
            label=name,
            kind=NodeKind.CTE,
            alias=name,
            query_location=body.query_location,
            select_list=select_list_labels(body) if is_select_node(body) else None,
        )
    )
    ctx.lineage.add_edge(_edge(cte_id, consumer_id, RelationshipKind.CTE, setop))
    ctx.schedule(partial(_visit_node, ctx, body, cte_id, setop))


def _add_scalar_subquery(
    ctx: ExtractionContext,
    query: QueryNode,
    consumer_id: str,
    alias: Optional[str],
    query_location: Optional[int],
    setop: Optional[SetopContext],
) -> None:
    sub_id = ctx.next_subquery_id("scalar_subquery")
    ctx.lineage.add_node(
        LineageNode(
            id=sub_id,
            label=alias or _subquery_label(ctx, query, consumer_id),
            kind=NodeKind.SCALAR_SUBQUERY,
            alias=alias,
            query_location=query_location,
            select_list=select_list_labels(query) if is_select_node(query) else None,
        )
    )
    ctx.lineage.add_edge(_edge(sub_id, consumer_id, RelationshipKind.SCALAR_SUBQUERY, setop))
    ctx.schedule(partial(_visit_node, ctx, query, sub_id, setop))


def _collect_expression_subqueries(
    ctx: ExtractionContext,
    expression: Optional[Expression],
    consumer_id: str,
    setop: Optional[SetopContext] = None,
) -> None:
    """Find subqueries nested anywhere in an expression tree.

    A found subquery's own body is walked by _visit_node only, never by
    this scan.
    """
    if expression is None:
        return

    steps: list[Step] = []
    nested = _nested_query(expression.subquery)
    if nested is not None:
        steps.append(
            partial(_add_scalar_subquery, ctx, nested, consumer_id, None, expression.query_location, setop)
        )
    for operand in expression.operands():
        steps.append(partial(_collect_expression_subqueries, ctx, operand, consumer_id, setop))
    ctx.schedule(*steps)


# --- FROM resolution ----------------------------------------------------------


def _from_table_alias(from_table) -> Optional[str]:
    """Name a FROM entry goes by in column refs (e.g. ``l`` in ``l.library_id``)."""
    if is_base_table(from_table):
        return from_table.alias or from_table.table_name
    if is_subquery_table(from_table):
        return from_table.alias
    if is_table_function(from_table):
        return from_table.alias or from_table.function_name
    return None


def _condition_columns(condition: Optional[Expression]) -> Optional[list[str]]:
    if condition is None:
        return None
    columns = [
        ".".join(side.column_names)
        for side in (condition.left, condition.right)
        if side is not None and side.column_names
    ]
    return columns or None


def _condition_aliases(condition: Optional[Expression]) -> tuple[Optional[str], Optional[str]]:
    """Guess side aliases from qualified column refs in a join condition.

    Only a qualifier path with more than one segment counts: ``l.id`` gives
    ``l``, a bare ``id`` gives nothing.
    """
    if condition is None:
        return None, None
    aliases = []
    for side in (condition.left, condition.right):
        names = side.column_names if side is not None else []
        aliases.append(names[0] if len(names) > 1 else None)
    return aliases[0], aliases[1]


def _resolve_from_table(
    ctx: ExtractionContext,
    from_table,
    consumer_id: str,
    join: Optional[JoinInfo] = None,
    alias_override: Optional[str] = None,
    setop: Optional[SetopContext] = None,
) -> None:
    """Add the nodes and edges for one FROM entry feeding ``consumer_id``."""
    lineage = ctx.lineage

    if is_base_table(from_table):
        table_name = from_table.table_name or "base_table"
        kind = RelationshipKind.JOIN if join else RelationshipKind.FROM_TABLE
        cte_id = f"cte:{table_name}"
        if lineage.has_node(cte_id):
            if not lineage.has_edge(cte_id, consumer_id):
                lineage.add_edge(_edge(cte_id, consumer_id, kind, setop, join))
            return

        base_id = lineage.add_node(
            LineageNode(
                id=f"base:{table_name}",
                label=table_name,
                kind=NodeKind.BASE_TABLE,
                alias=alias_override or _from_table_alias(from_table),
                query_location=from_table.query_location,
            )
        )
        lineage.add_edge(_edge(base_id, consumer_id, kind, setop, join))
        return

    if is_subquery_table(from_table):
        statement = get_subquery_statement(from_table)
        if statement is None:
            return

        sub_id = ctx.next_subquery_id()
        alias = alias_override or _from_table_alias(from_table)
        lineage.add_node(
            LineageNode(
                id=sub_id,
                label=alias or _subquery_label(ctx, statement, consumer_id),
                kind=NodeKind.SUBQUERY,
                alias=alias,
                query_location=from_table.query_location,
                select_list=select_list_labels(statement) if is_select_node(statement) else None,
            )
        )
        kind = RelationshipKind.JOIN if join else RelationshipKind.FROM_SUBQUERY
        lineage.add_edge(_edge(sub_id, consumer_id, kind, setop, join))
        ctx.schedule(partial(_visit_node, ctx, statement, sub_id, setop))
        return

    if is_join_table(from_table):
        condition = from_table.condition
        inferred_left, inferred_right = _condition_aliases(condition)
        left, right = from_table.left, from_table.right
        join_info = JoinInfo(
            join_type=from_table.join_type,
            ref_type=from_table.ref_type,
            columns=from_table.using_columns or _condition_columns(condition),
            left_alias=(_from_table_alias(left) if left is not None else None) or inferred_left,
            right_alias=(_from_table_alias(right) if right is not None else None) or inferred_right,
            condition_class=condition.expression_class if condition is not None else None,
            condition_type=condition.type if condition is not None else None,
        )
        steps: list[Step] = []
        if left is not None:
            steps.append(partial(_resolve_from_table, ctx, left, consumer_id, None, inferred_left, setop))
        if right is not None:
            steps.append(partial(_resolve_from_table, ctx, right, consumer_id, join_info, inferred_right, setop))
        ctx.schedule(*steps)
        return

    if is_table_function(from_table):
        tf_id = ctx.next_table_function_id()
        lineage.add_node(
            LineageNode(
                id=tf_id,
                label=from_table.alias or from_table.function_name or "table_function",
                kind=NodeKind.TABLE_FUNCTION,
                alias=alias_override or _from_table_alias(from_table),
                query_location=from_table.query_location,
            )
        )
        kind = RelationshipKind.JOIN if join else RelationshipKind.FROM_TABLE_FUNCTION
        lineage.add_edge(_edge(tf_id, consumer_id, kind, setop, join))
        return

    # EMPTY (no FROM) and unmodeled shapes carry no lineage
