"""Types for DuckDB's json_serialize_sql() output.

Every node family is a closed set of pydantic variants plus a catch-all
variant. Unknown keys are kept (``extra="allow"``) but never read, and a
value of an unexpected shape degrades to the catch-all (or to ``None``)
instead of failing the whole statement.

Raw JSON is narrowed one level at a time. The links that let a tree nest
without bound (a statement's root node, join sides, set-operation operands
and expression operands) stay raw on the model and are narrowed when first
read, so a single validation pass never goes deeper than one level of the
query and deeply nested input is not cut off by the validator.

See https://duckdb.org/docs/stable/data/json/sql_to_and_from_json
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import Annotated, Any, Callable, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    WrapValidator,
)

logger = logging.getLogger(__name__)

SUBQUERY_TYPES = frozenset({"SUBQUERY", "SUBQUERY_NODE"})
JOIN_TYPES = frozenset({"JOIN", "CROSS_PRODUCT"})


# --- Lenient scalar fields ---------------------------------------------------


def _name_or_none(value: Any) -> Optional[str]:
    # DuckDB writes "" for a missing alias or schema.
    if isinstance(value, str) and value.strip():
        return value
    return None


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _list_or_empty(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _drop_none(values: list[Any]) -> list[Any]:
    return [v for v in values if v is not None]


def _lenient(fallback: Callable[[Any], Any]) -> WrapValidator:
    """Wrap validator that replaces an invalid value with ``fallback(value)``."""

    def validate(value: Any, handler: Callable[[Any], Any]) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return fallback(value)

    return WrapValidator(validate)


def _field(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key)
    return getattr(value, key, None)


Name = Annotated[Optional[str], BeforeValidator(_name_or_none)]
Location = Annotated[Optional[int], BeforeValidator(_int_or_none)]
StrList = Annotated[list[str], BeforeValidator(_str_list)]
Flag = Annotated[bool, BeforeValidator(lambda v: v is True)]


# --- Classification of raw shapes ---------------------------------------------


def classify_statement_node(value: Any) -> str:
    """Return the variant tag for a raw statement node."""
    kind = _field(value, "type")
    if kind == "SELECT_NODE":
        return "select"
    if kind == "SET_OPERATION_NODE":
        return "set_operation"
    return "unknown"


def classify_from_table(value: Any) -> str:
    """Return the variant tag for a raw ``from_table`` entry.

    Any shape carrying a nested ``subquery`` or ``query`` is treated as a
    subquery, whatever its ``type`` says.
    """
    kind = _field(value, "type")
    if kind == "BASE_TABLE":
        return "base_table"
    if kind in SUBQUERY_TYPES or _field(value, "subquery") is not None or _field(value, "query") is not None:
        return "subquery"
    if kind in JOIN_TYPES:
        return "join"
    if kind == "TABLE_FUNCTION":
        return "table_function"
    if kind == "EMPTY":
        return "empty"
    return "unknown"


def _unknown_from_table(value: Any) -> UnknownFromTable:
    kind = _field(value, "type")
    logger.debug("Unmodeled from_table shape (type=%r)", kind)
    return UnknownFromTable(type=kind if isinstance(kind, str) else None)


def _unknown_node(value: Any) -> UnknownNode:
    kind = _field(value, "type")
    return UnknownNode(type=kind if isinstance(kind, str) else None)


# --- Models -------------------------------------------------------------------


class AstModel(BaseModel):
    """Base for every serialized-tree record; extra keys pass through."""

    model_config = ConfigDict(extra="allow")


class Expression(AstModel):
    """Any parsed expression: select-list item, predicate, join condition, call."""

    expression_class: Name = Field(default=None, alias="class")
    type: Name = None
    alias: Name = None
    query_location: Location = None
    column_names: StrList = []
    function_name: Name = None
    # Scalar / EXISTS / IN subquery
    subquery: OptionalStatement = None
    # Operands, narrowed on access
    raw_children: Any = Field(default=None, alias="children")
    raw_child: Any = Field(default=None, alias="child")
    raw_left: Any = Field(default=None, alias="left")
    raw_right: Any = Field(default=None, alias="right")
    raw_expression: Any = Field(default=None, alias="expression")
    raw_condition: Any = Field(default=None, alias="condition")

    @cached_property
    def children(self) -> list[Expression]:
        return as_expression_list(self.raw_children)

    @cached_property
    def child(self) -> Optional[Expression]:
        return as_expression(self.raw_child)

    @cached_property
    def left(self) -> Optional[Expression]:
        return as_expression(self.raw_left)

    @cached_property
    def right(self) -> Optional[Expression]:
        return as_expression(self.raw_right)

    @cached_property
    def expression(self) -> Optional[Expression]:
        return as_expression(self.raw_expression)

    @cached_property
    def condition(self) -> Optional[Expression]:
        return as_expression(self.raw_condition)

    def operands(self) -> list[Expression]:
        """Nested expressions in scan order: ``children``, then the single-operand fields."""
        singles = (self.child, self.left, self.right, self.expression, self.condition)
        return [*self.children, *(e for e in singles if e is not None)]


class OrderByNode(AstModel):
    type: Name = None
    expression: Expr = None


class ResultModifier(AstModel):
    """ORDER BY / LIMIT / DISTINCT modifier; only ORDER_MODIFIER has ``orders``."""

    type: Name = None
    orders: OrderList = []


class CTEInfo(AstModel):
    query: OptionalStatement = None


class CTEMapEntry(AstModel):
    key: Name = None
    value: Optional[CTEInfo] = None


class CTEMap(AstModel):
    map: CTEEntryList = []


class SelectNode(AstModel):
    type: str = "SELECT_NODE"
    modifiers: ModifierList = []
    cte_map: LenientCTEMap = Field(default_factory=CTEMap)
    select_list: ExpressionList = []
    from_table: Optional[FromTable] = None
    where_clause: Expr = None
    having: Expr = None
    qualify: Expr = None
    query_location: Location = None


class SetOperationNode(AstModel):
    """UNION / INTERSECT / EXCEPT of two statement nodes."""

    type: str = "SET_OPERATION_NODE"
    setop_type: Name = None
    raw_left: Any = Field(default=None, alias="left")
    raw_right: Any = Field(default=None, alias="right")
    # Newer DuckDB releases write the operands as a list instead
    raw_children: Any = Field(default=None, alias="children")
    modifiers: ModifierList = []
    cte_map: LenientCTEMap = Field(default_factory=CTEMap)
    query_location: Location = None

    @cached_property
    def left(self) -> Optional[StatementNode]:
        return as_statement_node(self.raw_left)

    @cached_property
    def right(self) -> Optional[StatementNode]:
        return as_statement_node(self.raw_right)

    @cached_property
    def children(self) -> list[StatementNode]:
        return as_statement_node_list(self.raw_children)

    def branches(self) -> list[tuple[str, Any]]:
        """Operands tagged ``"left"`` / ``"right"``; list operands after the first are right."""
        if self.left is not None or self.right is not None:
            pairs = [("left", self.left), ("right", self.right)]
            return [(side, node) for side, node in pairs if node is not None]
        return [("left" if i == 0 else "right", node) for i, node in enumerate(self.children)]


class UnknownNode(AstModel):
    """Statement root of a kind that carries no lineage (e.g. a PRAGMA)."""

    type: Optional[str] = None


class Statement(AstModel):
    raw_node: Any = Field(default=None, alias="node")
    named_param_map: Annotated[list[Any], BeforeValidator(_list_or_empty)] = []

    @cached_property
    def node(self) -> Optional[StatementNode]:
        return as_statement_node(self.raw_node)


class EmptyTable(AstModel):
    type: str = "EMPTY"
    alias: Name = None
    query_location: Location = None


class BaseTable(AstModel):
    type: str = "BASE_TABLE"
    table_name: Name = None
    alias: Name = None
    schema_name: Name = None
    catalog_name: Name = None
    query_location: Location = None


class SubqueryTable(AstModel):
    """Subquery in FROM; DuckDB nests a full Statement under ``subquery``."""

    type: Optional[str] = None
    subquery: OptionalStatement = None
    raw_query: Any = Field(default=None, alias="query")
    alias: Name = None
    query_location: Location = None

    @cached_property
    def query(self) -> Optional[StatementNode]:
        return as_statement_node(self.raw_query)


class JoinTable(AstModel):
    type: str = "JOIN"
    raw_left: Any = Field(default=None, alias="left")
    raw_right: Any = Field(default=None, alias="right")
    condition: Expr = None
    join_type: Name = None
    ref_type: Name = None
    using_columns: StrList = []
    query_location: Location = None

    @cached_property
    def left(self) -> Optional[FromTable]:
        return as_from_table(self.raw_left)

    @cached_property
    def right(self) -> Optional[FromTable]:
        return as_from_table(self.raw_right)


class TableFunctionTable(AstModel):
    type: str = "TABLE_FUNCTION"
    alias: Name = None
    function: Expr = None
    query_location: Location = None

    @property
    def function_name(self) -> Optional[str]:
        return self.function.function_name if self.function is not None else None


class UnknownFromTable(AstModel):
    """Catch-all for any from_table shape that is not modeled."""

    type: Optional[str] = None


class SerializedSQL(AstModel):
    """Root response: either success with statements or an engine error."""

    error: Flag = False
    statements: StatementList = []
    error_type: Name = None
    error_message: Name = None
    error_subtype: Name = None
    position: Optional[Any] = None


# --- Tagged unions ------------------------------------------------------------

StatementNode = Annotated[
    Union[
        Annotated[SelectNode, Tag("select")],
        Annotated[SetOperationNode, Tag("set_operation")],
        Annotated[UnknownNode, Tag("unknown")],
    ],
    Discriminator(classify_statement_node),
    _lenient(_unknown_node),
]

FromTable = Annotated[
    Union[
        Annotated[EmptyTable, Tag("empty")],
        Annotated[BaseTable, Tag("base_table")],
        Annotated[SubqueryTable, Tag("subquery")],
        Annotated[JoinTable, Tag("join")],
        Annotated[TableFunctionTable, Tag("table_function")],
        Annotated[UnknownFromTable, Tag("unknown")],
    ],
    Discriminator(classify_from_table),
    _lenient(_unknown_from_table),
]

Expr = Annotated[Optional[Expression], _lenient(lambda _: None)]
OptionalStatement = Annotated[Optional[Statement], _lenient(lambda _: None)]
LenientCTEMap = Annotated[CTEMap, _lenient(lambda _: CTEMap())]


def _records(item_type: Any) -> Any:
    """List type whose invalid items are dropped."""
    return Annotated[
        list[Annotated[Optional[item_type], _lenient(lambda _: None)]],
        BeforeValidator(_list_or_empty),
        AfterValidator(_drop_none),
    ]


ExpressionList = _records(Expression)
OrderList = _records(OrderByNode)
ModifierList = _records(ResultModifier)
CTEEntryList = _records(CTEMapEntry)
StatementList = _records(Statement)
StatementNodeList = Annotated[
    list[Optional[StatementNode]],
    BeforeValidator(_list_or_empty),
    AfterValidator(_drop_none),
]


for _model in (
    Expression,
    OrderByNode,
    ResultModifier,
    CTEInfo,
    CTEMapEntry,
    CTEMap,
    SelectNode,
    SetOperationNode,
    UnknownNode,
    Statement,
    EmptyTable,
    BaseTable,
    SubqueryTable,
    JoinTable,
    TableFunctionTable,
    UnknownFromTable,
    SerializedSQL,
):
    _model.model_rebuild()


# --- Narrowing of raw links ---------------------------------------------------

_EXPRESSION = TypeAdapter(Expr)
_EXPRESSION_LIST = TypeAdapter(ExpressionList)
_STATEMENT_NODE = TypeAdapter(Optional[StatementNode])
_STATEMENT_NODE_LIST = TypeAdapter(StatementNodeList)
_FROM_TABLE = TypeAdapter(Optional[FromTable])


def as_expression(value: Any) -> Optional[Expression]:
    return _EXPRESSION.validate_python(value)


def as_expression_list(value: Any) -> list[Expression]:
    return _EXPRESSION_LIST.validate_python(value)


def as_statement_node(value: Any) -> Optional[StatementNode]:
    """Narrow a raw statement node; ``None`` stays ``None``, anything else never fails."""
    return _STATEMENT_NODE.validate_python(value)


def as_statement_node_list(value: Any) -> list[StatementNode]:
    return _STATEMENT_NODE_LIST.validate_python(value)


def as_from_table(value: Any) -> Optional[FromTable]:
    return _FROM_TABLE.validate_python(value)


# --- Predicates and helpers ---------------------------------------------------


def is_serialized_sql_success(root: SerializedSQL) -> bool:
    """True when the response is not an error and has at least one statement."""
    return not root.error and len(root.statements) > 0


def is_select_node(node: Any) -> bool:
    return isinstance(node, SelectNode)


def is_set_operation_node(node: Any) -> bool:
    return isinstance(node, SetOperationNode)


def is_base_table(from_table: Any) -> bool:
    return isinstance(from_table, BaseTable)


def is_subquery_table(from_table: Any) -> bool:
    return isinstance(from_table, SubqueryTable)


def is_join_table(from_table: Any) -> bool:
    return isinstance(from_table, JoinTable)


def is_table_function(from_table: Any) -> bool:
    return isinstance(from_table, TableFunctionTable)


def get_subquery_statement(from_table: Any) -> Union[SelectNode, SetOperationNode, None]:
    """Get the nested select or set operation of a subquery FROM entry, if any."""
    if not is_subquery_table(from_table):
        return None
    if from_table.subquery is not None:
        node = from_table.subquery.node
        if is_select_node(node) or is_set_operation_node(node):
            return node
    if is_select_node(from_table.query) or is_set_operation_node(from_table.query):
        return from_table.query
    return None


def get_subquery_select(from_table: Any) -> Optional[SelectNode]:
    """Get the nested SelectNode of a subquery FROM entry, if any."""
    node = get_subquery_statement(from_table)
    return node if is_select_node(node) else None


def primary_source_label(from_table: Any) -> Optional[str]:
    """Leftmost table, CTE or function name reachable through a FROM tree.

    Used to name unaliased subqueries (``SQ FROM (orders)``).
    """
    while True:
        if is_base_table(from_table):
            return from_table.table_name
        if is_table_function(from_table):
            return from_table.function_name or "table_function"
        if is_join_table(from_table):
            from_table = from_table.left
        elif is_subquery_table(from_table):
            select = get_subquery_select(from_table)
            from_table = select.from_table if select is not None else None
        else:
            return None
