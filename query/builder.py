"""
Query Builder

Compiles sanitized filter trees into parameterized SQL conditions and builds
the statements issued by the instance store.
All values are passed as asyncpg positional parameters ($1, $2, ...), never interpolated.
Only table and feature names are written into the SQL text, always quoted.
"""

from typing import Optional, Sequence

from .features import Feature, FeatureSchema, FeatureType, quote_identifier
from .filters import FilterGroup, FilterLeaf, FilterNode

# Operators that take a single value parameter
VALUE_OPERATORS = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}

MAX_DISTINCT_VALUES = 128


def escape_like(text: str) -> str:
    """Escape LIKE metacharacters so user text only matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _param(params: list, value) -> str:
    params.append(value)
    return f"${len(params)}"


def _compile_leaf(leaf: FilterLeaf, feature: Feature, params: list) -> str:
    col = quote_identifier(feature.name)
    op = leaf.op

    if op in VALUE_OPERATORS:
        return f"{col} {VALUE_OPERATORS[op]} {_param(params, leaf.value)}"

    if op == "between":
        low, high = leaf.value
        return f"{col} BETWEEN {_param(params, low)} AND {_param(params, high)}"

    if op == "in":
        placeholders = ", ".join(_param(params, v) for v in leaf.value)
        return f"{col} IN ({placeholders})"

    if op == "contains":
        return f"{col} ILIKE {_param(params, '%' + escape_like(leaf.value) + '%')}"

    if op == "startsWith":
        return f"{col} ILIKE {_param(params, escape_like(leaf.value) + '%')}"

    raise ValueError(f"Unsupported operator '{op}'")


def _compile(node: FilterNode, schema: FeatureSchema, params: list) -> str:
    if isinstance(node, FilterGroup):
        parts = [_compile(child, schema, params) for child in node.children]
        return "(" + f" {node.op} ".join(parts) + ")"
    return _compile_leaf(node, schema.get(node.feature), params)


def to_condition(
    schema: FeatureSchema, tree: Optional[FilterNode], params: Optional[list] = None
) -> tuple[str, list]:
    """
    Compile a sanitized filter tree into (sql, params).
    Returns an empty condition when there is no filter. Placeholders continue
    numbering after any values already in params.
    """
    if params is None:
        params = []
    if tree is None:
        return "", params
    return _compile(tree, schema, params), params


def build_insert(schema: FeatureSchema, table: str, instances: Sequence[Sequence]) -> tuple[str, list]:
    """Multi-row INSERT naming every feature column in schema order."""
    params: list = []
    columns = ", ".join(quote_identifier(f.name) for f in schema)
    rows = []
    for instance in instances:
        rows.append("(" + ", ".join(_param(params, value) for value in instance) + ")")
    sql = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES {', '.join(rows)}"
    return sql, params


def build_count(schema: FeatureSchema, table: str, tree: Optional[FilterNode]) -> tuple[str, list]:
    condition, params = to_condition(schema, tree)
    sql = f"SELECT COUNT(*) AS total FROM {quote_identifier(table)}"
    if condition:
        sql += f" WHERE {condition}"
    return sql, params


def build_select(
    schema: FeatureSchema,
    table: str,
    tree: Optional[FilterNode],
    features: Sequence[Feature],
    order: Optional[int] = None,
    direction: str = "asc",
    skip: Optional[int] = None,
    limit: Optional[int] = None,
) -> tuple[str, list]:
    """
    Build a SELECT over the given features.
    ORDER BY only when order resolves, LIMIT / OFFSET only when positive.
    """
    select_clause = ", ".join(quote_identifier(f.name) for f in features)
    condition, params = to_condition(schema, tree)

    sql = f"SELECT {select_clause} FROM {quote_identifier(table)}"
    if condition:
        sql += f" WHERE {condition}"

    order_feature = schema.get(order)
    if order_feature is not None:
        dir_sql = "DESC" if (direction or "").lower() == "desc" else "ASC"
        sql += f" ORDER BY {quote_identifier(order_feature.name)} {dir_sql}"

    if limit is not None and limit > 0:
        sql += f" LIMIT {_param(params, limit)}"

    if skip is not None and skip > 0:
        sql += f" OFFSET {_param(params, skip)}"

    return sql, params


def build_distinct(
    schema: FeatureSchema,
    table: str,
    tree: Optional[FilterNode],
    feature: Feature,
    text_query: str = "",
) -> tuple[str, list]:
    """DISTINCT values of a nominal feature, optionally prefix-matched."""
    if feature.type != FeatureType.NOMINAL:
        raise ValueError(f"Feature '{feature.name}' is not nominal")

    col = quote_identifier(feature.name)
    conditions = []

    condition, params = to_condition(schema, tree)
    if condition:
        conditions.append(condition)
    if text_query:
        conditions.append(f"{col} ILIKE {_param(params, escape_like(text_query) + '%')}")

    sql = f"SELECT DISTINCT {col} FROM {quote_identifier(table)}"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += f" ORDER BY {col} LIMIT {MAX_DISTINCT_VALUES}"
    return sql, params
