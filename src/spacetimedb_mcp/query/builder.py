"""Render structured table queries into SQL text."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any


def sql_literal(value: Any) -> str:
    """Render a Python scalar as a SQL literal.

    Strings are single-quoted with embedded single quotes doubled. Booleans
    render as ``true``/``false`` and ``None`` as ``NULL``. Other scalars render
    bare.

    Examples:
        "O'Brien" -> 'O''Brien'
        True      -> true
        42        -> 42
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value) if isinstance(value, float) else str(value)
    if isinstance(value, (dict, list)):
        value = json.dumps(value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


def build_query(
    table: str,
    filter: Mapping[str, Any] | None = None,
    limit: int | None = 100,
    offset: int = 0,
) -> str:
    """Build a ``SELECT *`` query with equality filters and pagination.

    Filter keys are used in the order given. Column names are not validated or
    quoted; callers must only pass names taken from the schema or a trusted
    source.

    Args:
        table: Table name
        filter: Column -> value equality conditions, joined with AND
        limit: Maximum number of rows; ``None`` omits LIMIT (subscription
            queries cannot carry one)
        offset: Rows to skip (rendered only when > 0)

    Returns:
        SQL text, e.g. ``SELECT * FROM user WHERE name = 'Alice' LIMIT 50 OFFSET 10``
    """
    sql = f"SELECT * FROM {table}"
    if filter:
        conditions = [f"{column} = {sql_literal(value)}" for column, value in filter.items()]
        sql += " WHERE " + " AND ".join(conditions)
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    if offset and offset > 0:
        sql += f" OFFSET {int(offset)}"
    return sql
