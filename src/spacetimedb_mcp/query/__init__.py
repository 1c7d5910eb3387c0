"""Query text building and result parsing.

- builder: render table/filter/limit/offset into SQL text
- parser: turn CLI or HTTP text output into row dicts
"""

from spacetimedb_mcp.query.builder import build_query, sql_literal
from spacetimedb_mcp.query.parser import (
    parse_identities,
    parse_result_text,
    parse_tabular,
)

__all__ = [
    "build_query",
    "sql_literal",
    "parse_result_text",
    "parse_tabular",
    "parse_identities",
]
