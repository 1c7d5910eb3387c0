"""Schema: type descriptors, parsed module definitions, and the session cache."""

from spacetimedb_mcp.schema.algebraic import AlgebraicType, TypeElement, TypeKind, parse_type
from spacetimedb_mcp.schema.cache import SchemaCache
from spacetimedb_mcp.schema.models import ColumnSchema, FunctionSchema, Schema, TableSchema

__all__ = [
    "AlgebraicType",
    "TypeElement",
    "TypeKind",
    "parse_type",
    "ColumnSchema",
    "TableSchema",
    "FunctionSchema",
    "Schema",
    "SchemaCache",
]
