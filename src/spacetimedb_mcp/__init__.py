"""spacetimedb-mcp - Model Context Protocol bridge to SpacetimeDB.

Connects AI agents to a remote SpacetimeDB module. The module's schema is
fetched once per session and used to decode every row at runtime, so no
generated bindings are needed.

Example:
    from spacetimedb_mcp import SessionManager

    manager = SessionManager()
    await manager.connect("ws://localhost:3000", "quickstart-chat")

    # Discover schema
    tables = await manager.list_tables(include_schema=True)

    # Query with equality filters; rows come back decoded
    result = await manager.query_table("user", {"online": True}, limit=10)

    # Call a reducer; failures are reported in the result, not raised
    outcome = await manager.call_function("set_name", ["Alice"])

    await manager.disconnect()
"""

from spacetimedb_mcp.core.config import BridgeConfig
from spacetimedb_mcp.core.session import SessionManager
from spacetimedb_mcp.core.types import (
    CallResult,
    ConnectionInfo,
    ConnectResult,
    FunctionInfo,
    IdentityInfo,
    QueryTableResult,
    SessionState,
    SqlResult,
    SubscribeResult,
    TableInfo,
)
from spacetimedb_mcp.data import decode, decode_row
from spacetimedb_mcp.exceptions import (
    ConnectionError,
    FunctionCallError,
    NotConnectedError,
    ProcessError,
    QueryError,
    SchemaFetchError,
    SpacetimeMCPError,
    SubscriptionError,
)
from spacetimedb_mcp.query import build_query
from spacetimedb_mcp.schema import AlgebraicType, Schema, TableSchema, TypeKind

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "SessionManager",
    "BridgeConfig",
    # Types
    "SessionState",
    "ConnectResult",
    "TableInfo",
    "QueryTableResult",
    "SqlResult",
    "CallResult",
    "SubscribeResult",
    "FunctionInfo",
    "IdentityInfo",
    "ConnectionInfo",
    # Schema and decoding
    "AlgebraicType",
    "TypeKind",
    "Schema",
    "TableSchema",
    "decode",
    "decode_row",
    "build_query",
    # Exceptions
    "SpacetimeMCPError",
    "ConnectionError",
    "NotConnectedError",
    "SchemaFetchError",
    "QueryError",
    "FunctionCallError",
    "SubscriptionError",
    "ProcessError",
]
