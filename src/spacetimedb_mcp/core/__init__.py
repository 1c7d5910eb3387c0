"""Core components: configuration, URI handling, result types and the session manager."""

from spacetimedb_mcp.core.config import BridgeConfig, get_server_uri
from spacetimedb_mcp.core.session import Session, SessionManager
from spacetimedb_mcp.core.types import (
    CallResult,
    ColumnInfo,
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
from spacetimedb_mcp.core.uri import normalize_uri

__all__ = [
    "BridgeConfig",
    "get_server_uri",
    "normalize_uri",
    "Session",
    "SessionManager",
    "SessionState",
    "ConnectResult",
    "ColumnInfo",
    "TableInfo",
    "QueryTableResult",
    "SqlResult",
    "CallResult",
    "SubscribeResult",
    "FunctionInfo",
    "IdentityInfo",
    "ConnectionInfo",
]
