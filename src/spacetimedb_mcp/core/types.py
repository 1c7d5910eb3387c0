"""Result types returned by the session manager.

All types are designed to be JSON-serializable for agent consumption.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


class SessionState(StrEnum):
    """Lifecycle states of a session manager."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectResult(BaseModel):
    """Outcome of a successful connect."""

    status: Literal["connected"] = "connected"
    identity: str | None = None
    message: str
    tables: int = 0
    functions: int = 0
    schema_source: str | None = None


class ColumnInfo(BaseModel):
    """A column and its rendered type."""

    name: str
    type: str


class TableInfo(BaseModel):
    """A table as listed to callers."""

    name: str
    visibility: str = "public"
    column_count: int = 0
    columns: list[ColumnInfo] | None = None


class QueryTableResult(BaseModel):
    """Decoded rows from a table query."""

    table: str
    query: str
    rows: list[Any]
    total_count: int


class SqlResult(BaseModel):
    """Decoded rows from a raw SQL query."""

    query: str
    rows: list[Any]
    row_count: int


class CallResult(BaseModel):
    """Outcome of a reducer call.

    Failures are reported here with ``status="error"`` instead of raising, so
    callers can inspect a rejected call without exception handling.
    """

    function: str
    status: Literal["success", "error"]
    message: str
    status_code: int | None = None


class SubscribeResult(BaseModel):
    """Outcome of subscribing to a table."""

    table: str
    query: str
    subscribed: bool
    applied: bool
    initial_data: list[Any] = Field(default_factory=list)


class FunctionInfo(BaseModel):
    """A reducer as listed to callers."""

    name: str
    lifecycle: str | None = None
    params: list[ColumnInfo] | None = None
    signature: str | None = None


class IdentityInfo(BaseModel):
    """The identity this bridge acts as."""

    identity: str | None
    authenticated: bool
    source: Literal["stream", "cli", "none"] = "none"


class ConnectionInfo(BaseModel):
    """Current connection status."""

    connected: bool
    state: SessionState = SessionState.DISCONNECTED
    uri: str | None = None
    stream_uri: str | None = None
    module: str | None = None
    authenticated: bool = False
    identity: str | None = None
    schema_source: str | None = None
    active_subscriptions: list[str] = Field(default_factory=list)
    applied_subscriptions: list[str] = Field(default_factory=list)
    message: str | None = None

    model_config = {"use_enum_values": True}
