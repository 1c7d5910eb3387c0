"""Session manager: the public face of the bridge.

A :class:`SessionManager` owns at most one live :class:`Session`. ``connect``
normalizes the URI, fetches and caches the schema, and opens the streaming
channel; every other operation requires a connected session and fails fast
with :class:`NotConnectedError` otherwise. Row data always flows through the
schema-driven decoder before it is returned.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from spacetimedb_mcp.core.config import BridgeConfig
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
from spacetimedb_mcp.data.decoder import decode, decode_rows
from spacetimedb_mcp.exceptions import (
    ConnectionError,
    FunctionCallError,
    NotConnectedError,
    ProcessError,
    QueryError,
    SchemaFetchError,
    SubscriptionError,
)
from spacetimedb_mcp.query.builder import build_query
from spacetimedb_mcp.query.parser import parse_identities
from spacetimedb_mcp.schema.algebraic import parse_type
from spacetimedb_mcp.schema.cache import SchemaCache
from spacetimedb_mcp.transport.http import HttpTransport
from spacetimedb_mcp.transport.process import ProcessTransport
from spacetimedb_mcp.transport.streaming import (
    Connector,
    StreamingChannel,
    StreamingTransport,
    Subscription,
)

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """State of one connection to a module."""

    uri: str
    http_uri: str
    stream_uri: str
    module_name: str
    http: HttpTransport
    token: str | None = None
    connected: bool = False
    identity: str | None = None
    stream_token: str | None = None
    schema: SchemaCache = field(default_factory=SchemaCache)
    channel: StreamingChannel | None = None
    subscriptions: dict[str, Subscription] = field(default_factory=dict)


class SessionManager:
    """Connects to one SpacetimeDB module and exposes its operations.

    Example:
        manager = SessionManager()
        await manager.connect("ws://localhost:3000", "quickstart-chat")
        tables = await manager.list_tables()
        result = await manager.query_table("user", {"online": True}, limit=10)
        await manager.disconnect()
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        stream_connector: Connector | None = None,
        process: ProcessTransport | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Timeouts, retries and CLI settings (defaults from environment)
            http_transport: Custom httpx transport for the request/response channel
            stream_connector: Custom websocket connector for the streaming channel
            process: Custom command-line client runner
        """
        self._config = config or BridgeConfig.from_env()
        self._http_transport = http_transport
        self._streaming = StreamingTransport(self._config, connector=stream_connector)
        self._process = process or ProcessTransport(self._config.cli_path)
        self._session: Session | None = None
        self._state = SessionState.DISCONNECTED
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def config(self) -> BridgeConfig:
        return self._config

    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED and self._session is not None

    def _require(self, operation: str) -> Session:
        if not self.is_connected():
            raise NotConnectedError(operation)
        assert self._session is not None
        return self._session

    # === Lifecycle ===

    async def connect(
        self,
        uri: str,
        module_name: str,
        auth_token: str | None = None,
    ) -> ConnectResult:
        """Connect to a module, replacing any existing session.

        Raises:
            ConnectionError: If the URI is invalid or the streaming channel fails
            SchemaFetchError: If no schema could be fetched (HTTP or CLI)
        """
        if self._session is not None:
            await self.disconnect()

        try:
            http_uri, stream_uri = normalize_uri(uri)
        except ValueError as e:
            raise ConnectionError(str(e), {"uri": uri}) from e

        self._state = SessionState.CONNECTING
        session = Session(
            uri=uri,
            http_uri=http_uri,
            stream_uri=stream_uri,
            module_name=module_name,
            token=auth_token,
            http=HttpTransport(
                http_uri,
                module_name,
                token=auth_token,
                config=self._config,
                transport=self._http_transport,
            ),
        )
        logger.info(f"Connecting to {module_name} at {uri}")

        connected = False
        try:
            await self._load_schema(session)

            def on_identity(identity: str | None, token: str | None) -> None:
                session.identity = identity
                session.stream_token = token

            def on_disconnect(reason: str) -> None:
                self._handle_channel_drop(session, reason)

            session.channel = await self._streaming.open(
                stream_uri,
                module_name,
                token=auth_token,
                on_disconnect=on_disconnect,
                on_identity=on_identity,
            )
            session.identity = session.identity or session.channel.identity
            session.stream_token = session.stream_token or session.channel.token
            session.connected = True
            connected = True
        finally:
            if not connected:
                if session.channel is not None:
                    await session.channel.close()
                await session.http.aclose()
                self._state = SessionState.DISCONNECTED

        self._session = session
        self._state = SessionState.CONNECTED
        schema = session.schema.schema
        logger.info(f"Connected to {module_name} as {session.identity or 'unknown identity'}")
        return ConnectResult(
            identity=session.identity,
            message=f"Connected to {module_name} at {uri}",
            tables=len(schema.tables) if schema else 0,
            functions=len(schema.functions) if schema else 0,
            schema_source=session.schema.source,
        )

    async def _load_schema(self, session: Session) -> None:
        try:
            await session.schema.fetch(session.http, version=self._config.schema_version)
            return
        except SchemaFetchError as e:
            if not self._config.cli_fallback:
                raise
            http_error = e
        logger.warning(f"HTTP schema fetch failed, trying CLI describe: {http_error.message}")
        try:
            output = await self._process.describe(session.module_name, session.http_uri)
            session.schema.load(output, source="cli", endpoint="spacetime describe --json")
        except (ProcessError, SchemaFetchError) as cli_error:
            logger.warning(f"CLI schema discovery failed: {cli_error.message}")
            raise http_error from cli_error

    def _handle_channel_drop(self, session: Session, reason: str) -> None:
        if self._session is not session or self._state != SessionState.CONNECTED:
            return
        logger.error(f"Streaming channel lost, disconnecting: {reason}")
        session.connected = False
        session.subscriptions.clear()
        session.schema.clear()
        self._session = None
        self._state = SessionState.DISCONNECTED
        task = asyncio.create_task(session.http.aclose())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def disconnect(self) -> None:
        """Close the session. Does nothing when already disconnected."""
        session = self._session
        if session is None:
            self._state = SessionState.DISCONNECTED
            return
        self._session = None
        self._state = SessionState.DISCONNECTED
        session.connected = False
        session.subscriptions.clear()
        if session.channel is not None:
            await session.channel.close()
        await session.http.aclose()
        session.schema.clear()
        logger.info(f"Disconnected from {session.module_name}")

    async def __aenter__(self) -> SessionManager:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.disconnect()

    # === Schema discovery ===

    async def list_tables(self, include_schema: bool = False) -> list[TableInfo]:
        """List tables from the cached schema."""
        session = self._require("list_tables")
        schema = session.schema.schema
        if schema is None:
            return []
        return [
            TableInfo(
                name=t.name,
                visibility=t.visibility,
                column_count=len(t.columns),
                columns=[ColumnInfo(name=c.name, type=c.type.render()) for c in t.columns]
                if include_schema
                else None,
            )
            for t in schema.tables
        ]

    async def get_schema(self, table_name: str | None = None) -> dict[str, Any]:
        """Return the whole schema, or one table's part of it.

        An unknown table yields an empty table list plus the available names.
        """
        session = self._require("get_schema")
        schema = session.schema.schema
        result: dict[str, Any] = {"database": session.module_name, "source": session.schema.source}
        if schema is None:
            result["tables"] = []
            return result
        if table_name is None:
            result.update(schema.to_dict())
            return result
        table = schema.get_table(table_name)
        result["tables"] = [table.to_dict()] if table else []
        if table is None:
            result["available_tables"] = schema.table_names
        return result

    async def list_functions(self, include_signatures: bool = False) -> list[FunctionInfo]:
        """List reducers from the cached schema."""
        session = self._require("list_functions")
        schema = session.schema.schema
        if schema is None:
            return []
        functions = []
        for f in schema.functions:
            info = FunctionInfo(name=f.name, lifecycle=f.lifecycle)
            if include_signatures:
                info.params = [ColumnInfo(name=p.name, type=p.type.render()) for p in f.params]
                info.signature = f.signature
            functions.append(info)
        return functions

    async def get_identity(self) -> IdentityInfo:
        """Return the identity from the streaming handshake, else from the CLI."""
        session = self._require("get_identity")
        authenticated = bool(session.token)
        identity = session.identity or (session.channel.identity if session.channel else None)
        if identity:
            return IdentityInfo(identity=identity, authenticated=authenticated, source="stream")

        if self._config.cli_fallback:
            try:
                identities = parse_identities(await self._process.identity_list())
            except ProcessError as e:
                logger.warning(f"CLI identity lookup failed: {e.message}")
            else:
                if identities:
                    return IdentityInfo(
                        identity=identities[0], authenticated=authenticated, source="cli"
                    )
        return IdentityInfo(identity=None, authenticated=authenticated, source="none")

    # === Data ===

    async def query_table(
        self,
        table_name: str,
        filter: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> QueryTableResult:
        """Query a table with equality filters and pagination, decoding every row.

        When the SQL endpoint is unreachable the query is re-run through the
        command-line client and its output decoded the same way.

        Raises:
            QueryError: If the SQL endpoint rejects the query
        """
        session = self._require("query_table")
        query = build_query(table_name, filter, limit, offset)
        try:
            rows = await session.http.run_query(query, retry=True)
        except QueryError as e:
            if not self._can_fall_back(e):
                raise
            rows = await self._cli_query(session, query, e)
        decoded = decode_rows(rows, session.schema.get_table(table_name))
        return QueryTableResult(table=table_name, query=query, rows=decoded, total_count=len(decoded))

    async def execute_raw(self, query: str) -> SqlResult:
        """Run arbitrary SQL; rows are decoded with the column types the server reports.

        Rows obtained through the command-line client fallback carry no column
        types and are returned as parsed.

        Raises:
            QueryError: If the SQL endpoint rejects the query
        """
        session = self._require("execute_raw")
        try:
            statements = await session.http.run_statements(query)
        except QueryError as e:
            if not self._can_fall_back(e):
                raise
            rows = await self._cli_query(session, query, e)
            return SqlResult(query=query, rows=rows, row_count=len(rows))
        if not statements or not isinstance(statements[0], dict):
            return SqlResult(query=query, rows=[], row_count=0)
        rows = _decode_statement(statements[0])
        return SqlResult(query=query, rows=rows, row_count=len(rows))

    def _can_fall_back(self, error: QueryError | FunctionCallError) -> bool:
        # No HTTP status means the server was never reached
        return self._config.cli_fallback and error.status_code is None

    async def _cli_query(self, session: Session, query: str, http_error: QueryError) -> list[Any]:
        logger.warning(f"SQL endpoint unreachable, trying CLI sql: {http_error.message}")
        try:
            return await self._process.sql(session.module_name, session.http_uri, query)
        except ProcessError as cli_error:
            logger.warning(f"CLI query failed: {cli_error.message}")
            raise http_error from cli_error

    async def call_function(self, name: str, args: list[Any] | None = None) -> CallResult:
        """Call a reducer.

        Remote failures come back as ``status="error"`` rather than raising.
        """
        session = self._require("call_function")
        args = list(args or [])
        function = session.schema.get_function(name)
        if function is not None and len(function.params) != len(args):
            return CallResult(
                function=name,
                status="error",
                message=(
                    f"Reducer '{name}' expects {len(function.params)} arguments "
                    f"{function.signature}, got {len(args)}"
                ),
            )
        try:
            message = await session.http.call_function(name, args)
        except FunctionCallError as e:
            if self._can_fall_back(e):
                return await self._cli_call(session, name, args, e)
            logger.info(f"Reducer {name} failed: {e.message}")
            return CallResult(
                function=name, status="error", message=e.message, status_code=e.status_code
            )
        return CallResult(function=name, status="success", message=message)

    async def _cli_call(
        self, session: Session, name: str, args: list[Any], http_error: FunctionCallError
    ) -> CallResult:
        logger.warning(f"Call endpoint unreachable, trying CLI call: {http_error.message}")
        try:
            output = await self._process.call(
                session.module_name, name, [json.dumps(a) for a in args], session.http_uri
            )
        except ProcessError as cli_error:
            logger.info(f"Reducer {name} failed via CLI: {cli_error.message}")
            return CallResult(function=name, status="error", message=cli_error.message)
        return CallResult(
            function=name,
            status="success",
            message=output.strip() or f"Reducer '{name}' executed successfully",
        )

    # === Subscriptions ===

    async def subscribe_table(
        self,
        table_name: str,
        filter: dict[str, Any] | None = None,
    ) -> SubscribeResult:
        """Subscribe to a table on the streaming channel and return its current rows.

        Re-subscribing to a table replaces the previous subscription.

        Raises:
            SubscriptionError: If the channel is closed or the server rejects the query
        """
        session = self._require("subscribe_table")
        channel = session.channel
        if channel is None or channel.closed:
            raise SubscriptionError(f"Cannot subscribe to '{table_name}': streaming channel closed")

        previous = session.subscriptions.pop(table_name, None)
        if previous is not None:
            await channel.unsubscribe(previous, timeout=self._config.subscription_timeout)

        query = build_query(table_name, filter, limit=None)
        subscription = await channel.subscribe(query, table_name, filter)
        session.subscriptions[table_name] = subscription
        try:
            applied = await subscription.wait_applied(self._config.subscription_timeout)
        except SubscriptionError:
            session.subscriptions.pop(table_name, None)
            raise
        if not applied:
            logger.warning(f"Subscription to {table_name} not yet applied")

        initial = await self.query_table(table_name, filter)
        return SubscribeResult(
            table=table_name,
            query=query,
            subscribed=True,
            applied=applied,
            initial_data=initial.rows,
        )

    async def unsubscribe_table(self, table_name: str) -> bool:
        """Drop a table subscription. Returns False if there was none."""
        session = self._require("unsubscribe_table")
        subscription = session.subscriptions.pop(table_name, None)
        if subscription is None:
            return False
        if session.channel is not None:
            await session.channel.unsubscribe(
                subscription, timeout=self._config.subscription_timeout
            )
        return True

    async def get_connection_info(self) -> ConnectionInfo:
        """Describe the current connection; works while disconnected."""
        session = self._session
        if session is None:
            return ConnectionInfo(
                connected=False,
                state=self._state,
                message="Not connected to any SpacetimeDB instance",
            )
        return ConnectionInfo(
            connected=self.is_connected(),
            state=self._state,
            uri=session.uri,
            stream_uri=session.stream_uri,
            module=session.module_name,
            authenticated=bool(session.token),
            identity=session.identity,
            schema_source=session.schema.source,
            active_subscriptions=list(session.subscriptions),
            applied_subscriptions=[t for t, s in session.subscriptions.items() if s.active],
        )


def _decode_statement(statement: dict[str, Any]) -> list[Any]:
    """Decode a statement result's rows with the column schema the server sent."""
    rows = statement.get("rows") or []
    if not isinstance(rows, list):
        return []
    columns = statement.get("schema")
    if not isinstance(columns, dict) or "elements" not in columns:
        return rows
    try:
        row_type = parse_type({"Product": columns})
    except ValueError:
        return rows
    return [decode(row, row_type) for row in rows]
