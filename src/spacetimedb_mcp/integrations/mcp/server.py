"""MCP server for SpacetimeDB.

Exposes the session manager's operations as MCP tools for AI agents.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

from mcp.server.fastmcp import FastMCP  # type: ignore[import-not-found]
from pydantic import BaseModel

from spacetimedb_mcp import SessionManager
from spacetimedb_mcp.core.config import BridgeConfig, get_server_uri
from spacetimedb_mcp.exceptions import SpacetimeMCPError

logger = logging.getLogger(__name__)

# Create MCP server
mcp = FastMCP("spacetimedb")

# Global session manager (set during server startup)
_manager: SessionManager | None = None

# Connection defaults used when spacetimedb_connect is called without arguments
_defaults: dict[str, str | None] = {"uri": None, "module_name": None, "auth_token": None}


def get_manager() -> SessionManager:
    """Get the session manager instance."""
    if _manager is None:
        raise RuntimeError("Session manager not initialized. Call create_server() first.")
    return _manager


def _dump(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    return json.dumps(value, default=str)


def _error(e: Exception) -> str:
    if isinstance(e, SpacetimeMCPError):
        return json.dumps(
            {"error": e.message, "type": e.__class__.__name__, "context": e.context},
            default=str,
        )
    return json.dumps({"error": str(e)})


def _json_argument(value: Any, name: str) -> Any:
    """Accept structured values directly or as JSON text (older clients send strings)."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"'{name}' is not valid JSON: {e.msg}") from e
    return value


# === Connection Tools ===


@mcp.tool()
async def spacetimedb_connect(
    uri: str | None = None,
    module_name: str | None = None,
    auth_token: str | None = None,
) -> str:
    """Connect to a SpacetimeDB instance (local or cloud).

    Fetches the module schema and opens the streaming channel. Call this
    before any other tool.

    Args:
        uri: Server URI, e.g. "ws://localhost:3000" or "wss://maincloud.spacetimedb.com"
            (http/https also accepted)
        module_name: Name or address of the database/module
        auth_token: Optional bearer token

    Returns:
        JSON with status, identity, and table/reducer counts.
    """
    try:
        module = module_name or _defaults["module_name"]
        if not module:
            raise ValueError("module_name is required (no default module configured)")
        result = await get_manager().connect(
            get_server_uri(uri or _defaults["uri"]),
            module,
            auth_token or _defaults["auth_token"],
        )
        return _dump(result)
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_disconnect() -> str:
    """Disconnect from the current SpacetimeDB instance.

    Returns:
        JSON with status "disconnected".
    """
    try:
        await get_manager().disconnect()
        return json.dumps({"status": "disconnected"})
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_get_connection_info() -> str:
    """Get current connection status and information.

    Returns:
        JSON with connected flag, URIs, module, identity and active subscriptions.
    """
    try:
        return _dump(await get_manager().get_connection_info())
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_get_identity() -> str:
    """Get the identity this connection acts as.

    Returns:
        JSON with identity (hex), authenticated flag, and where it came from.
    """
    try:
        return _dump(await get_manager().get_identity())
    except Exception as e:
        return _error(e)


# === Schema Discovery Tools ===


@mcp.tool()
async def spacetimedb_list_tables(include_schema: bool = False) -> str:
    """List all tables in the connected module.

    Args:
        include_schema: Include each table's columns and types

    Returns:
        JSON array of tables.
    """
    try:
        return _dump(await get_manager().list_tables(include_schema=include_schema))
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_get_schema(table_name: str | None = None) -> str:
    """Get schema information for one table or the whole module.

    Args:
        table_name: Optional table name. If omitted, returns every table and reducer.

    Returns:
        JSON with tables (columns, primary key, indexes, visibility) and reducers.
    """
    try:
        return _dump(await get_manager().get_schema(table_name))
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_list_reducers(include_signatures: bool = False) -> str:
    """List all reducers (server-side functions) in the connected module.

    Args:
        include_signatures: Include parameter names and types

    Returns:
        JSON array of reducers.
    """
    try:
        return _dump(await get_manager().list_functions(include_signatures=include_signatures))
    except Exception as e:
        return _error(e)


# === Data Tools ===


@mcp.tool()
async def spacetimedb_query_table(
    table_name: str,
    filter: dict[str, Any] | str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> str:
    """Query rows from a table, with optional equality filters and pagination.

    Args:
        table_name: Table to query
        filter: Column -> value equality conditions, e.g. {"online": true}
        limit: Maximum number of rows (default: 100)
        offset: Rows to skip (default: 0)

    Returns:
        JSON with table, the SQL used, decoded rows, and total_count.
    """
    try:
        parsed = _json_argument(filter, "filter") if filter else None
        result = await get_manager().query_table(table_name, parsed, limit, offset)
        return _dump(result)
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_execute_sql(query: str) -> str:
    """Execute a SQL query against the module.

    Args:
        query: SQL text

    Returns:
        JSON with decoded rows and row_count.
    """
    try:
        return _dump(await get_manager().execute_raw(query))
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_call_reducer(
    reducer_name: str,
    args: list[Any] | str | None = None,
) -> str:
    """Call a reducer. Reducers modify database state atomically.

    Args:
        reducer_name: Reducer to call
        args: Positional arguments, e.g. ["Alice", 42, true]

    Returns:
        JSON with status "success" or "error" and the server's message.
        A rejected call is reported with status "error", not as a tool error.
    """
    try:
        parsed = _json_argument(args, "args") if args is not None else []
        if not isinstance(parsed, list):
            parsed = [parsed]
        return _dump(await get_manager().call_function(reducer_name, parsed))
    except Exception as e:
        return _error(e)


# === Subscription Tools ===


@mcp.tool()
async def spacetimedb_subscribe_table(
    table_name: str,
    filter: dict[str, Any] | str | None = None,
) -> str:
    """Subscribe to a table for real-time updates.

    Registers the query on the streaming channel and returns the current rows.

    Args:
        table_name: Table to subscribe to
        filter: Optional column -> value equality conditions

    Returns:
        JSON with subscribed/applied flags and initial_data.
    """
    try:
        parsed = _json_argument(filter, "filter") if filter else None
        return _dump(await get_manager().subscribe_table(table_name, parsed))
    except Exception as e:
        return _error(e)


@mcp.tool()
async def spacetimedb_unsubscribe_table(table_name: str) -> str:
    """Drop a table subscription.

    Returns:
        JSON with unsubscribed flag (false if there was no subscription).
    """
    try:
        removed = await get_manager().unsubscribe_table(table_name)
        return json.dumps({"table": table_name, "unsubscribed": removed})
    except Exception as e:
        return _error(e)


# === Resources ===


@mcp.resource("spacetimedb://schema", mime_type="application/json")
async def schema_resource() -> str:
    """Complete schema of the connected module."""
    return _dump(await get_manager().get_schema())


@mcp.resource("spacetimedb://reducers", mime_type="application/json")
async def reducers_resource() -> str:
    """All callable reducers with their signatures."""
    return _dump(await get_manager().list_functions(include_signatures=True))


@mcp.resource("spacetimedb://tables/{table_name}", mime_type="application/json")
async def table_resource(table_name: str) -> str:
    """First 100 rows of a table."""
    return _dump(await get_manager().query_table(table_name, None, 100, 0))


def create_server(
    uri: str | None = None,
    module_name: str | None = None,
    auth_token: str | None = None,
    config: BridgeConfig | None = None,
) -> FastMCP:
    """Create and configure the MCP server.

    The connection itself is opened by the ``spacetimedb_connect`` tool; the
    arguments here only become its defaults.

    Args:
        uri: Default server URI
        module_name: Default module name
        auth_token: Default bearer token
        config: Bridge configuration (defaults from environment)

    Returns:
        Configured FastMCP server instance
    """
    global _manager
    _manager = SessionManager(config or BridgeConfig.from_env())
    _defaults.update({"uri": uri, "module_name": module_name, "auth_token": auth_token})
    logger.info(f"SpacetimeDB MCP server initialized (default module: {module_name or 'none'})")
    return mcp


def main() -> None:
    """Entry point for running the MCP server."""
    # Log to stderr: stdout carries the stdio transport
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    parser = argparse.ArgumentParser(description="SpacetimeDB MCP Server")
    parser.add_argument(
        "--uri",
        "-u",
        default=None,
        help="Default server URI (default: $SPACETIMEDB_URI or ws://localhost:3000)",
    )
    parser.add_argument(
        "--module",
        "-m",
        default=os.getenv("SPACETIMEDB_MODULE"),
        help="Default module name (default: $SPACETIMEDB_MODULE)",
    )
    parser.add_argument(
        "--token",
        "-t",
        default=os.getenv("SPACETIMEDB_TOKEN"),
        help="Default auth token (default: $SPACETIMEDB_TOKEN)",
    )
    args = parser.parse_args()

    create_server(args.uri, args.module, args.token)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
