"""Unit tests for the SpacetimeDB MCP server integration.

FastMCP tools are plain coroutine functions, so they are called directly here;
the MCP framework handles JSON transport framing.
"""

from __future__ import annotations

import json
from collections.abc import Generator
from typing import Any

import pytest

# Skip entire module if mcp is not installed
pytest.importorskip("mcp", reason="mcp not installed")

from spacetimedb_mcp import SessionManager  # noqa: E402
from spacetimedb_mcp.integrations.mcp import server as mcp_server  # noqa: E402

URI = "ws://localhost:3000"
MODULE = "quickstart-chat"


@pytest.fixture(autouse=True)
def set_mcp_manager(manager: SessionManager) -> Generator[None, None, None]:
    """Inject the fake-backed manager into the MCP server global before each test."""
    mcp_server._manager = manager
    mcp_server._defaults.update({"uri": None, "module_name": None, "auth_token": None})
    yield
    mcp_server._manager = None


# === Helpers ===


def _ok(result: str) -> Any:
    """Parse result and assert no error."""
    data = json.loads(result)
    if isinstance(data, dict):
        assert "error" not in data, f"Unexpected error: {data['error']}"
    return data


def _err(result: str) -> dict:
    """Parse result and assert an error is present."""
    data = json.loads(result)
    assert isinstance(data, dict) and data.get("error"), f"Expected error, got: {data}"
    return data


async def _connect() -> dict:
    return _ok(await mcp_server.spacetimedb_connect(URI, MODULE))


# === Connection ===


class TestConnectionTools:
    @pytest.mark.asyncio
    async def test_connect(self, ids: dict[str, str]) -> None:
        data = await _connect()
        assert data["status"] == "connected"
        assert data["identity"] == ids["stream"]
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_connect_uses_defaults(self) -> None:
        mcp_server._defaults.update({"uri": URI, "module_name": MODULE})
        data = _ok(await mcp_server.spacetimedb_connect())
        assert data["status"] == "connected"
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_connect_requires_module(self) -> None:
        data = _err(await mcp_server.spacetimedb_connect(URI))
        assert "module_name" in data["error"]

    @pytest.mark.asyncio
    async def test_connect_bad_uri(self) -> None:
        data = _err(await mcp_server.spacetimedb_connect("localhost:3000", MODULE))
        assert data["type"] == "ConnectionError"

    @pytest.mark.asyncio
    async def test_disconnect(self) -> None:
        await _connect()
        assert _ok(await mcp_server.spacetimedb_disconnect()) == {"status": "disconnected"}

    @pytest.mark.asyncio
    async def test_connection_info(self) -> None:
        info = _ok(await mcp_server.spacetimedb_get_connection_info())
        assert info["connected"] is False
        await _connect()
        info = _ok(await mcp_server.spacetimedb_get_connection_info())
        assert info["connected"] is True
        assert info["module"] == MODULE
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_identity(self, ids: dict[str, str]) -> None:
        await _connect()
        data = _ok(await mcp_server.spacetimedb_get_identity())
        assert data["identity"] == ids["stream"]
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_not_connected_error(self) -> None:
        data = _err(await mcp_server.spacetimedb_list_tables())
        assert data["type"] == "NotConnectedError"
        assert "connect()" in data["error"]


# === Schema Discovery ===


class TestSchemaTools:
    @pytest.mark.asyncio
    async def test_list_tables(self) -> None:
        await _connect()
        tables = _ok(await mcp_server.spacetimedb_list_tables())
        assert [t["name"] for t in tables] == ["user", "message"]
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_get_schema_for_table(self) -> None:
        await _connect()
        schema = _ok(await mcp_server.spacetimedb_get_schema("user"))
        assert schema["tables"][0]["columns"][2] == {"name": "online", "type": "bool"}
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_list_reducers(self) -> None:
        await _connect()
        reducers = _ok(await mcp_server.spacetimedb_list_reducers(include_signatures=True))
        assert reducers[1]["signature"] == "(text: string)"
        await mcp_server.spacetimedb_disconnect()


# === Data ===


class TestDataTools:
    @pytest.mark.asyncio
    async def test_query_table(self) -> None:
        await _connect()
        data = _ok(await mcp_server.spacetimedb_query_table("user", {"online": True}, limit=10))
        assert data["query"] == "SELECT * FROM user WHERE online = true LIMIT 10"
        assert data["rows"][0]["online"] is True
        assert data["rows"][0]["last_seen"].startswith("2023-11-14T22:13:20")
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_query_table_filter_as_json_text(self) -> None:
        await _connect()
        data = _ok(await mcp_server.spacetimedb_query_table("user", '{"online": false}'))
        assert data["total_count"] == 2
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_query_table_invalid_filter(self) -> None:
        await _connect()
        data = _err(await mcp_server.spacetimedb_query_table("user", "{nope"))
        assert "filter" in data["error"]
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_execute_sql(self) -> None:
        await _connect()
        data = _ok(await mcp_server.spacetimedb_execute_sql("SELECT * FROM message"))
        assert data["rows"][0]["text"] == "hello"
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_execute_sql_error(self) -> None:
        await _connect()
        data = _err(await mcp_server.spacetimedb_execute_sql("SELECT * FROM no_such_table"))
        assert data["type"] == "QueryError"
        assert data["context"]["status_code"] == 400
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_call_reducer(self, fake_server: Any) -> None:
        await _connect()
        data = _ok(await mcp_server.spacetimedb_call_reducer("set_name", ["Alice"]))
        assert data["status"] == "success"
        await mcp_server.spacetimedb_call_reducer("send_message", '["hi"]')
        assert fake_server.calls == [("set_name", ["Alice"]), ("send_message", ["hi"])]
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_call_reducer_failure_is_a_result(self, fake_server: Any) -> None:
        fake_server.failing_reducers["set_name"] = "Names must not be empty"
        await _connect()
        data = _ok(await mcp_server.spacetimedb_call_reducer("set_name", [""]))
        assert data["status"] == "error"
        await mcp_server.spacetimedb_disconnect()


# === Subscriptions ===


class TestSubscriptionTools:
    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self) -> None:
        await _connect()
        data = _ok(await mcp_server.spacetimedb_subscribe_table("user"))
        assert data["subscribed"] is True
        assert len(data["initial_data"]) == 2
        removed = _ok(await mcp_server.spacetimedb_unsubscribe_table("user"))
        assert removed == {"table": "user", "unsubscribed": True}
        await mcp_server.spacetimedb_disconnect()


# === Resources ===


class TestResources:
    @pytest.mark.asyncio
    async def test_schema_resource(self) -> None:
        await _connect()
        data = json.loads(await mcp_server.schema_resource())
        assert data["database"] == MODULE
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_reducers_resource(self) -> None:
        await _connect()
        data = json.loads(await mcp_server.reducers_resource())
        assert data[0]["name"] == "set_name"
        await mcp_server.spacetimedb_disconnect()

    @pytest.mark.asyncio
    async def test_table_resource(self) -> None:
        await _connect()
        data = json.loads(await mcp_server.table_resource("message"))
        assert data["query"] == "SELECT * FROM message LIMIT 100"
        await mcp_server.spacetimedb_disconnect()


class TestCreateServer:
    def test_create_server_sets_defaults(self) -> None:
        server = mcp_server.create_server(URI, MODULE, "secret")
        assert server is mcp_server.mcp
        assert mcp_server._defaults["module_name"] == MODULE
        assert isinstance(mcp_server.get_manager(), SessionManager)

    def test_get_manager_uninitialized(self) -> None:
        mcp_server._manager = None
        with pytest.raises(RuntimeError):
            mcp_server.get_manager()
