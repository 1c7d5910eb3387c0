"""Shared test fixtures for spacetimedb-mcp.

Nothing here talks to a real server: the request/response channel runs on
``httpx.MockTransport``, the streaming channel on an in-memory websocket and
the command-line client on a stub.
"""

import asyncio
import copy
import json
from typing import Any

import httpx
import pytest

from spacetimedb_mcp import BridgeConfig, SessionManager
from spacetimedb_mcp.exceptions import ProcessError
from spacetimedb_mcp.transport import ProcessTransport

MODULE = "quickstart-chat"
IDENTITY_A = "c200" + "ab" * 30
IDENTITY_B = "c200" + "cd" * 30
STREAM_IDENTITY = "c200" + "ef" * 30


def _element(name: str, algebraic_type: Any) -> dict[str, Any]:
    return {"name": {"some": name}, "algebraic_type": algebraic_type}


IDENTITY_TYPE = {"Product": {"elements": [_element("__identity__", {"U256": []})]}}
TIMESTAMP_TYPE = {
    "Product": {"elements": [_element("__timestamp_micros_since_unix_epoch__", {"I64": []})]}
}
OPTION_STRING_TYPE = {
    "Sum": {
        "variants": [
            _element("some", {"String": []}),
            _element("none", {"Product": {"elements": []}}),
        ]
    }
}
STATUS_TYPE = {
    "Sum": {
        "variants": [
            _element("Active", {"Product": {"elements": []}}),
            _element("Away", {"String": []}),
        ]
    }
}

USER_ELEMENTS = [
    _element("identity", IDENTITY_TYPE),
    _element("name", OPTION_STRING_TYPE),
    _element("online", {"Bool": []}),
    _element("last_seen", TIMESTAMP_TYPE),
    _element("status", STATUS_TYPE),
]
MESSAGE_ELEMENTS = [
    _element("sender", IDENTITY_TYPE),
    _element("sent", TIMESTAMP_TYPE),
    _element("text", {"String": []}),
]

MODULE_DEF: dict[str, Any] = {
    "typespace": {
        "types": [
            {"Product": {"elements": USER_ELEMENTS}},
            {"Product": {"elements": MESSAGE_ELEMENTS}},
        ]
    },
    "tables": [
        {
            "name": "user",
            "product_type_ref": 0,
            "primary_key": [0],
            "indexes": [],
            "constraints": [],
            "sequences": [],
            "schedule": {"none": []},
            "table_type": {"User": []},
            "table_access": {"Public": []},
        },
        {
            "name": "message",
            "product_type_ref": 1,
            "primary_key": [],
            "indexes": [],
            "constraints": [],
            "sequences": [],
            "schedule": {"none": []},
            "table_type": {"User": []},
            "table_access": {"Public": []},
        },
    ],
    "reducers": [
        {
            "name": "set_name",
            "params": {"elements": [_element("name", {"String": []})]},
            "lifecycle": {"none": []},
        },
        {
            "name": "send_message",
            "params": {"elements": [_element("text", {"String": []})]},
            "lifecycle": {"none": []},
        },
        {"name": "init", "params": {"elements": []}, "lifecycle": {"some": {"Init": []}}},
        {
            "name": "identity_connected",
            "params": {"elements": []},
            "lifecycle": {"some": {"OnConnect": []}},
        },
    ],
    "types": [],
    "misc_exports": [],
    "row_level_security": [],
}

USER_ROWS = [
    [[f"0x{IDENTITY_A}"], {"some": "Alice"}, True, [1700000000000000], {"0": []}],
    [[f"0x{IDENTITY_B}"], {"none": []}, False, [1700000000500000], {"1": "brb"}],
]
MESSAGE_ROWS = [
    [[f"0x{IDENTITY_A}"], [1700000001000000], "hello"],
]


class FakeServer:
    """Request handler for ``httpx.MockTransport`` mimicking the HTTP API."""

    def __init__(self) -> None:
        self.module_def = copy.deepcopy(MODULE_DEF)
        self.schema_status = 200
        self.schema_failures = 0
        self.failing_reducers: dict[str, str] = {}
        self.unreachable: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.queries: list[str] = []
        self.calls: list[tuple[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prefix = f"/v1/database/{MODULE}/"
        path = request.url.path
        if not path.startswith(prefix):
            return httpx.Response(404, text="database not found")
        endpoint = path[len(prefix) :]
        if endpoint.split("/")[0] in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        if endpoint == "schema" and request.method == "GET":
            if self.schema_failures > 0:
                self.schema_failures -= 1
                return httpx.Response(503, text="try again")
            if self.schema_status != 200:
                return httpx.Response(self.schema_status, text="schema unavailable")
            return httpx.Response(200, json=self.module_def)

        if endpoint == "sql" and request.method == "POST":
            query = request.content.decode("utf-8")
            self.queries.append(query)
            return self._sql(query)

        if endpoint.startswith("call/") and request.method == "POST":
            name = endpoint[len("call/") :]
            self.calls.append((name, json.loads(request.content)))
            if name in self.failing_reducers:
                return httpx.Response(530, text=self.failing_reducers[name])
            return httpx.Response(200, text="")

        return httpx.Response(404, text="not found")

    def _sql(self, query: str) -> httpx.Response:
        if "no_such_table" in query:
            return httpx.Response(400, text="no such table: `no_such_table`")
        if "FROM user" in query:
            rows = USER_ROWS
            if "online = true" in query:
                rows = [r for r in rows if r[2]]
            return httpx.Response(
                200,
                json=[{"schema": {"elements": USER_ELEMENTS}, "rows": rows}],
            )
        if "FROM message" in query:
            return httpx.Response(
                200,
                json=[{"schema": {"elements": MESSAGE_ELEMENTS}, "rows": MESSAGE_ROWS}],
            )
        return httpx.Response(200, json=[{"schema": {"elements": []}, "rows": []}])


class FakeWebSocket:
    """In-memory websocket speaking the JSON client protocol."""

    def __init__(
        self,
        identity: str | None = STREAM_IDENTITY,
        token: str = "stream-token",
        reject: tuple[str, ...] = (),
        silent: tuple[str, ...] = (),
    ) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.reject = reject
        self.silent = silent
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        if identity is not None:
            self.push(
                {
                    "IdentityToken": {
                        "identity": {"__identity__": f"0x{identity}"},
                        "token": token,
                        "connection_id": {"__connection_id__": "0x01"},
                    }
                }
            )

    def push(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(json.dumps(message))

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self._queue.put_nowait(None)

    async def send(self, data: str) -> None:
        message = json.loads(data)
        self.sent.append(message)
        if "SubscribeSingle" in message:
            body = message["SubscribeSingle"]
            if any(s in body["query"] for s in self.silent):
                return
            if any(r in body["query"] for r in self.reject):
                self.push(
                    {
                        "SubscriptionError": {
                            "request_id": {"some": body["request_id"]},
                            "query_id": {"some": body["query_id"]["id"]},
                            "error": "table not found",
                        }
                    }
                )
            else:
                self.push(
                    {
                        "SubscribeApplied": {
                            "request_id": body["request_id"],
                            "query_id": body["query_id"],
                            "rows": {"table_name": "user", "table_rows": {}},
                        }
                    }
                )
        elif "Unsubscribe" in message:
            body = message["Unsubscribe"]
            self.push({"UnsubscribeApplied": {"request_id": body["request_id"]}})

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Stands in for ``websockets.asyncio.client.connect``."""

    def __init__(self, **websocket_kwargs: Any) -> None:
        self.websocket_kwargs = websocket_kwargs
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.websockets: list[FakeWebSocket] = []
        self.error: Exception | None = None

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        websocket = FakeWebSocket(**self.websocket_kwargs)
        self.websockets.append(websocket)
        return websocket

    @property
    def websocket(self) -> FakeWebSocket:
        return self.websockets[-1]


class FakeProcess(ProcessTransport):
    """Stands in for the command-line client with canned output per subcommand."""

    def __init__(self) -> None:
        super().__init__("spacetime")
        self.describe_output: str | None = None
        self.identity_output: str | None = None
        self.sql_output: str | None = None
        self.call_output: str | None = None
        self.commands: list[str] = []
        self.args: list[list[str]] = []

    async def run(self, args: list[str]) -> str:
        command = " ".join(args[:2]) if args[0] == "identity" else args[0]
        self.commands.append(command)
        self.args.append(args)
        output = {
            "describe": self.describe_output,
            "identity list": self.identity_output,
            "sql": self.sql_output,
            "call": self.call_output,
        }.get(command)
        if output is None:
            raise ProcessError(["spacetime", *args], 1, f"{command} failed")
        return output


@pytest.fixture
def module_def() -> dict[str, Any]:
    """A copy of the quickstart-chat module definition."""
    return copy.deepcopy(MODULE_DEF)


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fake_process() -> FakeProcess:
    return FakeProcess()


@pytest.fixture
def test_config() -> BridgeConfig:
    """Config with short timeouts and no retry delay."""
    return BridgeConfig(
        identity_timeout=1.0,
        subscription_timeout=1.0,
        retry_backoff=0.0,
        read_retries=2,
    )


@pytest.fixture
def manager(
    test_config: BridgeConfig,
    fake_server: FakeServer,
    fake_connector: FakeConnector,
    fake_process: FakeProcess,
) -> SessionManager:
    """A session manager wired to the fakes (not yet connected)."""
    return SessionManager(
        test_config,
        http_transport=httpx.MockTransport(fake_server),
        stream_connector=fake_connector,
        process=fake_process,
    )


@pytest.fixture
def ids() -> dict[str, str]:
    """Identities used by the fake server and websocket."""
    return {"a": IDENTITY_A, "b": IDENTITY_B, "stream": STREAM_IDENTITY, "module": MODULE}
