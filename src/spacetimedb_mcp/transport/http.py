"""Request/response transport over the server's HTTP API.

Endpoints, relative to ``<http-uri>/v1/database/<module>/``:

- ``GET schema?version=9``  - module definition (JSON)
- ``POST sql``              - raw query text in, list of statement results out
- ``POST call/<reducer>``   - JSON array of arguments in, plain text out
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from spacetimedb_mcp.core.config import BridgeConfig
from spacetimedb_mcp.exceptions import (
    FunctionCallError,
    QueryError,
    SchemaFetchError,
    SpacetimeMCPError,
)

logger = logging.getLogger(__name__)


class HttpTransport:
    """Issues schema, query and reducer-call requests for one module."""

    def __init__(
        self,
        base_uri: str,
        module_name: str,
        token: str | None = None,
        config: BridgeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_uri: Request/response form of the server URI (http/https)
            module_name: Database/module name or address
            token: Optional bearer token sent on every request
            config: Timeout and retry settings
            transport: Custom httpx transport (tests pass ``httpx.MockTransport``)
        """
        self._config = config or BridgeConfig()
        self._base_url = f"{base_uri.rstrip('/')}/v1/database/{module_name}"
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._config.http_timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def schema_endpoint(self) -> str:
        return f"{self._base_url}/schema"

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[SpacetimeMCPError],
        retries: int = 0,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying transport failures and 5xx when ``retries`` > 0."""
        endpoint = f"{self._base_url}/{path}"
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                if attempt < retries:
                    await self._backoff(attempt, endpoint, str(e))
                    attempt += 1
                    continue
                raise error_cls(f"Request failed: {e}", endpoint) from e

            if response.status_code >= 500 and attempt < retries:
                await self._backoff(attempt, endpoint, f"HTTP {response.status_code}")
                attempt += 1
                continue
            return response

    async def _backoff(self, attempt: int, endpoint: str, reason: str) -> None:
        delay = self._config.retry_backoff * (2**attempt)
        logger.warning(f"Retrying {endpoint} in {delay:.2f}s ({reason})")
        await asyncio.sleep(delay)

    async def fetch_schema(self, version: int | None = None) -> Any:
        """Fetch the module definition document.

        Returns:
            The decoded JSON document

        Raises:
            SchemaFetchError: On network failure, non-2xx status, or invalid JSON
        """
        response = await self._request(
            "GET",
            "schema",
            SchemaFetchError,
            retries=self._config.read_retries,
            params={"version": version or self._config.schema_version},
        )
        if not response.is_success:
            raise SchemaFetchError(
                "Schema fetch failed", self.schema_endpoint, response.status_code, response.text
            )
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise SchemaFetchError(
                f"Schema document is not valid JSON: {e.msg}",
                self.schema_endpoint,
                response.status_code,
                response.text[:500],
            ) from e

    async def run_statements(self, query: str, retry: bool = False) -> list[dict[str, Any]]:
        """Run raw SQL and return every statement result.

        Each result is a dict with at least ``rows`` and, from current servers,
        ``schema`` (a product type describing the columns).

        Args:
            query: SQL text
            retry: Retry transport failures; only pass True for read-only queries

        Raises:
            QueryError: On network failure, non-2xx status, or an unexpected body
        """
        endpoint = f"{self._base_url}/sql"
        response = await self._request(
            "POST",
            "sql",
            QueryError,
            retries=self._config.read_retries if retry else 0,
            content=query.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        if not response.is_success:
            raise QueryError("Query failed", endpoint, response.status_code, response.text)
        try:
            statements = response.json()
        except json.JSONDecodeError as e:
            raise QueryError(
                f"Query response is not valid JSON: {e.msg}",
                endpoint,
                response.status_code,
                response.text[:500],
            ) from e
        if isinstance(statements, dict):
            statements = [statements]
        if not isinstance(statements, list):
            raise QueryError(
                "Query response is not a list of statement results",
                endpoint,
                response.status_code,
                response.text[:500],
            )
        return statements

    async def run_query(self, query: str, retry: bool = False) -> list[Any]:
        """Run SQL and return the first statement's rows, undecoded."""
        statements = await self.run_statements(query, retry=retry)
        if not statements:
            return []
        first = statements[0]
        rows = first.get("rows", []) if isinstance(first, dict) else []
        return rows if isinstance(rows, list) else []

    async def call_function(self, name: str, args: list[Any]) -> str:
        """Invoke a reducer with positional arguments.

        Returns:
            The response body, or a default success message when it is empty

        Raises:
            FunctionCallError: On network failure or non-2xx status
        """
        endpoint = f"{self._base_url}/call/{name}"
        response = await self._request(
            "POST",
            f"call/{name}",
            FunctionCallError,
            json=list(args),
        )
        if not response.is_success:
            raise FunctionCallError(
                f"Reducer '{name}' failed", endpoint, response.status_code, response.text
            )
        return response.text or f"Reducer '{name}' executed successfully"

    async def aclose(self) -> None:
        await self._client.aclose()
