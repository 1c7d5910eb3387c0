"""Per-session schema cache.

The schema is fetched once at connect time. Every later decode reads from this
cache; a table or function the cache does not know simply has no schema, so
decoding falls back to passing values through.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from spacetimedb_mcp.exceptions import SchemaFetchError
from spacetimedb_mcp.schema.models import FunctionSchema, Schema, TableSchema

if TYPE_CHECKING:
    from spacetimedb_mcp.transport.http import HttpTransport

logger = logging.getLogger(__name__)


class SchemaCache:
    """Holds the one schema document of a session."""

    def __init__(self) -> None:
        self._schema: Schema | None = None
        self._source: str | None = None

    @property
    def schema(self) -> Schema | None:
        return self._schema

    @property
    def source(self) -> str | None:
        """Where the cached schema came from: ``"http"`` or ``"cli"``."""
        return self._source

    @property
    def is_loaded(self) -> bool:
        return self._schema is not None

    async def fetch(self, transport: HttpTransport, version: int = 9) -> Schema:
        """Fetch the schema over the request/response transport and cache it.

        Raises:
            SchemaFetchError: On non-success status or a malformed document
        """
        document = await transport.fetch_schema(version=version)
        return self.load(document, source="http", endpoint=transport.schema_endpoint)

    def load(self, document: Any, source: str, endpoint: str = "schema") -> Schema:
        """Parse a module definition document and cache it.

        Args:
            document: Decoded JSON document, or raw JSON text
            source: Where the document came from (for diagnostics)
            endpoint: Endpoint or command reported in errors

        Raises:
            SchemaFetchError: If the document is not a valid module definition
        """
        if isinstance(document, str):
            try:
                document = json.loads(document)
            except json.JSONDecodeError as e:
                raise SchemaFetchError(
                    f"Schema document is not valid JSON: {e.msg}", endpoint, body=document[:500]
                ) from e
        try:
            schema = Schema.from_module_def(document)
        except (ValueError, KeyError, TypeError) as e:
            raise SchemaFetchError(f"Malformed schema document: {e}", endpoint) from e

        self._schema = schema
        self._source = source
        logger.info(
            f"Loaded schema from {source}: {len(schema.tables)} tables, "
            f"{len(schema.functions)} reducers"
        )
        return schema

    def get_table(self, name: str) -> TableSchema | None:
        if self._schema is None:
            return None
        return self._schema.get_table(name)

    def get_function(self, name: str) -> FunctionSchema | None:
        if self._schema is None:
            return None
        return self._schema.get_function(name)

    def clear(self) -> None:
        self._schema = None
        self._source = None
