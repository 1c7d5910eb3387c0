"""Configuration for the bridge.

Values come from keyword arguments, then ``SPACETIMEDB_MCP_*`` environment
variables, then the defaults below.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

ENV_PREFIX = "SPACETIMEDB_MCP_"
DEFAULT_URI = "ws://localhost:3000"


class BridgeConfig(BaseModel):
    """Tunables for transports and the session manager."""

    # Request/response transport
    http_timeout: float = Field(default=30.0, description="Seconds before an HTTP call fails")
    read_retries: int = Field(
        default=2, ge=0, description="Retries for idempotent reads (schema fetch, SELECT)"
    )
    retry_backoff: float = Field(default=0.5, ge=0, description="Base backoff between retries")
    schema_version: int = Field(default=9, description="Module definition version to request")

    # Streaming transport
    subscription_timeout: float = Field(
        default=10.0, description="Seconds to wait for a subscription to be applied"
    )
    identity_timeout: float = Field(
        default=5.0, description="Seconds to wait for the identity handshake on connect"
    )

    # Process transport
    cli_path: str = Field(default="spacetime", description="Command-line client executable")
    cli_fallback: bool = Field(
        default=True, description="Use the CLI when structured metadata is unavailable"
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> BridgeConfig:
        """Build a config from the environment, with explicit overrides on top.

        Example:
            SPACETIMEDB_MCP_HTTP_TIMEOUT=5 -> BridgeConfig(http_timeout=5.0)
        """
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            env_value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


def get_server_uri(uri: str | None) -> str:
    """Resolve the server URI from CLI arg, environment variable, or default.

    Priority:
    1. Explicit URI argument
    2. SPACETIMEDB_URI environment variable
    3. Default: ws://localhost:3000
    """
    if uri:
        return uri
    if env_uri := os.getenv("SPACETIMEDB_URI"):
        return env_uri
    return DEFAULT_URI
