"""Transports to a remote module.

- http: request/response channel for schema, queries and reducer calls
- streaming: long-lived WebSocket channel for subscriptions
- process: the ``spacetime`` command-line client, used as a fallback
"""

from spacetimedb_mcp.transport.http import HttpTransport
from spacetimedb_mcp.transport.process import ProcessTransport
from spacetimedb_mcp.transport.streaming import (
    StreamingChannel,
    StreamingTransport,
    Subscription,
)

__all__ = [
    "HttpTransport",
    "ProcessTransport",
    "StreamingChannel",
    "StreamingTransport",
    "Subscription",
]
