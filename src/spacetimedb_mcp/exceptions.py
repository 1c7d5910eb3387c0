"""Custom exceptions for the SpacetimeDB MCP bridge.

All exceptions are designed with agent-first principles:
- Actionable error messages that tell what went wrong AND how to fix it
- Include the endpoint, status/exit code and body/stderr so failures can be
  diagnosed without re-running with extra logging
"""

from __future__ import annotations

from typing import Any


class SpacetimeMCPError(Exception):
    """Base exception for all bridge errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict for agent consumption."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(SpacetimeMCPError):
    """Failed to reach the remote instance (bad URI, handshake or network failure)."""

    pass


class NotConnectedError(SpacetimeMCPError):
    """Operation attempted before connect()."""

    def __init__(self, operation: str | None = None) -> None:
        message = "Not connected to SpacetimeDB. Use connect() first."
        if operation:
            message = f"Cannot run '{operation}': {message}"
        super().__init__(message, {"operation": operation})
        self.operation = operation


class _HTTPError(SpacetimeMCPError):
    """Error raised from a request/response exchange."""

    def __init__(
        self,
        message: str,
        endpoint: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        detail = message
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code} from {endpoint})"
        else:
            detail = f"{detail} ({endpoint})"
        if body:
            detail = f"{detail}: {body}"
        super().__init__(
            detail,
            {"endpoint": endpoint, "status_code": status_code, "body": body},
        )
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body


class SchemaFetchError(_HTTPError):
    """Schema endpoint returned a non-success status or a malformed document."""

    pass


class QueryError(_HTTPError):
    """SQL endpoint rejected the query or could not be reached."""

    pass


class FunctionCallError(_HTTPError):
    """Call endpoint rejected a reducer invocation."""

    pass


class SubscriptionError(SpacetimeMCPError):
    """Streaming handshake or subscription registration failed."""

    def __init__(self, message: str, query: str | None = None, reason: str | None = None) -> None:
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"query": query, "reason": reason})
        self.query = query
        self.reason = reason


class ProcessError(SpacetimeMCPError):
    """The command-line client exited with a non-zero status or could not start."""

    def __init__(self, command: list[str], exit_code: int | None, stderr: str = "") -> None:
        cmd = " ".join(command)
        if exit_code is None:
            message = f"Failed to execute CLI command '{cmd}'"
        else:
            message = f"CLI command '{cmd}' failed (exit code {exit_code})"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message, {"command": command, "exit_code": exit_code, "stderr": stderr})
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
