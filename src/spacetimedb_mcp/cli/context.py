"""CLI context management for connections and shared state."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import typer

from spacetimedb_mcp import SessionManager
from spacetimedb_mcp.core.config import BridgeConfig

T = TypeVar("T")


def get_module_name(module: str | None) -> str | None:
    """Resolve the module name from CLI arg or the SPACETIMEDB_MODULE environment variable."""
    return module or os.getenv("SPACETIMEDB_MODULE")


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Each command opens a session, runs one operation and closes it again.
    """

    uri: str
    module_name: str | None
    token: str | None
    json_output: bool

    def create_manager(self) -> SessionManager:
        """Create a session manager configured from the environment."""
        return SessionManager(BridgeConfig.from_env())

    def run(self, operation: Callable[[SessionManager], Awaitable[T]]) -> T:
        """Connect, run ``operation`` against the session, and disconnect.

        Raises:
            typer.BadParameter: If no module name was given
        """
        module_name = self.module_name
        if not module_name:
            raise typer.BadParameter("No module given. Use --module or set SPACETIMEDB_MODULE.")

        async def _run() -> T:
            async with self.create_manager() as manager:
                await manager.connect(self.uri, module_name, self.token)
                return await operation(manager)

        return asyncio.run(_run())
