"""Process transport: runs the ``spacetime`` command-line client.

Used as a fallback when the HTTP API is unavailable: schema discovery,
queries and reducer calls. Also lists local identities.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from spacetimedb_mcp.exceptions import ProcessError
from spacetimedb_mcp.query.parser import parse_result_text

logger = logging.getLogger(__name__)


class ProcessTransport:
    """Spawns one short-lived client process per call."""

    def __init__(self, executable: str = "spacetime") -> None:
        self._executable = executable

    @property
    def executable(self) -> str:
        return self._executable

    async def run(self, args: list[str]) -> str:
        """Run the client with ``args`` and return its standard output.

        The child is always reaped, including when the caller is cancelled.

        Raises:
            ProcessError: If the client cannot start or exits non-zero
        """
        command = [self._executable, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessError(command, None, str(e)) from e

        try:
            stdout, stderr = await proc.communicate()
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            logger.warning(f"CLI command {args[:1]} exited with {proc.returncode}")
            raise ProcessError(command, proc.returncode, err)
        return out

    async def describe(self, module_name: str, server: str) -> str:
        return await self.run(["describe", "--json", module_name, "--server", server])

    async def sql(self, module_name: str, server: str, query: str) -> list[Any]:
        """Run a query through the client and parse its JSON or tabular output into rows."""
        return parse_result_text(await self.run(["sql", module_name, "--server", server, query]))

    async def call(self, module_name: str, function: str, args: list[str], server: str) -> str:
        return await self.run(["call", module_name, function, *args, "--server", server])

    async def identity_list(self) -> str:
        return await self.run(["identity", "list"])
