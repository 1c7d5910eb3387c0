"""MCP (Model Context Protocol) integration for SpacetimeDB.

This module provides an MCP server that exposes SpacetimeDB operations
as tools for AI agents like Claude.

Example:
    # Run the MCP server
    python -m spacetimedb_mcp.integrations.mcp.server --module quickstart-chat

    # Or via entry point (after pip install)
    spacetimedb-mcp --uri ws://localhost:3000 --module quickstart-chat
"""

from spacetimedb_mcp.integrations.mcp.server import create_server, mcp

__all__ = ["mcp", "create_server"]
