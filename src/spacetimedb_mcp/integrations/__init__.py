"""Agent framework integrations.

Available integrations:
- spacetimedb_mcp.integrations.mcp - MCP (Model Context Protocol) server
"""
