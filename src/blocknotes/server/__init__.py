"""MCP tool surface."""
