"""MCP tool surface and the JSON shapes it returns."""

from email_mcp.tools.server import create_server

__all__ = [
    "create_server",
]
