"""Rabbithole MCP server — exposes rabbit hole exploration as tools for AI agents."""

from rabbithole.mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
