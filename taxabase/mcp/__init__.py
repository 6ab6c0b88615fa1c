"""Taxabase MCP server. Exposes model directory and hierarchy operations as tools for AI agents."""

from taxabase.mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
