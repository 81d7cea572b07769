"""
Pipedrive MCP gateway.

Exposes the Pipedrive REST API as MCP tools behind bearer-token
multi-tenant auth and per-user rate limiting.
"""
from __future__ import annotations

__version__ = "1.0.0"

SERVER_NAME = "pipedrive-mcp-server"
