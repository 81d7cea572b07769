"""
Single-user stdio transport.

Same tool and prompt catalog as the HTTP gateway, bound to one Pipedrive
API token from PIPEDRIVE_API_TOKEN. No auth and no rate limiting: the
process belongs to whoever launched it.
"""
from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

import httpx
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from . import SERVER_NAME, __version__
from .config import GatewaySettings, load_settings
from .dispatcher import run_tool
from .env_utils import env_str
from .errors import GatewayError
from .observability import InMemoryMetrics, setup_logger
from .pipedrive_client import PipedriveClient
from .prompts import get_prompt, list_prompts
from .token_optimizer import estimate_tokens
from .tools import ToolRegistry, build_registry

logger = logging.getLogger("pipedrive_mcp.stdio_server")


class ToolCallFailed(Exception):
    """Raised from the call_tool handler so the SDK marks the result isError."""


class StdioToolbox:
    """Catalog handlers for the low-level server, bound to one Pipedrive client."""

    def __init__(
        self,
        client: PipedriveClient,
        registry: Optional[ToolRegistry] = None,
        metrics: Optional[InMemoryMetrics] = None,
    ) -> None:
        self.client = client
        self.registry = registry or build_registry()
        self.metrics = metrics or InMemoryMetrics()

    async def list_tools(self) -> List[types.Tool]:
        return self.registry.list_tools()

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> List[types.TextContent]:
        spec = self.registry.get(name)
        if spec is None:
            raise ToolCallFailed(f'Tool "{name}" not found')
        try:
            args = spec.parse_arguments(arguments)
        except GatewayError as exc:
            raise ToolCallFailed(str(exc.data or exc.message))
        outcome = await run_tool(spec, self.client, args)
        self.metrics.record(
            name, outcome.duration_ms, error=outcome.is_error, reply_tokens=estimate_tokens(outcome.text)
        )
        if outcome.is_error:
            raise ToolCallFailed(outcome.text)
        return [types.TextContent(type="text", text=outcome.text)]

    async def list_prompts(self) -> List[types.Prompt]:
        return list_prompts()

    async def get_prompt(self, name: str, arguments: Optional[Dict[str, str]]) -> types.GetPromptResult:
        return get_prompt(name, arguments)


def build_server(toolbox: StdioToolbox) -> Server:
    server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def handle_list_tools() -> List[types.Tool]:
        return await toolbox.list_tools()

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
        return await toolbox.call_tool(name, arguments)

    @server.list_prompts()
    async def handle_list_prompts() -> List[types.Prompt]:
        return await toolbox.list_prompts()

    @server.get_prompt()
    async def handle_get_prompt(name: str, arguments: Optional[Dict[str, str]]) -> types.GetPromptResult:
        return await toolbox.get_prompt(name, arguments)

    return server


async def serve(api_token: str, settings: GatewaySettings) -> None:
    upstream = settings.upstream
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=upstream.connect_timeout,
            read=upstream.read_timeout,
            write=upstream.write_timeout,
            pool=upstream.pool_timeout,
        ),
        follow_redirects=False,
    ) as http_client:
        toolbox = StdioToolbox(PipedriveClient(http_client, api_token, upstream.base_url))
        server = build_server(toolbox)
        async with stdio_server() as (read_stream, write_stream):
            # stdout carries the protocol: log to stderr only (StreamHandler default)
            logger.info(f"Pipedrive MCP server running on stdio with {len(toolbox.registry)} tools")
            await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    settings = load_settings()
    setup_logger(settings.log_level)
    api_token = env_str("PIPEDRIVE_API_TOKEN")
    if not api_token:
        print("PIPEDRIVE_API_TOKEN environment variable is required", file=sys.stderr)
        sys.exit(1)
    try:
        asyncio.run(serve(api_token, settings))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
