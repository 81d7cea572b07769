"""
JSON-RPC method dispatch for the MCP endpoint.

Each request is handled on its own: the only cross-request state is the
session registry. Tool failures (upstream errors, handler exceptions) are
reported as `isError` tool results, never as JSON-RPC errors. Everything
else that goes wrong becomes a JSON-RPC error reply carrying the caller's id.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx
from mcp.types import (
    CallToolResult,
    Implementation,
    InitializeResult,
    PromptsCapability,
    ServerCapabilities,
    TextContent,
    ToolsCapability,
)

from . import SERVER_NAME, __version__
from .config import DEFAULT_PIPEDRIVE_BASE_URL
from .errors import (
    GatewayError,
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    RequestId,
    jsonrpc_result,
)
from .observability import AuditLogger, InMemoryMetrics
from .pipedrive_client import PipedriveClient
from .prompts import get_prompt, list_prompts
from .sessions import SessionRegistry, session_id_for
from .token_optimizer import MAX_TOKENS_PER_RESPONSE, check_token_limits
from .tools import ToolRegistry, ToolSpec
from .users import Principal

logger = logging.getLogger("pipedrive_mcp.dispatcher")

SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")
DEFAULT_PROTOCOL_VERSION = "2025-06-18"


def negotiate_protocol_version(requested: Any) -> str:
    """Echo a supported version; anything else gets the server default."""
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return DEFAULT_PROTOCOL_VERSION


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


@dataclass
class ToolOutcome:
    text: str
    is_error: bool
    duration_ms: float

    def to_result(self) -> CallToolResult:
        return CallToolResult(content=[TextContent(type="text", text=self.text)], isError=self.is_error)


async def run_tool(spec: ToolSpec, client: PipedriveClient, args: Any) -> ToolOutcome:
    """
    Run an already-validated tool call. Handler exceptions are folded into
    an error outcome.
    """
    start = time.perf_counter()
    try:
        payload = await spec.handler(client, args)
        text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
        is_error = isinstance(payload, Mapping) and payload.get("success") is False
    except Exception as exc:
        logger.warning(f"Tool {spec.name} raised {type(exc).__name__}: {exc}", extra={"tool": spec.name})
        text = f'Error executing tool "{spec.name}": {exc}'
        is_error = True
    duration_ms = (time.perf_counter() - start) * 1000.0
    return ToolOutcome(text=text, is_error=is_error, duration_ms=duration_ms)


@dataclass
class DispatchResult:
    body: Dict[str, Any]
    status_code: int = 200


MethodHandler = Callable[[Principal, RequestId, Dict[str, Any], Optional[str]], Awaitable[Dict[str, Any]]]


class Dispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        sessions: SessionRegistry,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_PIPEDRIVE_BASE_URL,
        metrics: Optional[InMemoryMetrics] = None,
        audit: Optional[AuditLogger] = None,
        max_response_tokens: int = MAX_TOKENS_PER_RESPONSE,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.http_client = http_client
        self.base_url = base_url
        self.metrics = metrics or InMemoryMetrics()
        self.audit = audit or AuditLogger()
        self.max_response_tokens = max_response_tokens
        self._methods: Dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "tools/list": self._tools_list,
            "prompts/list": self._prompts_list,
            "prompts/get": self._prompts_get,
            "tools/call": self._tools_call,
            "notifications/initialized": self._notifications_initialized,
        }

    def client_for(self, principal: Principal) -> PipedriveClient:
        return PipedriveClient(self.http_client, principal.api_token, self.base_url)

    async def dispatch(
        self,
        body: Any,
        principal: Principal,
        correlation_id: Optional[str] = None,
    ) -> DispatchResult:
        request_id = body.get("id") if isinstance(body, dict) else None
        try:
            result = await self._dispatch(body, principal, correlation_id)
            return DispatchResult(jsonrpc_result(request_id, result))
        except GatewayError as exc:
            return DispatchResult(exc.to_response(request_id), exc.status_code)
        except Exception as exc:
            logger.error(
                f"MCP endpoint error: {exc}",
                exc_info=True,
                extra={"user": principal.id, "correlation_id": correlation_id or ""},
            )
            error = InternalError(str(exc) or type(exc).__name__)
            return DispatchResult(error.to_response(request_id), error.status_code)

    async def _dispatch(self, body: Any, principal: Principal, correlation_id: Optional[str]) -> Dict[str, Any]:
        if not isinstance(body, dict):
            raise InvalidRequestError("Request body must be a JSON object")
        if body.get("jsonrpc") != "2.0":
            raise InvalidRequestError('Missing or invalid jsonrpc version. Must be "2.0"')
        method = body.get("method")
        if not method or not isinstance(method, str):
            raise InvalidRequestError('Missing required "method" field')
        params = body.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise InvalidParamsError('"params" must be an object')

        handler = self._methods.get(method)
        if handler is None:
            raise MethodNotFoundError(f'Method "{method}" not supported')
        logger.debug(
            f"Dispatching {method}",
            extra={"user": principal.id, "method": method, "correlation_id": correlation_id or ""},
        )
        return await handler(principal, body.get("id"), params, correlation_id)

    async def _initialize(
        self,
        principal: Principal,
        request_id: RequestId,
        params: Dict[str, Any],
        correlation_id: Optional[str],
    ) -> Dict[str, Any]:
        session_id = session_id_for(request_id)
        self.sessions.mark_initialized(principal.id, session_id)
        requested = params.get("protocolVersion", DEFAULT_PROTOCOL_VERSION)
        version = negotiate_protocol_version(requested)
        if version != requested:
            logger.info(f"Client requested protocol {requested!r}; answering with {version}")
        result = InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(tools=ToolsCapability(), prompts=PromptsCapability()),
            serverInfo=Implementation(name=SERVER_NAME, version=__version__),
        )
        return _dump(result)

    def _check_session(self, principal: Principal, request_id: RequestId, method: str) -> None:
        # Advisory only: clients that skip the handshake are still served
        if request_id is not None and not self.sessions.is_initialized(principal.id, session_id_for(request_id)):
            logger.debug(f"{method} on a session without initialize", extra={"user": principal.id, "method": method})

    async def _tools_list(
        self,
        principal: Principal,
        request_id: RequestId,
        params: Dict[str, Any],
        correlation_id: Optional[str],
    ) -> Dict[str, Any]:
        self._check_session(principal, request_id, "tools/list")
        return {"tools": [_dump(tool) for tool in self.registry.list_tools()]}

    async def _prompts_list(
        self,
        principal: Principal,
        request_id: RequestId,
        params: Dict[str, Any],
        correlation_id: Optional[str],
    ) -> Dict[str, Any]:
        self._check_session(principal, request_id, "prompts/list")
        return {"prompts": [_dump(prompt) for prompt in list_prompts()]}

    async def _prompts_get(
        self,
        principal: Principal,
        request_id: RequestId,
        params: Dict[str, Any],
        correlation_id: Optional[str],
    ) -> Dict[str, Any]:
        self._check_session(principal, request_id, "prompts/get")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError('"arguments" must be an object')
        return _dump(get_prompt(params.get("name"), arguments))

    async def _tools_call(
        self,
        principal: Principal,
        request_id: RequestId,
        params: Dict[str, Any],
        correlation_id: Optional[str],
    ) -> Dict[str, Any]:
        self._check_session(principal, request_id, "tools/call")
        name = params.get("name")
        if not name or not isinstance(name, str):
            raise InvalidParamsError('Missing required "name" parameter')
        spec = self.registry.get(name)
        if spec is None:
            raise MethodNotFoundError(f'Tool "{name}" not found')
        args = spec.parse_arguments(params.get("arguments"))

        outcome = await run_tool(spec, self.client_for(principal), args)
        status = "error" if outcome.is_error else "ok"
        check = check_token_limits(outcome.text, self.max_response_tokens)
        self.metrics.record(
            name,
            outcome.duration_ms,
            error=outcome.is_error,
            reply_tokens=check.estimated_tokens,
            over_budget=check.exceeds_limit,
        )
        self.audit.log_call(
            tool=name,
            user_id=principal.id,
            status=status,
            duration_ms=outcome.duration_ms,
            correlation_id=correlation_id,
        )
        log_extra = {
            "user": principal.id,
            "tool": name,
            "correlation_id": correlation_id or "",
            "duration_ms": f"{outcome.duration_ms:.1f}",
        }
        logger.info(f"Tool {name} finished: {status}", extra=log_extra)

        if check.exceeds_limit:
            logger.warning(
                f"Tool {name} reply is ~{check.estimated_tokens} tokens "
                f"(budget {self.max_response_tokens}). {check.suggestion}",
                extra=log_extra,
            )
        return _dump(outcome.to_result())

    async def _notifications_initialized(
        self,
        principal: Principal,
        request_id: RequestId,
        params: Dict[str, Any],
        correlation_id: Optional[str],
    ) -> Dict[str, Any]:
        return {}
