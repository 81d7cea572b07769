"""
FastAPI application for the authenticated MCP gateway.

- Request context middleware (correlation id, access log)
- POST /mcp: parse -> authenticate -> rate limit -> dispatch
- /admin/users: create, list and revoke principals (admin secret)
- /health, / and /metrics

The lifespan owns the shared httpx client and the rate window sweep task.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional, Tuple

import httpx
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from . import SERVER_NAME, __version__
from .config import GatewaySettings, load_settings
from .dispatcher import Dispatcher, DispatchResult
from .env_utils import is_production_env
from .errors import AdminAuthError, AuthenticationError, GatewayError, InternalError, ParseError, RateLimitExceededError
from .observability import AuditLogger, InMemoryMetrics, render_prometheus, setup_logger
from .prompts import PROMPTS
from .rate_limits import UserRateLimiter
from .security import Authenticated, Authenticator
from .sessions import SessionRegistry
from .tools import ToolRegistry, build_registry
from .users import CredentialStore, is_valid_api_token

logger = logging.getLogger("pipedrive_mcp.http_app")

SPECIFICATION_URL = "https://modelcontextprotocol.io/specification/2025-06-18"


@dataclass
class GatewayState:
    settings: GatewaySettings
    store: CredentialStore
    authenticator: Authenticator
    rate_limiter: UserRateLimiter
    sessions: SessionRegistry
    registry: ToolRegistry
    metrics: InMemoryMetrics
    audit: AuditLogger
    dispatcher: Optional[Dispatcher] = None


class CreateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    api_token: Optional[str] = Field(None, validation_alias=AliasChoices("api_token", "pipedriveApiToken"))


def _client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _gateway(request: Request) -> GatewayState:
    return request.app.state.gateway


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Assigns a correlation id (X-Correlation-Id / X-Request-Id or a fresh one)
    and writes one access log line per request. Never logs headers or bodies.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("x-correlation-id")
            or request.headers.get("x-request-id")
            or uuid.uuid4().hex
        ).strip()
        request.state.correlation_id = correlation_id
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Correlation-Id"] = correlation_id
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={"correlation_id": correlation_id, "duration_ms": f"{duration_ms:.1f}"},
        )
        return response


def require_admin(request: Request) -> None:
    _gateway(request).authenticator.require_admin(
        request.headers.get("authorization"),
        _client_address(request),
    )


def _build_state(
    settings: GatewaySettings,
    store: Optional[CredentialStore],
    environ: Optional[Mapping[str, str]],
    clock: Optional[Callable[[], float]],
) -> GatewayState:
    if store is None:
        store = CredentialStore()
        store.load_from_config(settings.users)
        store.load_from_env(environ)
    audit = AuditLogger(settings.audit_log_path)
    limits = settings.rate_limits
    limiter_kwargs: Dict[str, Any] = {}
    if clock is not None:
        limiter_kwargs["clock"] = clock
    return GatewayState(
        settings=settings,
        store=store,
        authenticator=Authenticator(store, admin_token=settings.admin_token, audit=audit),
        rate_limiter=UserRateLimiter(
            max_requests=limits.max_requests,
            window_seconds=limits.window_seconds,
            sweep_interval_seconds=limits.sweep_interval_seconds,
            **limiter_kwargs,
        ),
        sessions=SessionRegistry(),
        registry=build_registry(),
        metrics=InMemoryMetrics(),
        audit=audit,
    )


def create_app(
    settings: Optional[GatewaySettings] = None,
    *,
    store: Optional[CredentialStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    environ: Optional[Mapping[str, str]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    """
    Build the gateway app.

    `store`, `transport` and `clock` exist for tests: a prebuilt credential
    store, an httpx transport standing in for Pipedrive, and a fake clock for
    the rate limiter.
    """
    settings = settings or load_settings(environ)
    gateway = _build_state(settings, store, environ, clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logger(settings.log_level)
        if not settings.admin_token:
            if is_production_env(environ):
                logger.error("MCP_ADMIN_TOKEN not set in production: admin endpoints will return 500")
            else:
                logger.warning("MCP_ADMIN_TOKEN not set: admin endpoints are disabled")
        upstream = settings.upstream
        # Security: no redirects for upstream calls (the api_token travels in the query string)
        http_client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=upstream.max_connections,
                max_keepalive_connections=upstream.max_keepalive_connections,
            ),
            timeout=httpx.Timeout(
                connect=upstream.connect_timeout,
                read=upstream.read_timeout,
                write=upstream.write_timeout,
                pool=upstream.pool_timeout,
            ),
            follow_redirects=False,
            transport=transport,
        )
        gateway.dispatcher = Dispatcher(
            registry=gateway.registry,
            sessions=gateway.sessions,
            http_client=http_client,
            base_url=upstream.base_url,
            metrics=gateway.metrics,
            audit=gateway.audit,
            max_response_tokens=settings.max_response_tokens,
        )
        await gateway.rate_limiter.start_sweeper()
        logger.info(f"Gateway started with {len(gateway.store)} users and {len(gateway.registry)} tools")
        try:
            yield
        finally:
            await gateway.rate_limiter.stop_sweeper()
            await http_client.aclose()
            gateway.dispatcher = None

    app = FastAPI(
        title="Pipedrive MCP Server",
        description="MCP gateway for the Pipedrive CRM API with multi-user authentication",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        request_id = getattr(request.state, "rpc_id", None)
        return JSONResponse(exc.to_response(request_id), status_code=exc.status_code, headers=exc.headers or None)

    @app.exception_handler(AdminAuthError)
    async def admin_error_handler(request: Request, exc: AdminAuthError) -> JSONResponse:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.get("/health")
    async def health(request: Request) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "service": SERVER_NAME,
            "authenticated": True,
            "userStats": _gateway(request).store.stats(),
        }

    @app.get("/")
    async def info(request: Request) -> Dict[str, Any]:
        state = _gateway(request)
        principal = state.authenticator.authenticate_optional(
            request.headers.get("authorization"),
            _client_address(request),
        )
        body: Dict[str, Any] = {
            "name": "Pipedrive MCP Server (Authenticated)",
            "version": __version__,
            "description": "MCP-compliant server with multi-user authentication for Pipedrive API integration",
            "specification": SPECIFICATION_URL,
            "endpoints": ["/mcp", "/admin", "/health", "/metrics"],
            "authentication": "Bearer token required",
            "tools": len(state.registry),
            "prompts": len(PROMPTS),
            "userStats": state.store.stats(),
        }
        if principal is not None:
            body["user"] = principal.public_view(reveal_bearer=False)
        return body

    @app.get("/metrics")
    async def metrics(request: Request) -> Response:
        """Prometheus-compatible metrics endpoint."""
        state = _gateway(request)
        gauges = {
            "mcp_principals_total": float(len(state.store)),
            "mcp_rate_windows_active": float(len(state.rate_limiter)),
            "mcp_sessions_total": float(state.sessions.stats()["sessions"]),
        }
        content = render_prometheus(state.metrics.snapshot(), gauges)
        return Response(content=content, media_type="text/plain; version=0.0.4")

    @app.post("/mcp")
    async def mcp_endpoint(request: Request) -> JSONResponse:
        state = _gateway(request)
        raw = await request.body()
        body: Any = None
        parse_failed = False
        try:
            body = json.loads(raw) if raw else None
        except (ValueError, RecursionError):
            parse_failed = True
        request.state.rpc_id = body.get("id") if isinstance(body, dict) else None

        try:
            outcome, headers = await _handle_mcp(request, state, body, parse_failed)
        except GatewayError:
            raise
        except Exception as exc:
            logger.error(
                f"MCP endpoint error: {exc}",
                exc_info=True,
                extra={"correlation_id": getattr(request.state, "correlation_id", "")},
            )
            raise InternalError(str(exc) or type(exc).__name__) from exc
        return JSONResponse(outcome.body, status_code=outcome.status_code, headers=headers)

    async def _handle_mcp(
        request: Request,
        state: GatewayState,
        body: Any,
        parse_failed: bool,
    ) -> Tuple[DispatchResult, Dict[str, str]]:
        result = state.authenticator.authenticate(
            request.headers.get("authorization"),
            _client_address(request),
        )
        if not isinstance(result, Authenticated):
            raise AuthenticationError(result.reason, headers={"WWW-Authenticate": "Bearer"})
        principal = result.principal

        decision = state.rate_limiter.check_limit(principal.id)
        headers = decision.headers()
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for user {principal.id}", extra={"user": principal.id})
            raise RateLimitExceededError(
                f"Too many requests. Limit resets at {decision.reset_iso}",
                headers=headers,
            )

        if parse_failed:
            raise ParseError("Request body is not valid JSON", headers=headers)
        if state.dispatcher is None:
            raise InternalError("Gateway is not started", headers=headers)

        outcome = await state.dispatcher.dispatch(
            body,
            principal,
            correlation_id=getattr(request.state, "correlation_id", None),
        )
        return outcome, headers

    @app.post("/admin/users", dependencies=[Depends(require_admin)])
    async def create_user(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "Request body must be valid JSON"}, status_code=status.HTTP_400_BAD_REQUEST)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=status.HTTP_400_BAD_REQUEST)
        try:
            data = CreateUserRequest.model_validate(payload)
        except ValidationError:
            return JSONResponse(
                {"error": "name, email and api_token must be strings"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        if not data.name or not data.email or not data.api_token:
            return JSONResponse(
                {"error": "Missing required fields: name, email, api_token"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        if not is_valid_api_token(data.api_token):
            return JSONResponse({"error": "Invalid Pipedrive API token format"}, status_code=status.HTTP_400_BAD_REQUEST)

        principal = _gateway(request).store.create_user(data.name, data.email, data.api_token)
        return JSONResponse({
            "message": "User created successfully",
            "user": {
                "id": principal.id,
                "bearerToken": principal.bearer_token,
                "name": principal.name,
                "email": principal.email,
                "createdAt": principal.created_at.isoformat(),
            },
        })

    @app.get("/admin/users", dependencies=[Depends(require_admin)])
    async def list_users(request: Request) -> Dict[str, Any]:
        store = _gateway(request).store
        return {"users": store.list_users(), "stats": store.stats()}

    @app.delete("/admin/users/{token}", dependencies=[Depends(require_admin)])
    async def revoke_user(token: str, request: Request) -> JSONResponse:
        if _gateway(request).store.revoke_user(token):
            return JSONResponse({"message": "User revoked successfully"})
        return JSONResponse({"error": "User not found"}, status_code=status.HTTP_404_NOT_FOUND)

    return app
