"""
Error taxonomy for the gateway.

Every error that can reach a client carries its JSON-RPC code, message,
optional data and the HTTP status it is sent with. Tool execution failures
are NOT modelled here: they become `isError` tool results instead.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Union

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ErrorData,
)

RequestId = Union[str, int, None]

# Gateway-specific codes (implementation-defined server error range)
UNAUTHORIZED = -32001
RATE_LIMITED = -32000


def jsonrpc_error(request_id: RequestId, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    """Build a JSON-RPC 2.0 error reply. `id` is kept as-is, or null when absent."""
    error = ErrorData(code=code, message=message, data=data).model_dump(exclude_none=True)
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def jsonrpc_result(request_id: RequestId, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


class GatewayError(Exception):
    """Base for errors rendered as JSON-RPC error replies."""

    code: int = INTERNAL_ERROR
    message: str = "Internal error"
    status_code: int = 500

    def __init__(self, data: Any = None, *, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(data if isinstance(data, str) else self.message)
        self.data = data
        self.headers = headers or {}

    def to_response(self, request_id: RequestId) -> Dict[str, Any]:
        return jsonrpc_error(request_id, self.code, self.message, self.data)


class ParseError(GatewayError):
    code = PARSE_ERROR
    message = "Parse error"
    status_code = 400


class InvalidRequestError(GatewayError):
    code = INVALID_REQUEST
    message = "Invalid Request"
    status_code = 400


class MethodNotFoundError(GatewayError):
    code = METHOD_NOT_FOUND
    message = "Method not found"
    status_code = 404


class PromptNotFoundError(MethodNotFoundError):
    message = "Prompt not found"


class InvalidParamsError(GatewayError):
    code = INVALID_PARAMS
    message = "Invalid params"
    status_code = 400


class InternalError(GatewayError):
    code = INTERNAL_ERROR
    message = "Internal error"
    status_code = 500


class AuthenticationError(GatewayError):
    """Rejected bearer token. Revoked and unknown tokens look identical."""

    code = UNAUTHORIZED
    message = "Unauthorized"
    status_code = 401


class RateLimitExceededError(GatewayError):
    code = RATE_LIMITED
    message = "Rate limit exceeded"
    status_code = 429


class AdminAuthError(Exception):
    """Admin surface rejection; rendered as a plain `{"error": ...}` body."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
