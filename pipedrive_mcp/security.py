"""
Bearer token authentication for the MCP endpoint and the admin surface.

Three modes:
- required: any rejection terminates the request (401, code -32001)
- optional: same checks, but a rejection just means "anonymous"
- admin: exact match against a single configured admin secret

NEVER log full tokens: only the masked prefix/suffix.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .errors import AdminAuthError
from .observability import AuditLogger
from .users import CredentialStore, Principal

logger = logging.getLogger("pipedrive_mcp.security")

BEARER_PREFIX = "Bearer "

MISSING_HEADER = "Missing Authorization header"
INVALID_FORMAT = "Invalid Authorization header format. Use: Bearer <token>"
MISSING_TOKEN = "Missing bearer token"
INVALID_TOKEN = "Invalid bearer token"


def mask_token(token: str) -> str:
    """Prefix + suffix only; short tokens are fully masked."""
    if not token:
        return "<empty>"
    if len(token) <= 12:
        return "*" * len(token)
    return f"{token[:8]}...{token[-4:]}"


@dataclass(frozen=True)
class Authenticated:
    principal: Principal


@dataclass(frozen=True)
class Rejected:
    reason: str


AuthResult = Union[Authenticated, Rejected]


class Authenticator:
    def __init__(
        self,
        store: CredentialStore,
        admin_token: Optional[str] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self.store = store
        self.admin_token = admin_token or None
        self.audit = audit or AuditLogger()

    def _reject(self, reason: str, client: str, token: str = "") -> Rejected:
        masked = mask_token(token)
        logger.warning(f"[Auth] {reason} from {client} (token={masked})")
        self.audit.log_auth(outcome="rejected", client=client, masked_token=masked, reason=reason)
        return Rejected(reason)

    def authenticate(self, header: Optional[str], client: str = "unknown") -> AuthResult:
        if not header:
            return self._reject(MISSING_HEADER, client)
        # Case-sensitive scheme match with exactly one space
        if not header.startswith(BEARER_PREFIX):
            return self._reject(INVALID_FORMAT, client)
        token = header[len(BEARER_PREFIX):]
        if not token:
            return self._reject(MISSING_TOKEN, client)

        principal = self.store.authenticate(token)
        if principal is None:
            return self._reject(INVALID_TOKEN, client, token)

        masked = mask_token(token)
        logger.info(
            f"[Auth] User {principal.name} ({principal.id}) authenticated from {client}",
            extra={"user": principal.id},
        )
        self.audit.log_auth(outcome="authenticated", client=client, masked_token=masked, user_id=principal.id)
        return Authenticated(principal)

    def authenticate_optional(self, header: Optional[str], client: str = "unknown") -> Optional[Principal]:
        """Anonymous callers and rejected tokens both proceed without a principal."""
        if not header:
            return None
        result = self.authenticate(header, client)
        if isinstance(result, Authenticated):
            return result.principal
        return None

    def require_admin(self, header: Optional[str], client: str = "unknown") -> None:
        """Raise AdminAuthError unless `header` carries the configured admin secret."""
        if not self.admin_token:
            logger.error("[Admin] MCP_ADMIN_TOKEN not configured")
            raise AdminAuthError(500, "Admin authentication not configured")
        if not header or not header.startswith(BEARER_PREFIX):
            logger.warning(f"[Admin] Missing or invalid Authorization header from {client}")
            raise AdminAuthError(401, "Missing or invalid Authorization header")
        token = header[len(BEARER_PREFIX):]
        # Security: timing-safe comparison
        if not hmac.compare_digest(token.encode("utf-8"), self.admin_token.encode("utf-8")):
            logger.warning(f"[Admin] Invalid admin token from {client} (token={mask_token(token)})")
            raise AdminAuthError(403, "Insufficient permissions")
