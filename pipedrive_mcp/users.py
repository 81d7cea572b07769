"""
Credential store: maps opaque bearer tokens to principals and their
Pipedrive API tokens.

In-memory only. Principals are preloaded from MCP_USER_<ID> environment
entries and the `users:` config list, created through the admin surface,
and removed by revocation (no soft-delete).
"""
from __future__ import annotations

import logging
import os
import re
import secrets
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger("pipedrive_mcp.users")

USER_ENV_PREFIX = "MCP_USER_"
BEARER_TOKEN_PREFIX = "mcp_"
_API_TOKEN_RE = re.compile(r"^[a-f0-9]{40}$", re.IGNORECASE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask all but the last `visible` characters: `***abcd`."""
    if not value:
        return "***"
    return "***" + value[-visible:]


@dataclass
class Principal:
    id: str
    bearer_token: str
    api_token: str
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime = None  # type: ignore[assignment]
    last_used: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is None:
            self.created_at = _utcnow()

    def public_view(self, reveal_bearer: bool = True) -> Dict[str, Any]:
        """
        Listing shape: the upstream credential is masked to its last 4 characters.
        With `reveal_bearer=False` the bearer token is masked the same way.
        """
        return {
            "id": self.id,
            "bearerToken": self.bearer_token if reveal_bearer else mask_secret(self.bearer_token),
            "apiToken": mask_secret(self.api_token),
            "name": self.name,
            "email": self.email,
            "createdAt": self.created_at.isoformat(),
            "lastUsed": self.last_used.isoformat() if self.last_used else None,
        }


def is_valid_api_token(token: str) -> bool:
    """Pipedrive API tokens are 40-character hex strings."""
    return bool(token) and bool(_API_TOKEN_RE.match(token))


def generate_bearer_token() -> str:
    return BEARER_TOKEN_PREFIX + secrets.token_hex(32)


class CredentialStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: Dict[str, Principal] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def add(self, principal: Principal) -> None:
        with self._lock:
            existing = self._users.get(principal.bearer_token)
            if existing is not None and existing.id != principal.id:
                raise ValueError(f"Bearer token already assigned to user {existing.id}")
            for other in self._users.values():
                if other.id == principal.id and other.bearer_token != principal.bearer_token:
                    raise ValueError(f"User id {principal.id} already assigned to another bearer token")
            self._users[principal.bearer_token] = principal

    def load_from_env(self, environ: Optional[Mapping[str, str]] = None) -> int:
        """
        Load `MCP_USER_<ID>=bearer_token:api_token[:name[:email]]` entries.

        Malformed entries are skipped with a warning. Returns the number loaded.
        """
        env = os.environ if environ is None else environ
        loaded = 0
        for key in sorted(k for k in env if k.startswith(USER_ENV_PREFIX)):
            raw = env.get(key) or ""
            parts = raw.split(":")
            bearer_token = parts[0].strip() if parts else ""
            api_token = parts[1].strip() if len(parts) > 1 else ""
            if not bearer_token or not api_token:
                logger.warning(f"Invalid user configuration in {key}")
                continue
            name = parts[2].strip() if len(parts) > 2 and parts[2].strip() else None
            email = parts[3].strip() if len(parts) > 3 and parts[3].strip() else None
            self.add(Principal(
                id=key[len(USER_ENV_PREFIX):],
                bearer_token=bearer_token,
                api_token=api_token,
                name=name,
                email=email,
            ))
            loaded += 1
        return loaded

    def load_from_config(self, users: Iterable[Mapping[str, Any]]) -> int:
        loaded = 0
        for index, entry in enumerate(users):
            bearer_token = str(entry.get("bearer_token") or "").strip()
            api_token = str(entry.get("api_token") or "").strip()
            if not bearer_token or not api_token:
                logger.warning(f"Invalid user configuration at users[{index}]")
                continue
            self.add(Principal(
                id=str(entry.get("id") or uuid.uuid4()),
                bearer_token=bearer_token,
                api_token=api_token,
                name=entry.get("name"),
                email=entry.get("email"),
            ))
            loaded += 1
        return loaded

    def authenticate(self, bearer_token: str) -> Optional[Principal]:
        """Resolve a token and refresh its last-used timestamp. Returns a snapshot copy."""
        with self._lock:
            principal = self._users.get(bearer_token)
            if principal is None:
                return None
            principal.last_used = _utcnow()
            return replace(principal)

    def create_user(self, name: str, email: str, api_token: str) -> Principal:
        principal = Principal(
            id=str(uuid.uuid4()),
            bearer_token=generate_bearer_token(),
            api_token=api_token,
            name=name,
            email=email,
        )
        self.add(principal)
        logger.info(f"Created new user: {principal.id} ({name})")
        return replace(principal)

    def revoke_user(self, bearer_token: str) -> bool:
        with self._lock:
            principal = self._users.pop(bearer_token, None)
        if principal is None:
            return False
        logger.info(f"Revoked user: {principal.id} ({principal.name or 'Unknown'})")
        return True

    def list_users(self) -> List[Dict[str, Any]]:
        with self._lock:
            principals = list(self._users.values())
        return [p.public_view() for p in principals]

    def stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or _utcnow()
        one_day_ago = now - timedelta(days=1)
        with self._lock:
            principals = list(self._users.values())
        if principals:
            total_age = sum((now - p.created_at).total_seconds() for p in principals)
            average_age_days = total_age / len(principals) / 86400.0
        else:
            average_age_days = 0.0
        return {
            "totalUsers": len(principals),
            "activeToday": sum(1 for p in principals if p.last_used and p.last_used > one_day_ago),
            "averageAge": average_age_days,
        }
