from __future__ import annotations

import secrets
import threading
import time
from typing import Any, Dict, Set


def session_id_for(request_id: Any) -> str:
    """Use the caller's correlation id when present, else a time+random value."""
    if request_id is not None and request_id != "":
        return str(request_id)
    return f"session-{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class SessionRegistry:
    """Per-principal set of session ids that completed `initialize`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, Set[str]] = {}

    def mark_initialized(self, user_id: str, session_id: str) -> None:
        with self._lock:
            self._sessions.setdefault(user_id, set()).add(session_id)

    def is_initialized(self, user_id: str, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions.get(user_id, ())

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "principals": len(self._sessions),
                "sessions": sum(len(s) for s in self._sessions.values()),
            }
