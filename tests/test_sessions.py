from __future__ import annotations

from pipedrive_mcp.sessions import SessionRegistry, session_id_for


def test_session_id_uses_request_id() -> None:
    assert session_id_for(7) == "7"
    assert session_id_for("abc") == "abc"


def test_session_id_generated_when_absent() -> None:
    first = session_id_for(None)
    second = session_id_for("")
    assert first.startswith("session-")
    assert second.startswith("session-")
    assert first != second


def test_registry_is_per_principal() -> None:
    registry = SessionRegistry()
    registry.mark_initialized("alice", "1")
    registry.mark_initialized("alice", "1")
    registry.mark_initialized("alice", "2")
    assert registry.is_initialized("alice", "1")
    assert not registry.is_initialized("bob", "1")
    assert registry.stats() == {"principals": 1, "sessions": 2}
