from __future__ import annotations

import json

import pytest

from pipedrive_mcp.errors import AdminAuthError
from pipedrive_mcp.observability import AuditLogger
from pipedrive_mcp.security import (
    INVALID_FORMAT,
    INVALID_TOKEN,
    MISSING_HEADER,
    MISSING_TOKEN,
    Authenticated,
    Authenticator,
    Rejected,
    mask_token,
)
from pipedrive_mcp.users import CredentialStore

from conftest import ADMIN_TOKEN, BEARER


@pytest.mark.parametrize(
    "header, reason",
    [
        (None, MISSING_HEADER),
        ("", MISSING_HEADER),
        ("Basic dXNlcjpwYXNz", INVALID_FORMAT),
        ("bearer " + BEARER, INVALID_FORMAT),
        ("Bearer", INVALID_FORMAT),
        ("Bearer ", MISSING_TOKEN),
        ("Bearer mcp_unknown", INVALID_TOKEN),
    ],
)
def test_authenticate_rejections(store: CredentialStore, header, reason) -> None:
    result = Authenticator(store).authenticate(header, "10.0.0.1")
    assert result == Rejected(reason)


def test_authenticate_success(store: CredentialStore) -> None:
    result = Authenticator(store).authenticate(f"Bearer {BEARER}", "10.0.0.1")
    assert isinstance(result, Authenticated)
    assert result.principal.id == "alice"


def test_revoked_token_looks_like_unknown(store: CredentialStore) -> None:
    authenticator = Authenticator(store)
    store.revoke_user(BEARER)
    assert authenticator.authenticate(f"Bearer {BEARER}") == Rejected(INVALID_TOKEN)


def test_authenticate_optional(store: CredentialStore) -> None:
    authenticator = Authenticator(store)
    assert authenticator.authenticate_optional(None) is None
    assert authenticator.authenticate_optional("Bearer mcp_unknown") is None
    assert authenticator.authenticate_optional(f"Bearer {BEARER}").id == "alice"


class TestAdminAuth:
    def test_not_configured(self, store: CredentialStore) -> None:
        with pytest.raises(AdminAuthError) as excinfo:
            Authenticator(store).require_admin(f"Bearer {ADMIN_TOKEN}")
        assert excinfo.value.status_code == 500

    def test_missing_header(self, store: CredentialStore) -> None:
        with pytest.raises(AdminAuthError) as excinfo:
            Authenticator(store, admin_token=ADMIN_TOKEN).require_admin(None)
        assert excinfo.value.status_code == 401

    def test_wrong_secret(self, store: CredentialStore) -> None:
        with pytest.raises(AdminAuthError) as excinfo:
            Authenticator(store, admin_token=ADMIN_TOKEN).require_admin("Bearer nope")
        assert excinfo.value.status_code == 403

    def test_principal_token_is_not_admin(self, store: CredentialStore) -> None:
        with pytest.raises(AdminAuthError) as excinfo:
            Authenticator(store, admin_token=ADMIN_TOKEN).require_admin(f"Bearer {BEARER}")
        assert excinfo.value.status_code == 403

    def test_accepts_secret(self, store: CredentialStore) -> None:
        Authenticator(store, admin_token=ADMIN_TOKEN).require_admin(f"Bearer {ADMIN_TOKEN}")


def test_mask_token() -> None:
    assert mask_token("") == "<empty>"
    assert mask_token("short") == "*****"
    assert mask_token(BEARER) == f"{BEARER[:8]}...{BEARER[-4:]}"


def test_audit_log_never_contains_full_token(store: CredentialStore, tmp_path) -> None:
    path = tmp_path / "audit" / "auth.jsonl"
    authenticator = Authenticator(store, audit=AuditLogger(str(path)))
    authenticator.authenticate(f"Bearer {BEARER}", "10.0.0.1")
    authenticator.authenticate("Bearer mcp_this_token_is_unknown", "10.0.0.2")

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [entry["outcome"] for entry in lines] == ["authenticated", "rejected"]
    assert lines[0]["user_id"] == "alice"
    assert lines[1]["reason"] == INVALID_TOKEN
    raw = path.read_text(encoding="utf-8")
    assert BEARER not in raw
    assert "mcp_this_token_is_unknown" not in raw
