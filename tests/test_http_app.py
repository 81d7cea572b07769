from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from pipedrive_mcp.config import GatewaySettings
from pipedrive_mcp.http_app import create_app
from pipedrive_mcp.security import INVALID_FORMAT, INVALID_TOKEN, MISSING_HEADER
from pipedrive_mcp.users import CredentialStore

from conftest import ADMIN_TOKEN, API_TOKEN, BEARER, OTHER_BEARER, FakePipedrive, auth, rpc


class TestMcpAuth:
    @pytest.mark.parametrize(
        "headers, reason",
        [
            ({}, MISSING_HEADER),
            ({"Authorization": f"Token {BEARER}"}, INVALID_FORMAT),
            ({"Authorization": "Bearer mcp_unknown"}, INVALID_TOKEN),
        ],
    )
    def test_rejections(self, client: TestClient, headers, reason) -> None:
        response = client.post("/mcp", json=rpc("tools/list", request_id=5), headers=headers)
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json() == {
            "jsonrpc": "2.0",
            "id": 5,
            "error": {"code": -32001, "message": "Unauthorized", "data": reason},
        }

    def test_auth_checked_before_parse(self, client: TestClient) -> None:
        response = client.post("/mcp", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 401

    def test_parse_error_after_auth(self, client: TestClient) -> None:
        response = client.post("/mcp", content=b"{not json", headers={**auth(), "Content-Type": "application/json"})
        assert response.status_code == 400
        body = response.json()
        assert body["id"] is None
        assert body["error"]["code"] == -32700
        assert response.headers["x-ratelimit-remaining"] == "99"

    def test_deeply_nested_body(self, client: TestClient) -> None:
        nested = b"[" * 200000
        anonymous = client.post("/mcp", content=nested, headers={"Content-Type": "application/json"})
        assert anonymous.status_code == 401
        assert anonymous.json()["error"]["code"] == -32001

        response = client.post("/mcp", content=nested, headers={**auth(), "Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32700

    def test_failure_outside_dispatch_is_internal_error(
        self, store: CredentialStore, fake_pipedrive: FakePipedrive, tmp_path
    ) -> None:
        # the audit log path is a directory, so the auth audit write fails
        settings = GatewaySettings(admin_token=ADMIN_TOKEN, audit_log_path=str(tmp_path))
        app = create_app(settings, store=store, transport=fake_pipedrive.transport, environ={})
        with TestClient(app) as client:
            response = client.post("/mcp", json=rpc("tools/list", request_id=11), headers=auth())
        assert response.status_code == 500
        body = response.json()
        assert body["jsonrpc"] == "2.0"
        assert body["id"] == 11
        assert body["error"]["code"] == -32603
        assert body["error"]["message"] == "Internal error"

    def test_revoked_token_is_rejected(self, client: TestClient) -> None:
        assert client.post("/mcp", json=rpc("tools/list"), headers=auth()).status_code == 200
        revoked = client.delete(f"/admin/users/{BEARER}", headers=auth(ADMIN_TOKEN))
        assert revoked.json() == {"message": "User revoked successfully"}
        response = client.post("/mcp", json=rpc("tools/list"), headers=auth())
        assert response.status_code == 401
        assert response.json()["error"]["data"] == INVALID_TOKEN


class TestMcpCalls:
    def test_initialize_then_call(self, client: TestClient, fake_pipedrive: FakePipedrive) -> None:
        init = client.post("/mcp", json=rpc("initialize", {"protocolVersion": "2025-06-18"}, request_id=1), headers=auth())
        assert init.status_code == 200
        assert init.json()["result"]["serverInfo"]["name"] == "pipedrive-mcp-server"
        assert init.headers["x-ratelimit-limit"] == "100"
        assert init.headers["x-ratelimit-remaining"] == "99"
        assert init.headers["x-ratelimit-reset"].endswith("Z")
        assert init.headers["x-correlation-id"]

        call = client.post(
            "/mcp",
            json=rpc("tools/call", {"name": "get_deal", "arguments": {"id": 42}}, request_id=2),
            headers=auth(),
        )
        assert call.status_code == 200
        result = call.json()["result"]
        assert result["isError"] is False
        assert json.loads(result["content"][0]["text"])["data"]["id"] == 42
        assert fake_pipedrive.last_params["api_token"] == API_TOKEN

    def test_missing_id_argument(self, client: TestClient) -> None:
        response = client.post("/mcp", json=rpc("tools/call", {"name": "get_deal", "arguments": {}}), headers=auth())
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32602
        assert response.json()["error"]["data"] == 'Missing required "id" parameter for get_deal'

    def test_correlation_id_is_echoed(self, client: TestClient) -> None:
        response = client.post("/mcp", json=rpc("tools/list"), headers={**auth(), "X-Request-Id": "req-123"})
        assert response.headers["x-correlation-id"] == "req-123"


class TestRateLimit:
    def test_101st_request_is_rejected(self, client: TestClient) -> None:
        for _ in range(100):
            assert client.post("/mcp", json=rpc("prompts/list"), headers=auth()).status_code == 200

        response = client.post("/mcp", json=rpc("prompts/list", request_id=101), headers=auth())
        assert response.status_code == 429
        assert response.headers["x-ratelimit-remaining"] == "0"
        error = response.json()["error"]
        assert response.json()["id"] == 101
        assert error["code"] == -32000
        assert error["message"] == "Rate limit exceeded"
        assert error["data"].startswith("Too many requests. Limit resets at ")

        # Windows are per principal
        assert client.post("/mcp", json=rpc("prompts/list"), headers=auth(OTHER_BEARER)).status_code == 200

    def test_window_resets(self, store: CredentialStore, fake_pipedrive: FakePipedrive) -> None:
        now = [1_800_000_000.0]
        settings = GatewaySettings(admin_token=ADMIN_TOKEN)
        settings.rate_limits.max_requests = 1
        app = create_app(settings, store=store, transport=fake_pipedrive.transport, environ={}, clock=lambda: now[0])
        with TestClient(app) as client:
            assert client.post("/mcp", json=rpc("tools/list"), headers=auth()).status_code == 200
            assert client.post("/mcp", json=rpc("tools/list"), headers=auth()).status_code == 429
            now[0] += 60
            assert client.post("/mcp", json=rpc("tools/list"), headers=auth()).status_code == 200


class TestAdmin:
    def test_create_list_and_use_user(self, client: TestClient) -> None:
        created = client.post(
            "/admin/users",
            json={"name": "Carol", "email": "carol@example.com", "api_token": API_TOKEN},
            headers=auth(ADMIN_TOKEN),
        )
        assert created.status_code == 200
        body = created.json()
        assert body["message"] == "User created successfully"
        token = body["user"]["bearerToken"]
        assert token.startswith("mcp_")

        listed = client.get("/admin/users", headers=auth(ADMIN_TOKEN)).json()
        assert listed["stats"]["totalUsers"] == 3
        assert all(API_TOKEN not in json.dumps(u) for u in listed["users"])

        response = client.post("/mcp", json=rpc("tools/list"), headers=auth(token))
        assert response.status_code == 200

    def test_create_accepts_camel_case_token_field(self, client: TestClient) -> None:
        response = client.post(
            "/admin/users",
            json={"name": "Dan", "email": "dan@example.com", "pipedriveApiToken": API_TOKEN},
            headers=auth(ADMIN_TOKEN),
        )
        assert response.status_code == 200

    @pytest.mark.parametrize(
        "payload, error",
        [
            ({"name": "Carol", "email": "carol@example.com"}, "Missing required fields: name, email, api_token"),
            ({"name": "Carol", "email": "carol@example.com", "api_token": "abc"}, "Invalid Pipedrive API token format"),
            ({"name": 5, "email": "carol@example.com", "api_token": API_TOKEN}, "name, email and api_token must be strings"),
        ],
    )
    def test_create_validation(self, client: TestClient, payload, error) -> None:
        response = client.post("/admin/users", json=payload, headers=auth(ADMIN_TOKEN))
        assert response.status_code == 400
        assert response.json() == {"error": error}

    def test_requires_admin_secret(self, client: TestClient) -> None:
        assert client.get("/admin/users").status_code == 401
        forbidden = client.get("/admin/users", headers=auth(BEARER))
        assert forbidden.status_code == 403
        assert forbidden.json() == {"error": "Insufficient permissions"}

    def test_unconfigured_admin_secret(self, store: CredentialStore, fake_pipedrive: FakePipedrive) -> None:
        app = create_app(GatewaySettings(), store=store, transport=fake_pipedrive.transport, environ={})
        with TestClient(app) as client:
            response = client.get("/admin/users", headers=auth(ADMIN_TOKEN))
        assert response.status_code == 500
        assert response.json() == {"error": "Admin authentication not configured"}

    def test_revoke_unknown_user(self, client: TestClient) -> None:
        response = client.delete("/admin/users/mcp_missing", headers=auth(ADMIN_TOKEN))
        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}


class TestInfoEndpoints:
    def test_health(self, client: TestClient) -> None:
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["userStats"]["totalUsers"] == 2

    def test_root_is_anonymous_by_default(self, client: TestClient) -> None:
        body = client.get("/").json()
        assert body["tools"] == 30
        assert body["prompts"] == 4
        assert "user" not in body

    def test_root_with_credentials(self, client: TestClient) -> None:
        body = client.get("/", headers=auth()).json()
        assert body["user"]["id"] == "alice"
        assert body["user"]["apiToken"] == "***4567"

    def test_root_masks_bearer_token(self, client: TestClient) -> None:
        body = client.get("/", headers=auth()).json()
        assert body["user"]["bearerToken"] == "***" + BEARER[-4:]
        assert BEARER not in json.dumps(body)

    def test_root_with_bad_token_stays_anonymous(self, client: TestClient) -> None:
        response = client.get("/", headers=auth("mcp_unknown"))
        assert response.status_code == 200
        assert "user" not in response.json()

    def test_metrics(self, client: TestClient) -> None:
        client.post("/mcp", json=rpc("tools/call", {"name": "get_deal", "arguments": {"id": 42}}), headers=auth())
        text = client.get("/metrics").text
        assert 'mcp_tool_calls_total{tool="get_deal"} 1.0' in text
        assert "mcp_principals_total 2.0" in text
        assert "mcp_rate_windows_active 1.0" in text
