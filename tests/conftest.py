from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Tuple, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from pipedrive_mcp.config import GatewaySettings, RateLimitSettings
from pipedrive_mcp.http_app import create_app
from pipedrive_mcp.users import CredentialStore, Principal

API_TOKEN = "0123456789abcdef0123456789abcdef01234567"
BEARER = "mcp_" + "a1" * 32
OTHER_BEARER = "mcp_" + "b2" * 32
ADMIN_TOKEN = "admin-secret-for-tests"

RouteHandler = Callable[[httpx.Request], httpx.Response]
Route = Union[Tuple[int, Any], RouteHandler]


class FakePipedrive:
    """httpx MockTransport standing in for api.pipedrive.com/v1."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Route] = {}

    def route(self, path: str, payload: Any, status_code: int = 200) -> None:
        self.routes[path] = (status_code, payload)

    def route_handler(self, path: str, handler: RouteHandler) -> None:
        self.routes[path] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/v1"):
            path = path[len("/v1"):]
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"success": False, "error": "Not found", "errorCode": 404})
        if callable(route):
            return route(request)
        status_code, payload = route
        return httpx.Response(status_code, json=payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def last_params(self) -> Dict[str, str]:
        return dict(self.requests[-1].url.params)


def deal(deal_id: int, **fields: Any) -> Dict[str, Any]:
    payload = {
        "id": deal_id,
        "title": f"Deal {deal_id}",
        "value": 1000,
        "currency": "EUR",
        "status": "open",
        "stage_id": 1,
        "user_id": 1,
        "person_id": 1,
        "org_id": 1,
        "add_time": "2026-10-01 09:00:00",
        "update_time": "2026-10-02 09:00:00",
        "5f3e0a1b2c_custom_field": "heavy custom value",
    }
    payload.update(fields)
    return payload


def listing(items: List[Dict[str, Any]], more: bool = False) -> Dict[str, Any]:
    return {
        "success": True,
        "data": items,
        "additional_data": {
            "pagination": {"start": 0, "limit": len(items), "more_items_in_collection": more},
        },
    }


@pytest.fixture
def fake_pipedrive() -> FakePipedrive:
    fake = FakePipedrive()
    fake.route("/deals/42", {"success": True, "data": deal(42, title="Acme renewal")})
    fake.route("/deals", listing([deal(i) for i in range(1, 4)]))
    fake.route("/users/me", {"success": True, "data": {"id": 1, "name": "Dev User", "email": "dev@example.com"}})
    fake.route("/pipelines", listing([{"id": 1, "name": "Sales", "active": True}]))
    fake.route("/stages", listing([{"id": 1, "name": "Qualified", "pipeline_id": 1, "deal_probability": 50}]))
    fake.route("/activities", listing([{"id": 7, "type": "call", "subject": "Kickoff", "done": False}]))
    return fake


@pytest.fixture
def store() -> CredentialStore:
    credentials = CredentialStore()
    credentials.add(Principal(id="alice", bearer_token=BEARER, api_token=API_TOKEN, name="Alice", email="alice@example.com"))
    credentials.add(Principal(id="bob", bearer_token=OTHER_BEARER, api_token="f" * 40, name="Bob"))
    return credentials


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(admin_token=ADMIN_TOKEN, rate_limits=RateLimitSettings(max_requests=100, window_seconds=60))


@pytest.fixture
def client(settings: GatewaySettings, store: CredentialStore, fake_pipedrive: FakePipedrive) -> Iterator[TestClient]:
    app = create_app(settings, store=store, transport=fake_pipedrive.transport, environ={})
    with TestClient(app) as test_client:
        yield test_client


def auth(token: str = BEARER) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def rpc(method: str, params: Any = None, request_id: Any = 1) -> Dict[str, Any]:
    body: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    return body
