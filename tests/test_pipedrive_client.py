from __future__ import annotations

import httpx
import pytest

from pipedrive_mcp.pipedrive_client import MAX_USERS_LIMIT, PipedriveClient

from conftest import API_TOKEN, FakePipedrive


def _client(transport: httpx.AsyncBaseTransport) -> PipedriveClient:
    return PipedriveClient(httpx.AsyncClient(transport=transport), API_TOKEN)


@pytest.mark.asyncio
async def test_request_sends_token_and_clean_params(fake_pipedrive: FakePipedrive) -> None:
    client = _client(fake_pipedrive.transport)
    envelope = await client.get_deals(status="open", user_id=None, start=0)
    assert envelope.success
    request = fake_pipedrive.requests[-1]
    assert request.method == "GET"
    assert request.url.path == "/v1/deals"
    assert fake_pipedrive.last_params == {"status": "open", "start": "0", "api_token": API_TOKEN}


@pytest.mark.asyncio
async def test_booleans_become_flags(fake_pipedrive: FakePipedrive) -> None:
    fake_pipedrive.route("/deals/search", {"success": True, "data": {"items": []}})
    await _client(fake_pipedrive.transport).search_deals("acme", exact_match=True)
    assert fake_pipedrive.last_params["exact_match"] == "1"
    assert fake_pipedrive.last_params["term"] == "acme"


@pytest.mark.asyncio
async def test_http_error_becomes_failure_envelope(fake_pipedrive: FakePipedrive) -> None:
    fake_pipedrive.route("/deals/99", {"success": False, "error": "Deal not found"}, status_code=404)
    envelope = await _client(fake_pipedrive.transport).get_deal(99)
    assert envelope.success is False
    assert envelope.error == "Request failed with status code 404"
    assert envelope.error_info == "Deal not found"


@pytest.mark.asyncio
async def test_http_error_without_json_body_uses_reason_phrase() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))
    envelope = await _client(transport).get_pipelines()
    assert envelope.error == "Request failed with status code 502"
    assert envelope.error_info == "Bad Gateway"


@pytest.mark.asyncio
async def test_transport_error_becomes_failure_envelope() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    envelope = await _client(httpx.MockTransport(refuse)).get_current_user()
    assert envelope.success is False
    assert envelope.error == "Connection refused"
    assert envelope.error_info == "ConnectError"
    assert API_TOKEN not in str(envelope.to_dict())


@pytest.mark.asyncio
async def test_non_json_body_becomes_failure_envelope() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="not json"))
    envelope = await _client(transport).get_notes()
    assert envelope.success is False
    assert envelope.error == "Invalid JSON in Pipedrive response"


@pytest.mark.asyncio
async def test_get_users_caps_limit(fake_pipedrive: FakePipedrive) -> None:
    fake_pipedrive.route("/users", {"success": True, "data": []})
    await _client(fake_pipedrive.transport).get_users(limit=5000)
    assert fake_pipedrive.last_params["limit"] == str(MAX_USERS_LIMIT)


@pytest.mark.asyncio
async def test_get_stages_filters_by_pipeline(fake_pipedrive: FakePipedrive) -> None:
    client = _client(fake_pipedrive.transport)
    await client.get_stages()
    assert "pipeline_id" not in fake_pipedrive.last_params
    await client.get_stages(pipeline_id=3)
    assert fake_pipedrive.last_params["pipeline_id"] == "3"


@pytest.mark.asyncio
async def test_item_search_path(fake_pipedrive: FakePipedrive) -> None:
    fake_pipedrive.route("/itemSearch", {"success": True, "data": {"items": []}})
    await _client(fake_pipedrive.transport).search_items("acme", item_types="deal,person")
    assert fake_pipedrive.requests[-1].url.path == "/v1/itemSearch"
    assert fake_pipedrive.last_params["item_types"] == "deal,person"
