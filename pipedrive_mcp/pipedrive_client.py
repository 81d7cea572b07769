"""
Async Pipedrive REST client.

One instance per request, bound to a principal's API token. Every method
returns an Envelope: HTTP and transport failures are converted to
`success=False` envelopes, never raised. No retries.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .config import DEFAULT_PIPEDRIVE_BASE_URL
from .models import Envelope

logger = logging.getLogger("pipedrive_mcp.pipedrive_client")

MAX_USERS_LIMIT = 500


def _clean(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop unset query params; booleans go out as 0/1 the way Pipedrive expects."""
    out: Dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = 1 if value else 0
        out[key] = value
    return out


def _error_info(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase or None


class PipedriveClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_token: str,
        base_url: str = DEFAULT_PIPEDRIVE_BASE_URL,
    ) -> None:
        self.http_client = http_client
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")

    async def request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Envelope:
        url = f"{self.base_url}/{path.lstrip('/')}"
        query = _clean(params)
        query["api_token"] = self.api_token
        try:
            response = await self.http_client.get(url, params=query)
            response.raise_for_status()
            return Envelope.from_api(response.json())
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning(f"Pipedrive {path} failed with status {status}")
            return Envelope.failure(f"Request failed with status code {status}", _error_info(exc.response))
        except httpx.HTTPError as exc:
            # Never echo the URL: it carries the api_token query param
            logger.warning(f"Pipedrive {path} transport error: {type(exc).__name__}")
            return Envelope.failure(str(exc) or type(exc).__name__, type(exc).__name__)
        except ValueError:
            logger.warning(f"Pipedrive {path} returned a non-JSON body")
            return Envelope.failure("Invalid JSON in Pipedrive response")

    # Deals

    async def get_deals(self, **params: Any) -> Envelope:
        return await self.request("/deals", params)

    async def get_deal(self, deal_id: int) -> Envelope:
        return await self.request(f"/deals/{deal_id}")

    async def search_deals(self, term: str, **params: Any) -> Envelope:
        return await self.request("/deals/search", {"term": term, **params})

    # Persons

    async def get_persons(self, **params: Any) -> Envelope:
        return await self.request("/persons", params)

    async def get_person(self, person_id: int) -> Envelope:
        return await self.request(f"/persons/{person_id}")

    async def search_persons(self, term: str, **params: Any) -> Envelope:
        return await self.request("/persons/search", {"term": term, **params})

    # Organizations

    async def get_organizations(self, **params: Any) -> Envelope:
        return await self.request("/organizations", params)

    async def get_organization(self, org_id: int) -> Envelope:
        return await self.request(f"/organizations/{org_id}")

    async def search_organizations(self, term: str, **params: Any) -> Envelope:
        return await self.request("/organizations/search", {"term": term, **params})

    # Pipelines & stages

    async def get_pipelines(self) -> Envelope:
        return await self.request("/pipelines")

    async def get_pipeline(self, pipeline_id: int) -> Envelope:
        return await self.request(f"/pipelines/{pipeline_id}")

    async def get_stages(self, pipeline_id: Optional[int] = None) -> Envelope:
        return await self.request("/stages", {"pipeline_id": pipeline_id})

    async def get_stage(self, stage_id: int) -> Envelope:
        return await self.request(f"/stages/{stage_id}")

    # Activities & notes

    async def get_activities(self, **params: Any) -> Envelope:
        return await self.request("/activities", params)

    async def get_activity(self, activity_id: int) -> Envelope:
        return await self.request(f"/activities/{activity_id}")

    async def get_notes(self, **params: Any) -> Envelope:
        return await self.request("/notes", params)

    async def get_note(self, note_id: int) -> Envelope:
        return await self.request(f"/notes/{note_id}")

    # Search

    async def search_items(self, term: str, **params: Any) -> Envelope:
        return await self.request("/itemSearch", {"term": term, **params})

    # Users

    async def get_users(self, start: int = 0, limit: int = 100) -> Envelope:
        return await self.request("/users", {"start": start, "limit": min(limit, MAX_USERS_LIMIT)})

    async def get_user(self, user_id: int) -> Envelope:
        return await self.request(f"/users/{user_id}")

    async def get_current_user(self) -> Envelope:
        return await self.request("/users/me")
