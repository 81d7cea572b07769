"""
Dev stub of the Pipedrive v1 REST API.

Serves a small in-memory account so the gateway can run end to end without
a real Pipedrive company:

    uvicorn dev_backend.main:app --port 9100
    PIPEDRIVE_BASE_URL=http://127.0.0.1:9100/v1 python -m pipedrive_mcp.main

Any non-empty api_token is accepted.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

app = FastAPI(title="Dev stub Pipedrive API")

_TODAY = date.today().isoformat()

DATA: Dict[str, List[Dict[str, Any]]] = {
    "deals": [
        {"id": 1, "title": "Acme renewal", "value": 12000, "currency": "EUR", "status": "open",
         "probability": 60, "stage_id": 2, "pipeline_id": 1, "user_id": 1, "person_id": 1, "org_id": 1,
         "expected_close_date": _TODAY, "add_time": f"{_TODAY} 09:00:00"},
        {"id": 2, "title": "Globex pilot", "value": 4500, "currency": "EUR", "status": "won",
         "probability": None, "stage_id": 3, "pipeline_id": 1, "user_id": 1, "person_id": 2, "org_id": 2,
         "expected_close_date": _TODAY, "add_time": f"{_TODAY} 10:30:00"},
        {"id": 3, "title": "Initech expansion", "value": 30000, "currency": "EUR", "status": "lost",
         "probability": None, "stage_id": 1, "pipeline_id": 1, "user_id": 2, "person_id": 3, "org_id": 3,
         "expected_close_date": None, "add_time": f"{_TODAY} 11:15:00"},
    ],
    "persons": [
        {"id": 1, "name": "Ada Lovelace", "first_name": "Ada", "last_name": "Lovelace", "org_id": 1,
         "org_name": "Acme", "owner_id": 1,
         "email": [{"value": "ada@acme.test", "primary": True, "label": "work"}],
         "phone": [{"value": "+49 30 1234", "primary": True, "label": "work"}]},
        {"id": 2, "name": "Grace Hopper", "first_name": "Grace", "last_name": "Hopper", "org_id": 2,
         "org_name": "Globex", "owner_id": 1,
         "email": [{"value": "grace@globex.test", "primary": True, "label": "work"}], "phone": []},
        {"id": 3, "name": "Alan Turing", "first_name": "Alan", "last_name": "Turing", "org_id": 3,
         "org_name": "Initech", "owner_id": 2, "email": [], "phone": []},
    ],
    "organizations": [
        {"id": 1, "name": "Acme", "owner_id": 1, "people_count": 1, "open_deals_count": 1, "closed_deals_count": 0},
        {"id": 2, "name": "Globex", "owner_id": 1, "people_count": 1, "open_deals_count": 0, "closed_deals_count": 1},
        {"id": 3, "name": "Initech", "owner_id": 2, "people_count": 1, "open_deals_count": 0, "closed_deals_count": 1},
    ],
    "pipelines": [
        {"id": 1, "name": "Sales", "order_nr": 1, "active": True},
    ],
    "stages": [
        {"id": 1, "name": "Qualified", "order_nr": 1, "pipeline_id": 1, "deal_probability": 20},
        {"id": 2, "name": "Proposal", "order_nr": 2, "pipeline_id": 1, "deal_probability": 50},
        {"id": 3, "name": "Negotiation", "order_nr": 3, "pipeline_id": 1, "deal_probability": 80},
    ],
    "activities": [
        {"id": 1, "type": "call", "subject": "Kickoff call", "done": False, "due_date": _TODAY,
         "user_id": 1, "deal_id": 1, "person_id": 1, "org_id": 1},
    ],
    "notes": [
        {"id": 1, "content": "Asked for a multi-year discount.", "user_id": 1, "deal_id": 1,
         "person_id": 1, "org_id": 1, "add_time": f"{_TODAY} 12:00:00"},
    ],
    "users": [
        {"id": 1, "name": "Dev User", "email": "dev@example.com", "active_flag": True, "is_admin": 1},
        {"id": 2, "name": "Second Seller", "email": "seller@example.com", "active_flag": True, "is_admin": 0},
    ],
}

_SEARCH_TYPES = {"deals": "deal", "persons": "person", "organizations": "organization"}


def _unauthorized() -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": "You need to be authorized to make this request.", "errorCode": 401},
        status_code=401,
    )


def _not_found(resource: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": f"{resource} not found", "errorCode": 404}, status_code=404)


def _page(items: List[Dict[str, Any]], start: int, limit: int) -> Dict[str, Any]:
    chunk = items[start:start + limit]
    more = start + limit < len(items)
    return {
        "success": True,
        "data": chunk,
        "additional_data": {
            "pagination": {
                "start": start,
                "limit": limit,
                "more_items_in_collection": more,
                "next_start": start + limit if more else None,
            },
        },
    }


def _search(resources: List[str], term: str) -> Dict[str, Any]:
    needle = term.lower()
    hits = []
    for resource in resources:
        for item in DATA.get(resource, []):
            label = str(item.get("title") or item.get("name") or "")
            if needle in label.lower():
                hits.append({"result_score": 1.0, "item": {"type": _SEARCH_TYPES[resource], **item}})
    return {"success": True, "data": {"items": hits}}


@app.get("/v1/users/me")
async def current_user(api_token: Optional[str] = Query(None)) -> Any:
    if not api_token:
        return _unauthorized()
    return {"success": True, "data": DATA["users"][0]}


@app.get("/v1/itemSearch")
async def item_search(term: str, item_types: Optional[str] = None, api_token: Optional[str] = Query(None)) -> Any:
    if not api_token:
        return _unauthorized()
    wanted = [t.strip() for t in (item_types or "").split(",") if t.strip()]
    resources = [r for r, t in _SEARCH_TYPES.items() if not wanted or t in wanted]
    return _search(resources, term)


@app.get("/v1/{resource}/search")
async def resource_search(resource: str, term: str, api_token: Optional[str] = Query(None)) -> Any:
    if not api_token:
        return _unauthorized()
    if resource not in _SEARCH_TYPES:
        return _not_found(resource)
    return _search([resource], term)


@app.get("/v1/{resource}")
async def list_resource(
    resource: str,
    start: int = 0,
    limit: int = 100,
    pipeline_id: Optional[int] = None,
    api_token: Optional[str] = Query(None),
) -> Any:
    if not api_token:
        return _unauthorized()
    if resource not in DATA:
        return _not_found(resource)
    items = DATA[resource]
    if resource == "stages" and pipeline_id is not None:
        items = [s for s in items if s.get("pipeline_id") == pipeline_id]
    return _page(items, start, limit)


@app.get("/v1/{resource}/{item_id}")
async def get_resource(resource: str, item_id: int, api_token: Optional[str] = Query(None)) -> Any:
    if not api_token:
        return _unauthorized()
    for item in DATA.get(resource, []):
        if item.get("id") == item_id:
            return {"success": True, "data": item}
    return _not_found(resource)
