"""
Response size optimization for LLM consumers.

Reshapes upstream envelopes so they fit a client's context window:
- per-resource field projection (drop custom field blobs, keep primary email/phone)
- stable-prefix truncation with a total_count/showing_first/truncated annotation
- rough token estimation
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .models import (
    Activity,
    Deal,
    Entity,
    ENTITY_TYPES,
    Envelope,
    Note,
    Organization,
    Person,
    SearchResult,
    User,
)

MAX_TOKENS_PER_RESPONSE = 150_000  # safe margin under a 200k context
CHARS_PER_TOKEN = 4
NOTE_CONTENT_LIMIT = 500


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass
class TokenCheck:
    estimated_tokens: int
    exceeds_limit: bool
    suggestion: Optional[str] = None


def check_token_limits(text: str, max_tokens: int = MAX_TOKENS_PER_RESPONSE) -> TokenCheck:
    estimated = estimate_tokens(text)
    exceeds = estimated > max_tokens
    return TokenCheck(
        estimated_tokens=estimated,
        exceeds_limit=exceeds,
        suggestion=(
            "Consider using pagination (lower limit), summarization, or specific filters to reduce data size"
            if exceeds else None
        ),
    )


def summarize_array(items: List[Any], max_items: int = 5, total_count: Optional[int] = None) -> Dict[str, Any]:
    """Stable prefix of `items` plus counts. Never reorders."""
    return {
        "sample": items[:max_items],
        "total_count": total_count if total_count is not None else len(items),
        "showing_first": min(max_items, len(items)),
        "truncated": len(items) > max_items,
    }


def summarize_deal(deal: Deal) -> Dict[str, Any]:
    return {
        "id": deal.id,
        "title": deal.title,
        "value": deal.value,
        "currency": deal.currency,
        "status": deal.status,
        "stage_id": deal.stage_id,
        "user_id": deal.user_id,
        "person_id": deal.person_id,
        "org_id": deal.org_id,
        "add_time": deal.add_time,
        "update_time": deal.update_time,
    }


def summarize_person(person: Person) -> Dict[str, Any]:
    return {
        "id": person.id,
        "name": person.name,
        "first_name": person.first_name,
        "last_name": person.last_name,
        "org_id": person.org_id,
        "org_name": person.org_name,
        "email": person.primary_email,
        "phone": person.primary_phone,
        "owner_id": person.owner_id,
        "add_time": person.add_time,
        "update_time": person.update_time,
    }


def summarize_organization(org: Organization) -> Dict[str, Any]:
    return {
        "id": org.id,
        "name": org.name,
        "owner_id": org.owner_id,
        "people_count": org.people_count,
        "open_deals_count": org.open_deals_count,
        "closed_deals_count": org.closed_deals_count,
        "add_time": org.add_time,
        "update_time": org.update_time,
    }


def summarize_activity(activity: Activity) -> Dict[str, Any]:
    return {
        "id": activity.id,
        "type": activity.type,
        "subject": activity.subject,
        "done": activity.done,
        "due_date": activity.due_date,
        "user_id": activity.user_id,
        "deal_id": activity.deal_id,
        "person_id": activity.person_id,
        "org_id": activity.org_id,
        "add_time": activity.add_time,
    }


def summarize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "active_flag": user.active_flag,
        "is_admin": user.is_admin,
        "role_id": user.role_id,
        "timezone_name": user.timezone_name,
        "company_id": user.company_id,
        "last_login": user.last_login,
    }


def summarize_note(note: Note) -> Dict[str, Any]:
    content = note.content
    if content is not None and len(content) > NOTE_CONTENT_LIMIT:
        content = content[:NOTE_CONTENT_LIMIT] + "..."
    return {
        "id": note.id,
        "content": content,
        "user_id": note.user_id,
        "deal_id": note.deal_id,
        "person_id": note.person_id,
        "org_id": note.org_id,
        "add_time": note.add_time,
    }


def _ref_id(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("id")
    return value


def summarize_search_result(result: SearchResult) -> Dict[str, Any]:
    item = result.item or {}
    return {
        "result_score": result.result_score,
        "id": item.get("id"),
        "type": item.get("type"),
        "title": item.get("title") or item.get("name"),
        "value": item.get("value"),
        "currency": item.get("currency"),
        "status": item.get("status"),
        "owner_id": _ref_id(item.get("owner")),
        "person_id": _ref_id(item.get("person")),
        "org_id": _ref_id(item.get("organization")),
    }


SUMMARIZERS: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "deals": summarize_deal,
    "persons": summarize_person,
    "organizations": summarize_organization,
    "activities": summarize_activity,
    "users": summarize_user,
    "notes": summarize_note,
    "search": summarize_search_result,
}


def _project(item: Any, resource_type: str) -> Any:
    summarizer = SUMMARIZERS[resource_type]
    if isinstance(item, Entity):
        return summarizer(item)
    if isinstance(item, dict):
        return summarizer(ENTITY_TYPES[resource_type].from_api(item))
    return item


def optimize_response(
    envelope: Envelope,
    resource_type: str,
    max_items: int = 10,
    summarize: bool = True,
    include_metadata: bool = True,
) -> Dict[str, Any]:
    """
    Returns the optimized envelope as a wire-shaped dict. Failure envelopes
    pass through unchanged.
    """
    if resource_type not in SUMMARIZERS:
        raise ValueError(f"Unknown resource type for optimization: {resource_type}")
    if not envelope.success:
        return envelope.to_dict()

    data = envelope.data
    is_list = isinstance(data, list)
    if is_list:
        items = list(data)
    elif data is None:
        items = []
    else:
        items = [data]

    projected = [_project(item, resource_type) for item in items] if summarize else items

    out: Dict[str, Any] = {"success": True}
    if len(items) > max_items:
        summary = summarize_array(projected, max_items, len(items))
        out["data"] = summary["sample"]
        out["meta"] = {
            "total_count": summary["total_count"],
            "showing_first": summary["showing_first"],
            "truncated": summary["truncated"],
            "optimization_applied": True,
            "optimization_reason": f"Showing first {max_items} items to stay within token limits",
            "full_data_available": True,
        }
    else:
        out["data"] = projected if is_list or data is None else projected[0]
        out["meta"] = {
            "total_count": len(items),
            "optimization_applied": summarize,
            "optimization_reason": "Removed heavy fields to reduce token usage" if summarize else None,
        }
    if include_metadata and envelope.additional_data is not None:
        out["additional_data"] = envelope.additional_data
    return out
