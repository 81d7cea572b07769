"""
Upstream data shapes.

Envelope is the uniform result of every Pipedrive call. Entities keep the
handful of core fields the optimizer projects on as typed attributes and
everything else (custom field hashes etc.) in an ordered `extra` map.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Type, TypeVar

E = TypeVar("E", bound="Entity")


@dataclass
class Pagination:
    start: int = 0
    limit: int = 0
    more_items_in_collection: bool = False
    next_start: Optional[int] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Pagination":
        return cls(
            start=int(payload.get("start") or 0),
            limit=int(payload.get("limit") or 0),
            more_items_in_collection=bool(payload.get("more_items_in_collection", False)),
            next_start=payload.get("next_start"),
        )


@dataclass
class Envelope:
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_info: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: Any, additional_data: Optional[Dict[str, Any]] = None) -> "Envelope":
        return cls(success=True, data=data, additional_data=additional_data)

    @classmethod
    def failure(cls, error: str, error_info: Optional[str] = None) -> "Envelope":
        return cls(success=False, error=error, error_info=error_info)

    @classmethod
    def from_api(cls, payload: Any) -> "Envelope":
        if not isinstance(payload, Mapping):
            return cls.failure("Unexpected response shape from Pipedrive", type(payload).__name__)
        additional = payload.get("additional_data")
        return cls(
            success=bool(payload.get("success", False)),
            data=payload.get("data"),
            error=payload.get("error"),
            error_info=payload.get("error_info"),
            additional_data=dict(additional) if isinstance(additional, Mapping) else None,
        )

    @property
    def pagination(self) -> Optional[Pagination]:
        raw = (self.additional_data or {}).get("pagination")
        if isinstance(raw, Mapping):
            return Pagination.from_api(raw)
        return None

    def with_additional(self, key: str, value: Any) -> "Envelope":
        additional = dict(self.additional_data or {})
        additional[key] = value
        return Envelope(self.success, self.data, self.error, self.error_info, additional)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        if self.error_info is not None:
            out["error_info"] = self.error_info
        if self.additional_data is not None:
            out["additional_data"] = self.additional_data
        return out


@dataclass
class Entity:
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def core_fields(cls) -> FrozenSet[str]:
        return frozenset(f.name for f in fields(cls) if f.name != "extra")

    @classmethod
    def from_api(cls: Type[E], payload: Mapping[str, Any]) -> E:
        core = cls.core_fields()
        known = {k: v for k, v in payload.items() if k in core}
        extra = {k: v for k, v in payload.items() if k not in core}
        return cls(extra=extra, **known)

    def to_dict(self) -> Dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        out.update(self.extra)
        return out


@dataclass
class Deal(Entity):
    id: Optional[int] = None
    title: Optional[str] = None
    value: Optional[float] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    probability: Optional[float] = None
    stage_id: Optional[int] = None
    pipeline_id: Optional[int] = None
    user_id: Any = None
    person_id: Any = None
    org_id: Any = None
    expected_close_date: Optional[str] = None
    add_time: Optional[str] = None
    update_time: Optional[str] = None


@dataclass
class Person(Entity):
    id: Optional[int] = None
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    org_id: Any = None
    org_name: Optional[str] = None
    email: Optional[List[Dict[str, Any]]] = None
    phone: Optional[List[Dict[str, Any]]] = None
    owner_id: Any = None
    add_time: Optional[str] = None
    update_time: Optional[str] = None

    @staticmethod
    def _primary(entries: Optional[List[Dict[str, Any]]]) -> Optional[str]:
        if not entries:
            return None
        for entry in entries:
            if isinstance(entry, Mapping) and entry.get("primary"):
                return entry.get("value")
        first = entries[0]
        return first.get("value") if isinstance(first, Mapping) else None

    @property
    def primary_email(self) -> Optional[str]:
        return self._primary(self.email)

    @property
    def primary_phone(self) -> Optional[str]:
        return self._primary(self.phone)


@dataclass
class Organization(Entity):
    id: Optional[int] = None
    name: Optional[str] = None
    owner_id: Any = None
    people_count: Optional[int] = None
    open_deals_count: Optional[int] = None
    closed_deals_count: Optional[int] = None
    add_time: Optional[str] = None
    update_time: Optional[str] = None


@dataclass
class Pipeline(Entity):
    id: Optional[int] = None
    name: Optional[str] = None
    order_nr: Optional[int] = None
    active: Optional[bool] = None


@dataclass
class Stage(Entity):
    id: Optional[int] = None
    name: Optional[str] = None
    order_nr: Optional[int] = None
    pipeline_id: Optional[int] = None
    deal_probability: Optional[int] = None


@dataclass
class Activity(Entity):
    id: Optional[int] = None
    type: Optional[str] = None
    subject: Optional[str] = None
    done: Optional[bool] = None
    due_date: Optional[str] = None
    user_id: Any = None
    deal_id: Any = None
    person_id: Any = None
    org_id: Any = None
    add_time: Optional[str] = None


@dataclass
class Note(Entity):
    id: Optional[int] = None
    content: Optional[str] = None
    user_id: Any = None
    deal_id: Any = None
    person_id: Any = None
    org_id: Any = None
    add_time: Optional[str] = None


@dataclass
class User(Entity):
    id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    active_flag: Optional[bool] = None
    is_admin: Any = None
    role_id: Optional[int] = None
    timezone_name: Optional[str] = None
    company_id: Optional[int] = None
    last_login: Optional[str] = None


@dataclass
class SearchResult(Entity):
    result_score: Optional[float] = None
    item: Optional[Dict[str, Any]] = None


ENTITY_TYPES: Dict[str, Type[Entity]] = {
    "deals": Deal,
    "persons": Person,
    "organizations": Organization,
    "pipelines": Pipeline,
    "stages": Stage,
    "activities": Activity,
    "notes": Note,
    "users": User,
    "search": SearchResult,
}
