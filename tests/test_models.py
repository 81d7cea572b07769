from __future__ import annotations

from pipedrive_mcp.models import Deal, Envelope, Person


def test_envelope_from_api_keeps_additional_data() -> None:
    envelope = Envelope.from_api({
        "success": True,
        "data": [{"id": 1}],
        "additional_data": {"pagination": {"start": 0, "limit": 1, "more_items_in_collection": True, "next_start": 1}},
    })
    assert envelope.success
    assert envelope.pagination.more_items_in_collection is True
    assert envelope.pagination.next_start == 1


def test_envelope_from_api_rejects_non_mapping() -> None:
    envelope = Envelope.from_api(["not", "an", "object"])
    assert not envelope.success
    assert envelope.error_info == "list"


def test_envelope_to_dict_omits_unset_fields() -> None:
    assert Envelope.ok({"id": 1}).to_dict() == {"success": True, "data": {"id": 1}}
    assert Envelope.failure("boom", "detail").to_dict() == {"success": False, "error": "boom", "error_info": "detail"}


def test_with_additional_returns_new_envelope() -> None:
    original = Envelope.ok([], {"pagination": {}})
    extended = original.with_additional("date_context", {"current_year": 2026})
    assert "date_context" not in original.additional_data
    assert extended.additional_data["date_context"] == {"current_year": 2026}
    assert extended.additional_data["pagination"] == {}


def test_entity_preserves_unknown_fields() -> None:
    payload = {"id": 5, "title": "Big deal", "9a8b7c_custom": {"nested": True}}
    deal = Deal.from_api(payload)
    assert deal.id == 5
    assert deal.extra == {"9a8b7c_custom": {"nested": True}}
    assert deal.to_dict()["9a8b7c_custom"] == {"nested": True}


def test_person_primary_contacts() -> None:
    person = Person.from_api({
        "id": 1,
        "email": [{"value": "old@example.com", "primary": False}, {"value": "main@example.com", "primary": True}],
        "phone": [{"value": "+1 555", "primary": False}],
    })
    assert person.primary_email == "main@example.com"
    assert person.primary_phone == "+1 555"
    assert Person().primary_email is None
