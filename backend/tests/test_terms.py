"""
Tests for the terms model and the contract document generator.
"""

import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from gigflow.engine.document import (
    ExistingContractDecision,
    calculate_deadline,
    generate_contract_text,
    prepare_contract_initiation,
    render_signed_copy,
    resolve_existing_contract,
)
from gigflow.engine.terms import (
    EDITABLE_CATEGORIES,
    LOCKED_FACTS,
    apply_contract_changes,
    build_terms,
    locked_facts,
    merge_accommodation,
)

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def _booking(**overrides):
    fields = dict(
        id=42,
        final_amount=80000,
        offer_amount=75000,
        offer_currency="INR",
        deposit_percent=25,
        event_title="Monsoon Nights",
        event_date=datetime(2026, 12, 19, 20, 0, tzinfo=timezone.utc),
        slot_time="20:00-21:30",
        venue_name="Blue Frog",
        venue_address="Lower Parel, Mumbai",
        artist_name="The Ragas",
        organizer_name="Skyline Events",
        meta={"travelProvided": True, "hotelStarRating": 4, "mealsProvided": True},
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_build_terms_locked_facts_come_from_booking():
    terms = build_terms(_booking())
    assert terms["fee"] == 80000
    assert terms["currency"] == "INR"
    assert terms["depositPercent"] == 25
    assert terms["eventDate"] == "2026-12-19T20:00:00+00:00"
    assert terms["venueName"] == "Blue Frog"
    assert set(LOCKED_FACTS) <= set(terms)


def test_build_terms_falls_back_to_offer_and_defaults():
    terms = build_terms(_booking(final_amount=None, offer_currency=None, deposit_percent=None, meta=None))
    assert terms["fee"] == 75000
    assert terms["currency"] == "INR"
    assert terms["depositPercent"] == 30
    milestones = terms["financial"]["paymentMilestones"]
    assert [m["percentage"] for m in milestones] == [30, 70]
    assert terms["travel"]["responsibility"] == "artist"


def test_build_terms_prepopulates_editable_categories_from_meta():
    terms = build_terms(_booking())
    assert set(EDITABLE_CATEGORIES) <= set(terms)
    assert terms["travel"]["responsibility"] == "organizer"
    assert terms["accommodation"]["hotelStarRating"] == 4
    assert terms["hospitality"]["mealsProvided"] == ["dinner", "drinks"]


def test_apply_changes_keeps_locked_facts_and_does_not_mutate():
    terms = build_terms(_booking())
    snapshot = copy.deepcopy(terms)
    changes = {
        "travel": {"flightClass": "business"},
        "technical": {"soundCheckDuration": 90},
        "fee": 1,
        "venueName": "Somewhere Else",
    }

    merged = apply_contract_changes(terms, changes)

    assert terms == snapshot
    assert locked_facts(merged) == locked_facts(terms)
    assert merged["travel"]["flightClass"] == "business"
    assert merged["technical"]["soundCheckDuration"] == 90


def test_category_merge_keeps_untouched_keys_and_drops_unknown():
    current = {"included": True, "checkInTime": "14:00", "checkOutTime": "12:00"}
    merged = merge_accommodation(current, {"checkInTime": "13:00", "fee": 5})
    assert merged == {"included": True, "checkInTime": "13:00", "checkOutTime": "12:00"}
    assert current["checkInTime"] == "14:00"


def test_merged_nested_values_are_not_shared_with_changes():
    terms = build_terms(_booking())
    milestones = [{"milestone": "deposit", "percentage": 50}, {"milestone": "pre_event", "percentage": 50}]
    merged = apply_contract_changes(terms, {"financial": {"paymentMilestones": milestones}})
    milestones[0]["percentage"] = 99
    assert merged["financial"]["paymentMilestones"][0]["percentage"] == 50


def test_contract_text_is_deterministic_and_reflects_terms():
    booking = _booking()
    terms = build_terms(booking)
    first = generate_contract_text(booking, terms)
    second = generate_contract_text(booking, copy.deepcopy(terms))
    assert first == second
    assert "Contract Reference: BK-42" in first
    assert "INR 80,000" in first
    assert "25% (INR 20,000)" in first
    assert "Saturday, December 19, 2026" in first


def test_deadline_is_exactly_48_hours_after_initiation():
    assert calculate_deadline(NOW) == NOW + timedelta(hours=48)


def test_prepare_initiation_is_deterministic():
    booking = _booking()
    first = prepare_contract_initiation(booking, NOW)
    second = prepare_contract_initiation(booking, NOW)

    assert first == second
    assert first.contract["status"] == "sent"
    assert first.contract["current_version"] == 1
    assert first.contract["deadline_at"] == NOW + timedelta(hours=48)
    assert first.version["version"] == 1
    assert first.version["contract_text"] == first.contract_text


def test_resolve_existing_contract():
    assert resolve_existing_contract(None) is ExistingContractDecision.NONE
    assert resolve_existing_contract(SimpleNamespace(status="voided")) is ExistingContractDecision.VOIDED
    for status in ("sent", "admin_review", "signed"):
        assert resolve_existing_contract(SimpleNamespace(status=status)) is ExistingContractDecision.RETURN_EXISTING


def test_signed_copy_lists_signatures_in_signing_order():
    signatures = [
        SimpleNamespace(role="promoter", signature_data="S. Events", signature_type="typed",
                        signed_at=NOW + timedelta(hours=2), ip_address="10.0.0.2"),
        SimpleNamespace(role="artist", signature_data="The Ragas", signature_type="drawn",
                        signed_at=NOW, ip_address="10.0.0.1"),
    ]
    text = render_signed_copy("CONTRACT BODY", signatures)
    assert text.startswith("CONTRACT BODY")
    assert text.index("ARTIST: The Ragas") < text.index("PROMOTER: S. Events")
    assert "IP: 10.0.0.2" in text
