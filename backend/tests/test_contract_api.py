"""
Tests for the contract lifecycle endpoints: initiate, review, edit
requests, accept, sign and admin finalization.
"""

import pytest
from httpx import AsyncClient
from starlette.requests import Request

from conftest import fetch
from gigflow.api import deps
from gigflow.api.deps import client_ip
from gigflow.models.booking import Booking
from gigflow.models.contract import Contract

SIGNATURE = {"signature_data": "data:image/png;base64,iVBORw0KGgo=", "signature_type": "drawn"}


async def _initiate(client: AsyncClient, booking_id: int, headers: dict) -> dict:
    response = await client.post(f"/api/v1/bookings/{booking_id}/contract/initiate", headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _post(client: AsyncClient, contract_id: int, action: str, headers: dict, json=None):
    return await client.post(f"/api/v1/contracts/{contract_id}/{action}", json=json, headers=headers)


async def _review_as_is(client, contract_id, headers):
    response = await _post(client, contract_id, "review", headers, {"action": "ACCEPT_AS_IS"})
    assert response.status_code == 200, response.text


async def _accept_and_sign(client, contract_id, headers):
    response = await _post(client, contract_id, "accept", headers, {"agreed": True})
    assert response.status_code == 200, response.text
    response = await _post(client, contract_id, "sign", headers, SIGNATURE)
    assert response.status_code == 200, response.text
    return response.json()


async def _execute(client, contract_id, artist_headers, promoter_headers):
    for headers in (artist_headers, promoter_headers):
        await _review_as_is(client, contract_id, headers)
    await _accept_and_sign(client, contract_id, artist_headers)
    return await _accept_and_sign(client, contract_id, promoter_headers)


@pytest.mark.asyncio
async def test_initiate_builds_version_one(client: AsyncClient, contracting_booking, promoter_headers):
    contract = await _initiate(client, contracting_booking.id, promoter_headers)

    assert contract["status"] == "sent"
    assert contract["current_version"] == 1
    assert contract["terms"]["fee"] == 65000
    assert contract["terms"]["technical"]["soundCheckDuration"] == 45
    assert f"Contract Reference: BK-{contracting_booking.id}" in contract["contract_text"]
    assert contract["signed_by_artist"] is False


@pytest.mark.asyncio
async def test_initiate_is_idempotent(client: AsyncClient, contracting_booking, artist_headers, promoter_headers):
    first = await _initiate(client, contracting_booking.id, artist_headers)

    response = await client.post(
        f"/api/v1/bookings/{contracting_booking.id}/contract/initiate", headers=promoter_headers
    )

    assert response.status_code == 200
    assert response.json()["id"] == first["id"]


@pytest.mark.asyncio
async def test_initiate_requires_accepted_negotiation(client: AsyncClient, booking, artist_headers):
    response = await client.post(f"/api/v1/bookings/{booking.id}/contract/initiate", headers=artist_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_BOOKING_STATE"


@pytest.mark.asyncio
async def test_negotiated_amount_flows_into_contract(
    client: AsyncClient, booking, artist_headers, promoter_headers
):
    base = f"/api/v1/bookings/{booking.id}/negotiation"
    await client.post(base, headers=artist_headers)
    await client.post(f"{base}/propose", json={"offer_amount": 72000}, headers=artist_headers)
    response = await client.post(f"{base}/accept", headers=promoter_headers)
    assert response.json()["booking"]["status"] == "contracting"

    contract = await _initiate(client, booking.id, promoter_headers)

    assert contract["terms"]["fee"] == 72000
    assert "INR 72,000" in contract["contract_text"]


@pytest.mark.asyncio
async def test_full_lifecycle_to_confirmed_booking(
    client: AsyncClient, contracting_booking, artist_headers, promoter_headers, admin_headers, db_session
):
    contract = await _initiate(client, contracting_booking.id, promoter_headers)
    cid = contract["id"]

    for headers in (artist_headers, promoter_headers):
        await _review_as_is(client, cid, headers)
    first = await _accept_and_sign(client, cid, artist_headers)
    assert first["fully_executed"] is False
    assert first["contract"]["status"] == "sent"

    second = await _accept_and_sign(client, cid, promoter_headers)
    assert second["fully_executed"] is True
    assert second["contract"]["status"] == "admin_review"
    assert second["contract"]["signed_at"] is not None
    assert second["signature"]["role"] == "promoter"

    response = await _post(client, cid, "finalize", promoter_headers, {"approve": True})
    assert response.status_code == 403

    response = await _post(client, cid, "finalize", admin_headers, {"approve": True, "note": "Looks good"})
    assert response.status_code == 200, response.text
    assert response.json()["contract"]["status"] == "signed"

    row = await fetch(db_session, Booking, id=contracting_booking.id)
    assert row.status == "confirmed"

    response = await client.get(f"/api/v1/contracts/{cid}/signed-copy", headers=artist_headers)
    assert response.status_code == 200
    assert "SIGNATURES" in response.text
    assert "ARTIST:" in response.text and "PROMOTER:" in response.text


@pytest.mark.asyncio
async def test_executed_contract_rejects_further_party_actions(
    client: AsyncClient, contracting_booking, artist_headers, promoter_headers
):
    contract = await _initiate(client, contracting_booking.id, promoter_headers)
    await _execute(client, contract["id"], artist_headers, promoter_headers)

    response = await _post(client, contract["id"], "sign", artist_headers, SIGNATURE)

    assert response.status_code == 409
    assert response.json()["code"] == "CONTRACT_ALREADY_SIGNED"


@pytest.mark.asyncio
async def test_signed_copy_needs_finalization(
    client: AsyncClient, contracting_booking, artist_headers
):
    contract = await _initiate(client, contracting_booking.id, artist_headers)
    response = await client.get(f"/api/v1/contracts/{contract['id']}/signed-copy", headers=artist_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_admin_rejection_voids_and_cancels(
    client: AsyncClient, contracting_booking, artist_headers, promoter_headers, admin_headers, db_session
):
    contract = await _initiate(client, contracting_booking.id, promoter_headers)
    await _execute(client, contract["id"], artist_headers, promoter_headers)

    response = await _post(client, contract["id"], "finalize", admin_headers, {"approve": False})

    assert response.status_code == 200
    assert response.json()["contract"]["status"] == "voided"
    assert response.json()["contract"]["void_reason"] == "admin_rejected"
    row = await fetch(db_session, Booking, id=contracting_booking.id)
    assert row.status == "cancelled"
    assert row.cancelled_by == "admin"


@pytest.mark.asyncio
async def test_finalize_requires_admin_review(client: AsyncClient, contracting_booking, artist_headers, admin_headers):
    contract = await _initiate(client, contracting_booking.id, artist_headers)
    response = await _post(client, contract["id"], "finalize", admin_headers, {"approve": True})
    assert response.status_code == 409
    assert response.json()["code"] == "CONTRACT_NOT_IN_ADMIN_REVIEW"


@pytest.mark.asyncio
async def test_approved_edit_creates_new_version(
    client: AsyncClient, contracting_booking, artist_headers, promoter_headers
):
    contract = await _initiate(client, contracting_booking.id, promoter_headers)
    cid = contract["id"]

    response = await _post(client, cid, "review", artist_headers, {
        "action": "PROPOSE_EDITS",
        "changes": {"travel": {"flightClass": "business"}, "hospitality": {"guestListCount": 6}},
        "note": "Five-piece band",
    })
    assert response.status_code == 200, response.text
    edit_request = response.json()["edit_request"]
    assert edit_request["status"] == "pending"
    assert response.json()["contract"]["artist_edit_used"] is True

    response = await _post(
        client, cid, f"edit-requests/{edit_request['id']}/respond", promoter_headers, {"decision": "APPROVE"}
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["contract"]["current_version"] == 2
    assert data["contract"]["terms"]["travel"]["flightClass"] == "business"
    assert data["contract"]["terms"]["fee"] == contract["terms"]["fee"]
    assert data["edit_request"]["resulting_version"] == 2
    assert data["version"]["change_summary"] == "artist edit approved: Five-piece band"

    response = await client.get(f"/api/v1/contracts/{cid}/versions", headers=artist_headers)
    assert [v["version"] for v in response.json()] == [1, 2]


@pytest.mark.asyncio
async def test_rejected_edit_still_spends_allowance(
    client: AsyncClient, contracting_booking, artist_headers, promoter_headers
):
    contract = await _initiate(client, contracting_booking.id, promoter_headers)
    cid = contract["id"]
    response = await _post(client, cid, "review", artist_headers, {
        "action": "PROPOSE_EDITS",
        "changes": {"technical": {"soundCheckDuration": 120}},
    })
    request_id = response.json()["edit_request"]["id"]

    response = await _post(
        client, cid, f"edit-requests/{request_id}/respond", promoter_headers, {"decision": "REJECT"}
    )
    assert response.status_code == 200
    assert response.json()["contract"]["current_version"] == 1
    assert response.json()["edit_request"]["resulting_version"] == 1

    response = await client.get(f"/api/v1/bookings/{contracting_booking.id}/contract", headers=artist_headers)
    view = response.json()
    assert view["contract"]["artist_edit_used"] is True
    assert view["user_can_edit"] is False
    assert view["user_has_reviewed"] is True

    response = await _post(
        client, cid, f"edit-requests/{request_id}/respond", promoter_headers, {"decision": "APPROVE"}
    )
    assert response.status_code == 409
    assert response.json()["code"] == "EDIT_REQUEST_ALREADY_RESOLVED"


@pytest.mark.asyncio
async def test_invalid_edit_reports_every_violation(
    client: AsyncClient, contracting_booking, artist_headers, db_session
):
    contract = await _initiate(client, contracting_booking.id, artist_headers)

    response = await _post(client, contract["id"], "review", artist_headers, {
        "action": "PROPOSE_EDITS",
        "changes": {
            "fee": 1,
            "financial": {"paymentMilestones": [{"milestone": "deposit", "percentage": 30},
                                                {"milestone": "pre_event", "percentage": 50}]},
            "technical": {"soundCheckDuration": 500},
        },
    })

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "CONTRACT_VALIDATION_FAILED"
    assert {e["code"] for e in body["errors"]} == {
        "LOCKED_FIELD_VIOLATION",
        "MILESTONE_SUM_INVALID",
        "VALUE_OUT_OF_RANGE",
    }
    row = await fetch(db_session, Contract, id=contract["id"])
    assert row.artist_edit_used is False
    assert row.artist_review_done_at is None


@pytest.mark.asyncio
async def test_malformed_edit_shapes_are_validation_errors(client: AsyncClient, contracting_booking, artist_headers):
    contract = await _initiate(client, contracting_booking.id, artist_headers)

    response = await _post(client, contract["id"], "review", artist_headers, {
        "action": "PROPOSE_EDITS",
        "changes": {
            "financial": {"paymentMilestones": 100},
            "cancellation": {"artistCancellationPenalties": [10, 200]},
        },
    })

    assert response.status_code == 422
    assert [(e["code"], e["field"]) for e in response.json()["errors"]] == [
        ("MILESTONE_SUM_INVALID", "financial.paymentMilestones"),
        ("PENALTY_OUT_OF_RANGE", "cancellation.artistCancellationPenalties"),
    ]


@pytest.mark.asyncio
async def test_propose_edits_needs_changes(client: AsyncClient, contracting_booking, artist_headers):
    contract = await _initiate(client, contracting_booking.id, artist_headers)
    response = await _post(client, contract["id"], "review", artist_headers, {"action": "PROPOSE_EDITS"})
    assert response.status_code == 422
    assert response.json()["code"] == "EMPTY_CHANGES"


@pytest.mark.asyncio
async def test_pending_edit_freezes_both_parties(
    client: AsyncClient, contracting_booking, artist_headers, promoter_headers
):
    contract = await _initiate(client, contracting_booking.id, promoter_headers)
    cid = contract["id"]
    response = await _post(client, cid, "review", artist_headers, {
        "action": "PROPOSE_EDITS",
        "changes": {"branding": {"logoUsageAllowed": False}},
    })
    request_id = response.json()["edit_request"]["id"]
    await _review_as_is(client, cid, promoter_headers)

    for headers in (artist_headers, promoter_headers):
        response = await _post(client, cid, "accept", headers, {"agreed": True})
        assert response.status_code == 409
        assert response.json()["code"] == "PENDING_EDIT_BLOCKS"

    response = await _post(
        client, cid, f"edit-requests/{request_id}/respond", artist_headers, {"decision": "APPROVE"}
    )
    assert response.status_code == 403
    assert response.json()["code"] == "CANNOT_RESPOND_TO_OWN_EDIT"


@pytest.mark.asyncio
async def test_review_accept_sign_order(client: AsyncClient, contracting_booking, artist_headers):
    contract = await _initiate(client, contracting_booking.id, artist_headers)
    cid = contract["id"]

    response = await _post(client, cid, "accept", artist_headers, {"agreed": True})
    assert response.json()["code"] == "REVIEW_REQUIRED"

    await _review_as_is(client, cid, artist_headers)
    response = await _post(client, cid, "sign", artist_headers, SIGNATURE)
    assert response.json()["code"] == "ACCEPT_REQUIRED"

    response = await _post(client, cid, "review", artist_headers, {"action": "ACCEPT_AS_IS"})
    assert response.json()["code"] == "ALREADY_REVIEWED"


@pytest.mark.asyncio
async def test_incomplete_signature_lists_missing_fields(
    client: AsyncClient, contracting_booking, artist_headers
):
    contract = await _initiate(client, contracting_booking.id, artist_headers)
    cid = contract["id"]
    await _review_as_is(client, cid, artist_headers)
    await _post(client, cid, "accept", artist_headers, {"agreed": True})

    response = await _post(client, cid, "sign", artist_headers, {})

    assert response.status_code == 422
    assert response.json()["code"] == "INCOMPLETE_SIGNATURE"
    assert [e["field"] for e in response.json()["errors"]] == ["signature_data", "signature_type"]


@pytest.mark.asyncio
async def test_contract_view_for_party(client: AsyncClient, contracting_booking, artist_headers, admin_headers):
    await _initiate(client, contracting_booking.id, artist_headers)

    response = await client.get(f"/api/v1/bookings/{contracting_booking.id}/contract", headers=artist_headers)

    assert response.status_code == 200
    view = response.json()
    assert view["user_role"] == "artist"
    assert view["user_can_edit"] is True
    assert 0 < view["time_remaining_seconds"] <= 48 * 3600
    assert [v["version"] for v in view["versions"]] == [1]

    response = await client.get(f"/api/v1/bookings/{contracting_booking.id}/contract", headers=admin_headers)
    assert response.json()["user_role"] == "admin"


@pytest.mark.asyncio
async def test_outsider_cannot_review(client: AsyncClient, contracting_booking, artist_headers, outsider_headers):
    contract = await _initiate(client, contracting_booking.id, artist_headers)
    response = await _post(client, contract["id"], "review", outsider_headers, {"action": "ACCEPT_AS_IS"})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_signature_ip_ignores_forwarded_header_from_untrusted_peer(
    client: AsyncClient, contracting_booking, artist_headers
):
    contract = await _initiate(client, contracting_booking.id, artist_headers)
    cid = contract["id"]
    await _review_as_is(client, cid, artist_headers)
    await _post(client, cid, "accept", artist_headers, {"agreed": True})

    response = await _post(client, cid, "sign", {**artist_headers, "X-Forwarded-For": "6.6.6.6"}, SIGNATURE)

    assert response.status_code == 200, response.text
    assert response.json()["signature"]["ip_address"] == "127.0.0.1"


def _request(peer: str, forwarded: str = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
    return Request({"type": "http", "headers": headers, "client": (peer, 40000)})


def test_client_ip_follows_forwarded_chain_only_through_trusted_proxies(monkeypatch):
    monkeypatch.setattr(deps.settings, "TRUSTED_PROXIES", ["10.0.0.5", "10.0.0.6"])

    assert client_ip(_request("10.0.0.5", "203.0.113.7, 10.0.0.6")) == "203.0.113.7"
    assert client_ip(_request("10.0.0.5", "6.6.6.6, 203.0.113.7")) == "203.0.113.7"
    assert client_ip(_request("198.51.100.2", "6.6.6.6")) == "198.51.100.2"
    assert client_ip(_request("10.0.0.5")) == "10.0.0.5"
