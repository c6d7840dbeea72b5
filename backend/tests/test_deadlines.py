"""
Tests for signing-window expiry decisions.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from gigflow.core.errors import ContractVoided, DeadlineExpired
from gigflow.engine.deadlines import (
    DEADLINE_CANCEL_REASON,
    check_deadline_expired,
    check_voided_contract,
    compute_deadline_enforcement,
    is_expired,
)

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def _contract(status, deadline_at):
    return SimpleNamespace(id=7, booking_id=3, status=status, deadline_at=deadline_at)


def test_deadline_boundary_is_exclusive():
    assert not is_expired(NOW, NOW)
    assert is_expired(NOW, NOW + timedelta(seconds=1))
    assert not is_expired(None, NOW)


def test_sent_contract_past_deadline_is_voided():
    decision = compute_deadline_enforcement(_contract("sent", NOW - timedelta(minutes=1)), NOW)
    assert decision.should_void
    assert decision.new_contract_status == "voided"
    assert decision.new_booking_status == "cancelled"
    assert decision.cancel_reason == DEADLINE_CANCEL_REASON
    assert (decision.contract_id, decision.booking_id) == (7, 3)


@pytest.mark.parametrize("status", ["admin_review", "signed", "completed", "voided"])
def test_other_statuses_are_left_alone(status):
    decision = compute_deadline_enforcement(_contract(status, NOW - timedelta(days=3)), NOW)
    assert not decision.should_void
    assert decision.new_contract_status is None


def test_sent_contract_inside_window_is_left_alone():
    assert not compute_deadline_enforcement(_contract("sent", NOW + timedelta(hours=1)), NOW).should_void


def test_check_deadline_expired():
    check_deadline_expired(NOW + timedelta(hours=1), NOW)
    with pytest.raises(DeadlineExpired):
        check_deadline_expired(NOW - timedelta(hours=1), NOW)


def test_voided_contract_rejects_with_one_message():
    messages = set()
    for _ in ("review", "accept", "sign"):
        with pytest.raises(ContractVoided) as exc:
            check_voided_contract("voided")
        messages.add(exc.value.message)
    assert messages == {"Contract has been voided; no further actions are allowed"}
    check_voided_contract("sent")
