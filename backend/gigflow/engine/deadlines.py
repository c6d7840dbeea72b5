"""Signing-window enforcement: expiry checks, sweep decisions, and the voided sink."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from gigflow.core.errors import ContractVoided, DeadlineExpired

DEADLINE_CANCEL_REASON = "contract_deadline_expired"


@dataclass(frozen=True)
class DeadlineDecision:
    should_void: bool
    contract_id: int
    booking_id: int
    new_contract_status: Optional[str] = None
    new_booking_status: Optional[str] = None
    cancel_reason: Optional[str] = None


def is_expired(deadline_at: Optional[datetime], now: datetime) -> bool:
    return deadline_at is not None and now > deadline_at


def check_deadline_expired(deadline_at: Optional[datetime], now: datetime) -> None:
    if is_expired(deadline_at, now):
        raise DeadlineExpired()


def compute_deadline_enforcement(contract, now: datetime) -> DeadlineDecision:
    """
    Only contracts still in `sent` are voided by the sweep; any other status
    is left alone even when its deadline has passed.
    """
    if contract.status == "sent" and is_expired(contract.deadline_at, now):
        return DeadlineDecision(
            should_void=True,
            contract_id=contract.id,
            booking_id=contract.booking_id,
            new_contract_status="voided",
            new_booking_status="cancelled",
            cancel_reason=DEADLINE_CANCEL_REASON,
        )
    return DeadlineDecision(
        should_void=False,
        contract_id=contract.id,
        booking_id=contract.booking_id,
    )


def check_voided_contract(status: str) -> None:
    if status == "voided":
        raise ContractVoided()
