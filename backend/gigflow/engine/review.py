"""
Contract edit/review workflow rules.

Each party reviews the contract once, either accepting it as drafted or
proposing edits. Proposing edits spends that party's one-time edit allowance
whether the counterparty later approves or rejects the request. While an
edit request is pending, accept and sign are frozen for both parties.

Validators collect every violation instead of stopping at the first one, so
a caller can report the whole list in a single response.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from gigflow.core.errors import EditAlreadyUsed, PendingEditBlocks, Violation
from gigflow.engine.parties import Party
from gigflow.engine.terms import LOCKED_FIELDS, apply_contract_changes

SOUND_CHECK_MINUTES = (15, 180)
GUEST_LIST_COUNT = (0, 20)


class ReviewAction(str, Enum):
    ACCEPT_AS_IS = "ACCEPT_AS_IS"
    PROPOSE_EDITS = "PROPOSE_EDITS"


class EditDecision(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


@dataclass(frozen=True)
class ValidationResult:
    violations: list[Violation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations


@dataclass(frozen=True)
class EditApproval:
    version: int
    terms: dict


def check_one_time_edit(contract, party: Party) -> None:
    if getattr(contract, f"{party.value}_edit_used"):
        raise EditAlreadyUsed()


def check_pending_edit_blocks(pending_edit: Optional[Any]) -> None:
    if pending_edit is not None:
        raise PendingEditBlocks()


def validate_locked_fields(changes: dict) -> list[Violation]:
    violations = [
        Violation(
            code="LOCKED_FIELD_VIOLATION",
            field=name,
            message=f'Field "{name}" is a core negotiated term and cannot be modified',
        )
        for name in LOCKED_FIELDS
        if name in changes
    ]
    financial = changes.get("financial")
    if isinstance(financial, dict):
        for name in ("totalFee", "currency"):
            if name in financial:
                violations.append(
                    Violation(
                        code="LOCKED_FIELD_VIOLATION",
                        field=f"financial.{name}",
                        message="Total fee and currency cannot be modified",
                    )
                )
    return violations


def _number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _milestone_violations(financial: dict) -> list[Violation]:
    milestones = financial.get("paymentMilestones")
    if milestones is None:
        return []
    if not isinstance(milestones, list):
        return [
            Violation(
                code="MILESTONE_SUM_INVALID",
                field="financial.paymentMilestones",
                message="Payment milestones must be a list of {milestone, percentage} entries",
            )
        ]
    total = sum(
        (_number(m.get("percentage") or 0) or Decimal(0) for m in milestones if isinstance(m, dict)),
        Decimal(0),
    )
    if total != 100:
        return [
            Violation(
                code="MILESTONE_SUM_INVALID",
                field="financial.paymentMilestones",
                message=f"Payment milestones must sum to 100% (currently {total.normalize():f}%)",
            )
        ]
    return []


def _penalty_violations(cancellation: dict) -> list[Violation]:
    violations = []
    for schedule_name in ("artistCancellationPenalties", "organizerCancellationPenalties"):
        schedule = cancellation.get(schedule_name)
        if schedule is None:
            continue
        if not isinstance(schedule, dict):
            violations.append(
                Violation(
                    code="PENALTY_OUT_OF_RANGE",
                    field=f"cancellation.{schedule_name}",
                    message="Cancellation penalties must map each window to a percentage",
                )
            )
            continue
        for window, raw in schedule.items():
            value = _number(raw)
            if value is None or value < 0 or value > 100:
                violations.append(
                    Violation(
                        code="PENALTY_OUT_OF_RANGE",
                        field=f"cancellation.{schedule_name}.{window}",
                        message="Cancellation penalties must be between 0 and 100%",
                    )
                )
    return violations


def _time_ordering_violations(accommodation: dict) -> list[Violation]:
    check_in = accommodation.get("checkInTime")
    check_out = accommodation.get("checkOutTime")
    # HH:MM strings order lexically
    if check_in and check_out and str(check_in) >= str(check_out):
        return [
            Violation(
                code="INVALID_TIME_ORDERING",
                field="accommodation.checkInTime",
                message="Check-in time must be before check-out time",
            )
        ]
    return []


def _range_violation(path: str, raw: Any, bounds: tuple[int, int], label: str) -> list[Violation]:
    low, high = bounds
    value = _number(raw)
    if value is None or value < low or value > high:
        return [
            Violation(
                code="VALUE_OUT_OF_RANGE",
                field=path,
                message=f"{label} must be between {low} and {high}",
            )
        ]
    return []


def validate_contract_changes(changes: dict) -> ValidationResult:
    violations = validate_locked_fields(changes)

    financial = changes.get("financial")
    if isinstance(financial, dict):
        violations += _milestone_violations(financial)

    cancellation = changes.get("cancellation")
    if isinstance(cancellation, dict):
        violations += _penalty_violations(cancellation)

    accommodation = changes.get("accommodation")
    if isinstance(accommodation, dict):
        violations += _time_ordering_violations(accommodation)

    technical = changes.get("technical")
    if isinstance(technical, dict) and "soundCheckDuration" in technical:
        violations += _range_violation(
            "technical.soundCheckDuration",
            technical["soundCheckDuration"],
            SOUND_CHECK_MINUTES,
            "Sound check duration (minutes)",
        )

    hospitality = changes.get("hospitality")
    if isinstance(hospitality, dict) and "guestListCount" in hospitality:
        violations += _range_violation(
            "hospitality.guestListCount",
            hospitality["guestListCount"],
            GUEST_LIST_COUNT,
            "Guest list count",
        )

    return ValidationResult(violations=violations)


def compute_edit_approval(current_version: int, current_terms: dict, changes: dict) -> EditApproval:
    return EditApproval(
        version=current_version + 1,
        terms=apply_contract_changes(current_terms, changes),
    )


def compute_edit_rejection(current_version: int) -> int:
    """A rejected edit leaves the version where it was; the allowance stays spent."""
    return current_version


def approval_summary(party: Party, note: Optional[str]) -> str:
    return f"{party.value} edit approved: {note or 'Changes applied'}"
