"""
Contract lifecycle orchestration.

LIFECYCLE
=========

  initiate ──► sent ──(both: review → accept → sign)──► admin_review ──► signed
                 │                                           │
                 └── deadline passes (sweep) ──► voided ◄── admin rejects

Every party action runs as one locked transaction on the contract row and
checks its guards in this order, against the row as read under the lock:

  1. voided             -> ContractVoided (same error for every action)
  2. now > deadline_at  -> DeadlineExpired (even before the sweep voids it)
  3. fully executed     -> ContractAlreadySigned
  4. action-specific ordering rules (engine.review / engine.signing)

Idempotency: each action appends a ContractEvent carrying the caller's key.
Replaying a key for the same action returns the current state untouched;
replaying it for another action is an IdempotencyConflict.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.core.config import get_settings
from gigflow.core.errors import (
    AlreadyAccepted,
    AlreadyReviewed,
    AlreadySigned,
    CannotRespondToOwnEdit,
    ContractAlreadySigned,
    ContractError,
    ContractNotAwaitingFinalization,
    ContractValidationError,
    EditRequestAlreadyResolved,
    EmptyChanges,
    GigflowError,
    IdempotencyConflict,
    IncompleteSignature,
    InvalidBookingState,
    NotFound,
)
from gigflow.core.logging import get_logger
from gigflow.core.metrics import record_contract_action, record_contract_voided
from gigflow.core.security import Principal
from gigflow.engine.deadlines import check_deadline_expired, check_voided_contract, is_expired
from gigflow.engine.document import (
    ExistingContractDecision,
    generate_contract_text,
    prepare_contract_initiation,
    render_signed_copy,
    resolve_existing_contract,
)
from gigflow.engine.parties import Party
from gigflow.engine.review import (
    EditDecision,
    ReviewAction,
    approval_summary,
    check_one_time_edit,
    check_pending_edit_blocks,
    compute_edit_approval,
    compute_edit_rejection,
    validate_contract_changes,
)
from gigflow.engine.signing import (
    SignatureData,
    check_accept_before_sign,
    check_dual_signature,
    check_review_before_accept,
    has_signed,
    validate_signature_data,
)
from gigflow.models.booking import Booking
from gigflow.models.contract import (
    EXECUTED_STATUSES,
    Contract,
    ContractEditRequest,
    ContractEvent,
    ContractSignature,
    ContractVersion,
)
from gigflow.services.lock_service import locked_transaction
from gigflow.services.repository import acting_party, ensure_can_view, load, next_seq

logger = get_logger(__name__)
settings = get_settings()

ADMIN_REJECT_REASON = "admin_rejected"


@dataclass
class InitiationOutcome:
    contract: Contract
    created: bool


@dataclass
class ContractOutcome:
    contract: Contract
    edit_request: Optional[ContractEditRequest] = None
    version: Optional[ContractVersion] = None
    signature: Optional[ContractSignature] = None
    fully_executed: bool = False
    replayed: bool = False


@dataclass
class ContractView:
    contract: Contract
    versions: list = field(default_factory=list)
    edit_requests: list = field(default_factory=list)
    signatures: list = field(default_factory=list)
    user_role: Optional[str] = None
    user_can_edit: bool = False
    user_has_reviewed: bool = False
    user_has_accepted: bool = False
    user_has_signed: bool = False
    time_remaining_seconds: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _find_replay(
    db: AsyncSession, contract_id: int, idempotency_key: Optional[str], action: str
) -> Optional[ContractEvent]:
    if not idempotency_key:
        return None
    result = await db.execute(
        select(ContractEvent).where(
            ContractEvent.contract_id == contract_id,
            ContractEvent.idempotency_key == idempotency_key,
        )
    )
    event = result.scalar_one_or_none()
    if event is not None and event.action != action:
        raise IdempotencyConflict(
            f"Idempotency key already used for '{event.action}' on contract {contract_id}"
        )
    return event


async def append_contract_event(
    db: AsyncSession,
    contract: Contract,
    action: str,
    actor_role: str,
    actor_user_id: Optional[int],
    now: datetime,
    payload: Optional[dict] = None,
    idempotency_key: Optional[str] = None,
    version: Optional[int] = None,
) -> ContractEvent:
    event = ContractEvent(
        contract_id=contract.id,
        seq=await next_seq(db, ContractEvent, ContractEvent.contract_id, contract.id),
        action=action,
        actor_role=actor_role,
        actor_user_id=actor_user_id,
        version=version if version is not None else contract.current_version,
        payload=payload or {},
        idempotency_key=idempotency_key or uuid.uuid4().hex,
        occurred_at=now,
    )
    db.add(event)
    return event


async def _pending_edit(db: AsyncSession, contract_id: int) -> Optional[ContractEditRequest]:
    result = await db.execute(
        select(ContractEditRequest)
        .where(
            ContractEditRequest.contract_id == contract_id,
            ContractEditRequest.status == "pending",
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


def guard_party_action(contract: Contract, now: datetime) -> None:
    check_voided_contract(contract.status)
    check_deadline_expired(contract.deadline_at, now)
    if contract.status in EXECUTED_STATUSES:
        raise ContractAlreadySigned()


async def _latest_contract(db: AsyncSession, booking_id: int) -> Optional[Contract]:
    result = await db.execute(
        select(Contract)
        .where(Contract.booking_id == booking_id)
        .order_by(Contract.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _party_action(
    db: AsyncSession,
    contract_id: int,
    principal: Principal,
    action: str,
    idempotency_key: Optional[str],
    now: datetime,
    apply,
) -> ContractOutcome:
    """
    Shared frame for review / edit response / accept / sign.

    `apply(contract, booking, party)` runs under the lock after the replay
    check and the universal guards, and returns the outcome to report.
    """
    try:
        async with locked_transaction(db, "contract", contract_id):
            contract = await load(db, Contract, contract_id, for_update=True)
            booking = await load(db, Booking, contract.booking_id)
            party = acting_party(booking, principal)

            if await _find_replay(db, contract_id, idempotency_key, action):
                record_contract_action(action, "replayed")
                return ContractOutcome(contract=contract, replayed=True)

            guard_party_action(contract, now)
            version_before = contract.current_version
            outcome, payload = await apply(contract, booking, party)
            await append_contract_event(
                db,
                contract,
                action,
                party.value,
                principal.user_id,
                now,
                payload=payload,
                idempotency_key=idempotency_key,
                version=version_before,
            )
            await db.flush()
    except GigflowError as e:
        record_contract_action(action, "rejected")
        logger.warning("contract_action_rejected", contract_id=contract_id, action=action, code=e.code)
        raise

    record_contract_action(action, "success")
    return outcome


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------


async def initiate_contract(
    db: AsyncSession,
    booking_id: int,
    principal: Principal,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> InitiationOutcome:
    """
    Create version 1 of the contract for an accepted negotiation.

    Idempotent: a live contract for the booking is returned as is; only a
    voided one allows a fresh initiation.
    """
    now = now or _utcnow()
    async with locked_transaction(db, "booking", booking_id):
        booking = await load(db, Booking, booking_id, for_update=True)
        actor_role = "admin" if principal.is_admin else acting_party(booking, principal).value

        existing = await _latest_contract(db, booking_id)
        decision = resolve_existing_contract(existing)
        if decision is ExistingContractDecision.RETURN_EXISTING:
            record_contract_action("initiate", "replayed")
            return InitiationOutcome(contract=existing, created=False)

        if booking.status != "contracting":
            record_contract_action("initiate", "rejected")
            raise InvalidBookingState(
                f"Contract can only be initiated for a booking in 'contracting' (is '{booking.status}')"
            )

        bundle = prepare_contract_initiation(
            booking,
            now,
            deadline_hours=settings.CONTRACT_DEADLINE_HOURS,
            default_currency=settings.DEFAULT_CURRENCY,
            default_deposit_percent=settings.DEFAULT_DEPOSIT_PERCENT,
        )
        contract = Contract(**bundle.contract)
        db.add(contract)
        await db.flush()

        db.add(
            ContractVersion(
                contract_id=contract.id,
                created_at=now,
                **{**bundle.version, "created_by": principal.user_id},
            )
        )
        await append_contract_event(
            db,
            contract,
            "initiate",
            actor_role,
            principal.user_id,
            now,
            payload={"reinitiated": decision is ExistingContractDecision.VOIDED},
            idempotency_key=idempotency_key,
        )
        await db.flush()

    record_contract_action("initiate", "success")
    logger.info(
        "contract_initiated",
        contract_id=contract.id,
        booking_id=booking_id,
        deadline_at=contract.deadline_at.isoformat(),
        reinitiated=decision is ExistingContractDecision.VOIDED,
    )
    return InitiationOutcome(contract=contract, created=True)


# ---------------------------------------------------------------------------
# Review and edit requests
# ---------------------------------------------------------------------------


async def review_contract(
    db: AsyncSession,
    contract_id: int,
    principal: Principal,
    action: ReviewAction,
    changes: Optional[dict] = None,
    note: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContractOutcome:
    """
    Record a party's one review.

    PROPOSE_EDITS is the edit-request path: it spends the party's one-time
    edit and leaves a pending request that freezes accept and sign.
    """
    now = now or _utcnow()

    async def apply(contract: Contract, booking: Booking, party: Party):
        if getattr(contract, f"{party.value}_review_done_at") is not None:
            raise AlreadyReviewed()

        edit_request = None
        if action is ReviewAction.PROPOSE_EDITS:
            if not changes:
                raise EmptyChanges()
            check_one_time_edit(contract, party)
            check_pending_edit_blocks(await _pending_edit(db, contract.id))
            result = validate_contract_changes(changes)
            if not result.valid:
                raise ContractValidationError(violations=result.violations)

            setattr(contract, f"{party.value}_edit_used", True)
            edit_request = ContractEditRequest(
                contract_id=contract.id,
                requested_by=principal.user_id,
                requested_by_role=party.value,
                changes=changes,
                note=note,
                status="pending",
            )
            db.add(edit_request)
            await db.flush()

        setattr(contract, f"{party.value}_review_done_at", now)
        logger.info(
            "contract_reviewed",
            contract_id=contract.id,
            party=party.value,
            review_action=action.value,
            edit_request_id=edit_request.id if edit_request else None,
        )
        payload = {"action": action.value, "edit_request_id": edit_request.id if edit_request else None}
        return ContractOutcome(contract=contract, edit_request=edit_request), payload

    return await _party_action(db, contract_id, principal, "review", idempotency_key, now, apply)


async def respond_to_edit_request(
    db: AsyncSession,
    contract_id: int,
    request_id: int,
    principal: Principal,
    decision: EditDecision,
    response_note: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContractOutcome:
    """Resolve a pending edit request; only the other party may do so."""
    now = now or _utcnow()

    async def apply(contract: Contract, booking: Booking, party: Party):
        edit_request = await load(db, ContractEditRequest, request_id, for_update=True, label="Edit request")
        if edit_request.contract_id != contract.id:
            raise NotFound(f"Edit request {request_id} not found on contract {contract.id}")
        if edit_request.status != "pending":
            raise EditRequestAlreadyResolved()
        if edit_request.requested_by_role == party.value:
            raise CannotRespondToOwnEdit()

        requester = Party(edit_request.requested_by_role)
        version = None
        if decision is EditDecision.APPROVE:
            approval = compute_edit_approval(contract.current_version, contract.terms, edit_request.changes)
            contract_text = generate_contract_text(booking, approval.terms)
            version = ContractVersion(
                contract_id=contract.id,
                version=approval.version,
                contract_text=contract_text,
                terms=approval.terms,
                change_summary=approval_summary(requester, edit_request.note),
                created_by=principal.user_id,
                created_at=now,
            )
            db.add(version)
            contract.terms = approval.terms
            contract.contract_text = contract_text
            contract.current_version = approval.version
            edit_request.status = "approved"
            edit_request.resulting_version = approval.version
        else:
            edit_request.status = "rejected"
            edit_request.resulting_version = compute_edit_rejection(contract.current_version)

        edit_request.responded_by = principal.user_id
        edit_request.responded_at = now
        edit_request.response_note = response_note

        logger.info(
            f"edit_request_{edit_request.status}",
            contract_id=contract.id,
            edit_request_id=edit_request.id,
            requested_by=requester.value,
            responded_by=party.value,
            version=contract.current_version,
        )
        payload = {"edit_request_id": edit_request.id, "decision": decision.value}
        return ContractOutcome(contract=contract, edit_request=edit_request, version=version), payload

    return await _party_action(db, contract_id, principal, "edit_response", idempotency_key, now, apply)


# ---------------------------------------------------------------------------
# Accept and sign
# ---------------------------------------------------------------------------


async def accept_contract(
    db: AsyncSession,
    contract_id: int,
    principal: Principal,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContractOutcome:
    now = now or _utcnow()

    async def apply(contract: Contract, booking: Booking, party: Party):
        if getattr(contract, f"{party.value}_accepted_at") is not None:
            raise AlreadyAccepted()
        check_review_before_accept(contract, party)
        check_pending_edit_blocks(await _pending_edit(db, contract.id))

        setattr(contract, f"{party.value}_accepted_at", now)
        logger.info("contract_accepted", contract_id=contract.id, party=party.value)
        return ContractOutcome(contract=contract), {"version": contract.current_version}

    return await _party_action(db, contract_id, principal, "accept", idempotency_key, now, apply)


async def sign_contract(
    db: AsyncSession,
    contract_id: int,
    principal: Principal,
    signature: SignatureData,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContractOutcome:
    """
    Record one party's signature. The second signature completes execution
    and hands the contract to admin review.
    """
    now = now or _utcnow()

    async def apply(contract: Contract, booking: Booking, party: Party):
        if has_signed(contract, party):
            raise AlreadySigned()
        check_accept_before_sign(contract, party)
        check_pending_edit_blocks(await _pending_edit(db, contract.id))
        violations = validate_signature_data(signature)
        if violations:
            raise IncompleteSignature(violations=violations)

        dual = check_dual_signature(contract, party)
        record = ContractSignature(
            contract_id=contract.id,
            user_id=principal.user_id,
            role=party.value,
            signature_data=signature.signature_data,
            signature_type=signature.signature_type,
            ip_address=signature.ip_address,
            user_agent=signature.user_agent,
            signed_at=now,
        )
        db.add(record)
        setattr(contract, f"signed_by_{party.value}", True)
        setattr(contract, f"{party.value}_signed_at", now)
        if dual.fully_executed:
            contract.status = dual.new_status
        if dual.should_set_signed_at:
            contract.signed_at = now

        logger.info(
            "contract_signed",
            contract_id=contract.id,
            party=party.value,
            fully_executed=dual.fully_executed,
            status=contract.status,
        )
        outcome = ContractOutcome(contract=contract, signature=record, fully_executed=dual.fully_executed)
        return outcome, {"signature_type": signature.signature_type, "fully_executed": dual.fully_executed}

    return await _party_action(db, contract_id, principal, "sign", idempotency_key, now, apply)


# ---------------------------------------------------------------------------
# Admin finalization
# ---------------------------------------------------------------------------


async def finalize_contract(
    db: AsyncSession,
    contract_id: int,
    principal: Principal,
    approve: bool,
    note: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContractOutcome:
    """
    Admin decision on a fully executed contract.

    Approve: contract signed, booking confirmed.
    Reject:  contract voided, booking cancelled (admin_rejected).
    """
    now = now or _utcnow()
    try:
        async with locked_transaction(db, "contract", contract_id):
            contract = await load(db, Contract, contract_id, for_update=True)
            if await _find_replay(db, contract_id, idempotency_key, "finalize"):
                record_contract_action("finalize", "replayed")
                return ContractOutcome(contract=contract, replayed=True)

            check_voided_contract(contract.status)
            if contract.status != "admin_review":
                raise ContractNotAwaitingFinalization()

            booking = await load(db, Booking, contract.booking_id, for_update=True)
            contract.finalized_at = now
            contract.finalized_by = principal.user_id
            contract.admin_note = note
            if approve:
                contract.status = "signed"
                booking.status = "confirmed"
            else:
                contract.status = "voided"
                contract.voided_at = now
                contract.void_reason = ADMIN_REJECT_REASON
                booking.cancel(ADMIN_REJECT_REASON, "admin", now)

            await append_contract_event(
                db,
                contract,
                "finalize",
                "admin",
                principal.user_id,
                now,
                payload={"approve": approve, "note": note},
                idempotency_key=idempotency_key,
            )
            await db.flush()
    except GigflowError as e:
        record_contract_action("finalize", "rejected")
        logger.warning("contract_action_rejected", contract_id=contract_id, action="finalize", code=e.code)
        raise

    record_contract_action("finalize", "success")
    if not approve:
        record_contract_voided(ADMIN_REJECT_REASON)
    logger.info(
        "contract_finalized",
        contract_id=contract_id,
        booking_id=contract.booking_id,
        approved=approve,
        status=contract.status,
    )
    return ContractOutcome(contract=contract)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


async def _children(db: AsyncSession, model, contract_id: int, order_by) -> list:
    result = await db.execute(select(model).where(model.contract_id == contract_id).order_by(order_by))
    return list(result.scalars().all())


async def get_contract_for_booking(
    db: AsyncSession,
    booking_id: int,
    principal: Principal,
    now: Optional[datetime] = None,
) -> ContractView:
    now = now or _utcnow()
    booking = await load(db, Booking, booking_id)
    ensure_can_view(booking, principal)
    contract = await _latest_contract(db, booking_id)
    if contract is None:
        raise NotFound(f"No contract exists for booking {booking_id}")

    view = ContractView(
        contract=contract,
        versions=await _children(db, ContractVersion, contract.id, ContractVersion.version),
        edit_requests=await _children(db, ContractEditRequest, contract.id, ContractEditRequest.id),
        signatures=await _children(db, ContractSignature, contract.id, ContractSignature.signed_at),
    )
    if contract.status == "sent" and contract.deadline_at is not None:
        view.time_remaining_seconds = max(0, int((contract.deadline_at - now).total_seconds()))

    if principal.is_admin:
        view.user_role = "admin"
        return view

    party = acting_party(booking, principal)
    open_for_party = contract.status == "sent" and not is_expired(contract.deadline_at, now)
    reviewed = getattr(contract, f"{party.value}_review_done_at") is not None
    view.user_role = party.value
    view.user_has_reviewed = reviewed
    view.user_has_accepted = getattr(contract, f"{party.value}_accepted_at") is not None
    view.user_has_signed = has_signed(contract, party)
    view.user_can_edit = (
        open_for_party and not reviewed and not getattr(contract, f"{party.value}_edit_used")
    )
    return view


async def list_contract_versions(db: AsyncSession, contract_id: int, principal: Principal) -> list:
    contract = await load(db, Contract, contract_id)
    booking = await load(db, Booking, contract.booking_id)
    ensure_can_view(booking, principal)
    return await _children(db, ContractVersion, contract_id, ContractVersion.version)


async def get_signed_copy(db: AsyncSession, contract_id: int, principal: Principal) -> str:
    contract = await load(db, Contract, contract_id)
    booking = await load(db, Booking, contract.booking_id)
    ensure_can_view(booking, principal)
    if contract.status not in ("signed", "completed"):
        raise ContractError("Signed copy is available once the contract has been finalized")
    signatures = await _children(db, ContractSignature, contract_id, ContractSignature.signed_at)
    return render_signed_copy(contract.contract_text, signatures)
