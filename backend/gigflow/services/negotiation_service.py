"""
Negotiation orchestration.

Each action is one locked transaction:

  1. entity lock on the booking (Redis advisory + in-process)
  2. SELECT booking and workflow FOR UPDATE
  3. idempotency check against the event log
  4. pure transition (engine.negotiation) on the freshly read state
  5. write workflow, booking, proposal and the typed event; commit

A retried call carrying the same Idempotency-Key finds its own event in step
3 and returns the current state without applying anything. A key already
spent on a different action is a conflict.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.core.config import get_settings
from gigflow.core.errors import (
    GigflowError,
    IdempotencyConflict,
    InvalidBookingState,
    NotFound,
)
from gigflow.core.logging import get_logger
from gigflow.core.metrics import record_negotiation_action
from gigflow.core.security import Principal
from gigflow.engine.negotiation import (
    NegotiationAction,
    NegotiationNode,
    NegotiationState,
    Offered,
    ProposalTerms,
    compute_transition,
    open_state,
)
from gigflow.engine.parties import Party
from gigflow.models.booking import Booking
from gigflow.models.negotiation import NegotiationEvent, NegotiationWorkflow, Proposal
from gigflow.services.lock_service import locked_transaction
from gigflow.services.repository import acting_party, ensure_can_view, load, next_seq

logger = get_logger(__name__)
settings = get_settings()

OPEN_BOOKING_STATUSES = ("inquiry", "offered", "negotiating")

EVENT_KIND_FOR_ACTION = {
    "open": "offered",
    NegotiationAction.PROPOSE_CHANGE: "counter_offered",
    NegotiationAction.ACCEPT: "accepted",
    NegotiationAction.DECLINE: "declined",
}


@dataclass
class NegotiationOutcome:
    booking: Booking
    workflow: NegotiationWorkflow
    proposal: Optional[Proposal] = None
    replayed: bool = False


@dataclass
class NegotiationView:
    booking: Booking
    workflow: NegotiationWorkflow
    proposals: list
    history: list


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def state_of(workflow: NegotiationWorkflow) -> NegotiationState:
    return NegotiationState(
        node=NegotiationNode(workflow.node),
        round=workflow.round,
        turn=Party(workflow.awaiting_party) if workflow.awaiting_party else None,
        max_rounds=workflow.max_rounds,
        deadline_at=workflow.deadline_at,
    )


def _store_state(workflow: NegotiationWorkflow, state: NegotiationState, booking: Booking) -> None:
    workflow.node = state.node.value
    workflow.round = state.round
    workflow.max_rounds = state.max_rounds
    workflow.awaiting_party = state.turn.value if state.turn else None
    workflow.awaiting_user_id = booking.user_id_for(state.turn.value) if state.turn else None
    workflow.locked = state.locked
    workflow.deadline_at = state.deadline_at


async def _load_workflow(db: AsyncSession, booking_id: int, for_update: bool = False) -> Optional[NegotiationWorkflow]:
    stmt = select(NegotiationWorkflow).where(NegotiationWorkflow.booking_id == booking_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _find_replay(
    db: AsyncSession, booking_id: int, idempotency_key: Optional[str], action
) -> Optional[NegotiationEvent]:
    if not idempotency_key:
        return None
    result = await db.execute(
        select(NegotiationEvent).where(
            NegotiationEvent.booking_id == booking_id,
            NegotiationEvent.idempotency_key == idempotency_key,
        )
    )
    event = result.scalar_one_or_none()
    if event is not None and event.kind != EVENT_KIND_FOR_ACTION[action]:
        raise IdempotencyConflict(
            f"Idempotency key already used for '{event.kind}' on booking {booking_id}"
        )
    return event


async def _append_event(
    db: AsyncSession,
    booking_id: int,
    event_data,
    actor_user_id: Optional[int],
    round_: int,
    idempotency_key: Optional[str],
    now: datetime,
) -> NegotiationEvent:
    event = NegotiationEvent(
        booking_id=booking_id,
        seq=await next_seq(db, NegotiationEvent, NegotiationEvent.booking_id, booking_id),
        kind=event_data.kind,
        actor_party=event_data.by.value,
        actor_user_id=actor_user_id,
        round=round_,
        payload=event_data.payload(),
        idempotency_key=idempotency_key or uuid.uuid4().hex,
        occurred_at=now,
    )
    db.add(event)
    return event


async def _latest_proposal(db: AsyncSession, booking_id: int) -> Optional[Proposal]:
    result = await db.execute(
        select(Proposal)
        .where(Proposal.booking_id == booking_id)
        .order_by(Proposal.round.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def open_negotiation(
    db: AsyncSession,
    booking_id: int,
    principal: Principal,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NegotiationOutcome:
    """
    Create the workflow instance for a booking.

    The first move belongs to the counterparty of whoever made the offer.
    Idempotent: an existing instance is returned unchanged.
    """
    now = now or _utcnow()
    async with locked_transaction(db, "booking", booking_id):
        booking = await load(db, Booking, booking_id, for_update=True)
        acting_party(booking, principal)

        workflow = await _load_workflow(db, booking_id, for_update=True)
        if workflow is not None:
            record_negotiation_action("open", "replayed")
            return NegotiationOutcome(booking=booking, workflow=workflow, replayed=True)

        if booking.status not in ("inquiry", "offered"):
            raise InvalidBookingState(
                f"Cannot open negotiation for a booking in status '{booking.status}'"
            )

        offered_by = Party(booking.offered_by)
        state = open_state(
            offered_by.other,
            now,
            max_rounds=settings.NEGOTIATION_MAX_ROUNDS,
            turn_hours=settings.NEGOTIATION_TURN_HOURS,
        )
        workflow = NegotiationWorkflow(booking_id=booking_id)
        _store_state(workflow, state, booking)
        db.add(workflow)

        if booking.status == "inquiry":
            booking.status = "offered"

        await _append_event(
            db,
            booking_id,
            Offered(by=offered_by, amount=booking.offer_amount, currency=booking.offer_currency),
            actor_user_id=booking.user_id_for(offered_by.value),
            round_=0,
            idempotency_key=idempotency_key,
            now=now,
        )
        await db.flush()

    record_negotiation_action("open", "success")
    logger.info(
        "negotiation_opened",
        booking_id=booking_id,
        awaiting=workflow.awaiting_party,
        deadline_at=workflow.deadline_at.isoformat(),
    )
    return NegotiationOutcome(booking=booking, workflow=workflow)


async def _act(
    db: AsyncSession,
    booking_id: int,
    principal: Principal,
    action: NegotiationAction,
    terms: Optional[ProposalTerms],
    idempotency_key: Optional[str],
    now: datetime,
) -> NegotiationOutcome:
    label = action.value.lower()
    try:
        async with locked_transaction(db, "booking", booking_id):
            booking = await load(db, Booking, booking_id, for_update=True)
            party = acting_party(booking, principal)

            workflow = await _load_workflow(db, booking_id, for_update=True)
            if workflow is None:
                raise NotFound(f"No negotiation has been opened for booking {booking_id}")

            if await _find_replay(db, booking_id, idempotency_key, action):
                record_negotiation_action(label, "replayed")
                proposal = await _latest_proposal(db, booking_id) if terms is not None else None
                return NegotiationOutcome(booking, workflow, proposal=proposal, replayed=True)

            state = state_of(workflow)
            if not state.locked and booking.status not in OPEN_BOOKING_STATUSES:
                raise InvalidBookingState(
                    f"Booking is '{booking.status}'; negotiation actions are closed"
                )

            pre_round = state.round
            transition = compute_transition(
                state,
                action,
                party,
                now,
                terms=terms,
                current_amount=booking.offer_amount,
                current_currency=booking.offer_currency,
                turn_hours=settings.NEGOTIATION_TURN_HOURS,
            )

            _store_state(workflow, transition.state, booking)

            proposal = None
            if transition.creates_proposal:
                proposal = Proposal(
                    booking_id=booking_id,
                    author_user_id=principal.user_id,
                    author_party=party.value,
                    round=transition.state.round,
                    proposed_terms=terms.to_dict(),
                    status="active",
                )
                db.add(proposal)
                if transition.offer_amount is not None:
                    booking.offer_amount = transition.offer_amount
                if terms.currency:
                    booking.offer_currency = terms.currency
                if terms.slot_time:
                    booking.slot_time = terms.slot_time

            if transition.booking_status == "cancelled":
                booking.cancel("negotiation_declined", party.value, now)
            else:
                booking.status = transition.booking_status
            if transition.final_amount is not None:
                booking.final_amount = transition.final_amount

            await _append_event(
                db,
                booking_id,
                transition.event,
                actor_user_id=principal.user_id,
                round_=pre_round,
                idempotency_key=idempotency_key,
                now=now,
            )
            await db.flush()
    except GigflowError as e:
        record_negotiation_action(label, "rejected")
        logger.warning("negotiation_action_rejected", booking_id=booking_id, action=label, code=e.code)
        raise

    record_negotiation_action(label, "success")
    logger.info(
        f"negotiation_{transition.event.kind}",
        booking_id=booking_id,
        by=party.value,
        round=workflow.round,
        node=workflow.node,
        booking_status=booking.status,
    )
    return NegotiationOutcome(booking=booking, workflow=workflow, proposal=proposal)


async def propose_change(
    db: AsyncSession,
    booking_id: int,
    principal: Principal,
    terms: ProposalTerms,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NegotiationOutcome:
    return await _act(
        db, booking_id, principal, NegotiationAction.PROPOSE_CHANGE, terms, idempotency_key, now or _utcnow()
    )


async def accept_offer(
    db: AsyncSession,
    booking_id: int,
    principal: Principal,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NegotiationOutcome:
    return await _act(
        db, booking_id, principal, NegotiationAction.ACCEPT, None, idempotency_key, now or _utcnow()
    )


async def decline_offer(
    db: AsyncSession,
    booking_id: int,
    principal: Principal,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NegotiationOutcome:
    return await _act(
        db, booking_id, principal, NegotiationAction.DECLINE, None, idempotency_key, now or _utcnow()
    )


async def get_negotiation(db: AsyncSession, booking_id: int, principal: Principal) -> NegotiationView:
    booking = await load(db, Booking, booking_id)
    ensure_can_view(booking, principal)
    workflow = await _load_workflow(db, booking_id)
    if workflow is None:
        raise NotFound(f"No negotiation has been opened for booking {booking_id}")

    proposals = await db.execute(
        select(Proposal).where(Proposal.booking_id == booking_id).order_by(Proposal.round)
    )
    history = await db.execute(
        select(NegotiationEvent)
        .where(NegotiationEvent.booking_id == booking_id)
        .order_by(NegotiationEvent.seq)
    )
    return NegotiationView(
        booking=booking,
        workflow=workflow,
        proposals=list(proposals.scalars().all()),
        history=list(history.scalars().all()),
    )
