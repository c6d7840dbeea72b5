"""
Negotiation endpoints: turn-based counter-offers on a booking.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.api.deps import idempotency_key
from gigflow.core.security import Principal, get_current_principal
from gigflow.db.session import get_db
from gigflow.engine.negotiation import ProposalTerms
from gigflow.schemas.negotiation import (
    NegotiationActionResponse,
    NegotiationViewResponse,
    ProposeRequest,
)
from gigflow.services import negotiation_service

router = APIRouter(prefix="/bookings/{booking_id}/negotiation", tags=["Negotiation"])


@router.post("", response_model=NegotiationActionResponse, status_code=status.HTTP_201_CREATED)
async def open_negotiation(
    booking_id: int,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    """Open the negotiation; the counterparty of the offer moves first. 200 if already open."""
    outcome = await negotiation_service.open_negotiation(db, booking_id, principal, idempotency_key=key)
    if outcome.replayed:
        response.status_code = status.HTTP_200_OK
    return NegotiationActionResponse.model_validate(outcome)


@router.get("", response_model=NegotiationViewResponse)
async def get_negotiation(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    view = await negotiation_service.get_negotiation(db, booking_id, principal)
    return NegotiationViewResponse.model_validate(view)


@router.post("/propose", response_model=NegotiationActionResponse)
async def propose(
    booking_id: int,
    body: ProposeRequest,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    """
    Counter-offer. Only the awaited party may propose, and only while
    rounds remain; at the cap only accept or decline are legal.
    """
    terms = ProposalTerms(
        offer_amount=body.offer_amount,
        currency=body.currency,
        slot_time=body.slot_time,
        message=body.message,
    )
    outcome = await negotiation_service.propose_change(db, booking_id, principal, terms, idempotency_key=key)
    return NegotiationActionResponse.model_validate(outcome)


@router.post("/accept", response_model=NegotiationActionResponse)
async def accept(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    """Accept the live offer. The booking moves to contracting with its final amount fixed."""
    outcome = await negotiation_service.accept_offer(db, booking_id, principal, idempotency_key=key)
    return NegotiationActionResponse.model_validate(outcome)


@router.post("/decline", response_model=NegotiationActionResponse)
async def decline(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    outcome = await negotiation_service.decline_offer(db, booking_id, principal, idempotency_key=key)
    return NegotiationActionResponse.model_validate(outcome)
