"""
Concurrency tests: racing actors each get their own session, and exactly
one of them wins every contested transition.

On SQLite the in-process entity lock does the serializing; with
TEST_DATABASE_URL pointing at Postgres the row locks are exercised too.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import ARTIST, PROMOTER, fetch, hours
from gigflow.core.errors import GigflowError, NegotiationLocked, NotYourTurn
from gigflow.engine.negotiation import ProposalTerms
from gigflow.engine.review import ReviewAction
from gigflow.engine.signing import SignatureData
from gigflow.models.booking import Booking
from gigflow.models.contract import Contract
from gigflow.models.negotiation import NegotiationEvent, NegotiationWorkflow, Proposal
from gigflow.services import contract_service, negotiation_service
from gigflow.services.deadline_service import sweep_expired_contracts


async def _in_session(session_factory, fn, *args, **kwargs):
    async with session_factory() as db:
        return await fn(db, *args, **kwargs)


async def _race(*coros):
    return await asyncio.gather(*coros, return_exceptions=True)


def _split(results):
    wins = [r for r in results if not isinstance(r, BaseException)]
    losses = [r for r in results if isinstance(r, BaseException)]
    return wins, losses


@pytest.mark.asyncio
async def test_double_accept_has_one_winner(session_factory, booking, db_session, frozen_now):
    await negotiation_service.open_negotiation(db_session, booking.id, ARTIST, now=frozen_now)

    results = await _race(*[
        _in_session(session_factory, negotiation_service.accept_offer, booking.id, ARTIST, now=frozen_now)
        for _ in range(5)
    ])

    wins, losses = _split(results)
    assert len(wins) == 1
    assert all(isinstance(e, NegotiationLocked) for e in losses)
    accepted = await db_session.scalar(
        select(func.count()).select_from(NegotiationEvent).where(
            NegotiationEvent.booking_id == booking.id, NegotiationEvent.kind == "accepted"
        )
    )
    assert accepted == 1


@pytest.mark.asyncio
async def test_double_proposal_from_awaited_party_has_one_winner(session_factory, booking, db_session, frozen_now):
    await negotiation_service.open_negotiation(db_session, booking.id, ARTIST, now=frozen_now)

    results = await _race(
        _in_session(session_factory, negotiation_service.propose_change, booking.id, ARTIST,
                    ProposalTerms(offer_amount=65000), now=frozen_now),
        _in_session(session_factory, negotiation_service.propose_change, booking.id, ARTIST,
                    ProposalTerms(offer_amount=70000), now=frozen_now),
    )

    wins, losses = _split(results)
    assert len(wins) == 1
    assert len(losses) == 1
    assert isinstance(losses[0], NotYourTurn)
    row = await fetch(db_session, Booking, id=booking.id)
    assert row.offer_amount == wins[0].booking.offer_amount
    proposals = await db_session.scalar(
        select(func.count()).select_from(Proposal).where(Proposal.booking_id == booking.id)
    )
    assert proposals == 1


@pytest.mark.asyncio
async def test_racing_proposals_from_both_sides_serialize(session_factory, booking, db_session, frozen_now):
    await negotiation_service.open_negotiation(db_session, booking.id, ARTIST, now=frozen_now)

    results = await _race(
        _in_session(session_factory, negotiation_service.propose_change, booking.id, ARTIST,
                    ProposalTerms(offer_amount=65000), now=frozen_now),
        _in_session(session_factory, negotiation_service.propose_change, booking.id, PROMOTER,
                    ProposalTerms(offer_amount=45000), now=frozen_now),
    )

    wins, losses = _split(results)
    row = await fetch(db_session, Booking, id=booking.id)
    workflow = await fetch(db_session, NegotiationWorkflow, booking_id=booking.id)
    if losses:
        # promoter ran first and was out of turn
        assert len(wins) == 1
        assert isinstance(losses[0], NotYourTurn)
        assert (workflow.round, row.offer_amount) == (1, 65000)
    else:
        # artist countered, then the promoter answered in turn
        assert len(wins) == 2
        assert (workflow.round, row.offer_amount) == (2, 45000)
        assert workflow.awaiting_party == "artist"


@pytest.mark.asyncio
async def test_same_key_in_parallel_applies_once(session_factory, booking, db_session, frozen_now):
    await negotiation_service.open_negotiation(db_session, booking.id, ARTIST, now=frozen_now)

    results = await _race(*[
        _in_session(session_factory, negotiation_service.propose_change, booking.id, ARTIST,
                    ProposalTerms(offer_amount=65000), idempotency_key="retry-me", now=frozen_now)
        for _ in range(4)
    ])

    wins, losses = _split(results)
    assert losses == []
    assert sum(1 for r in wins if not r.replayed) == 1
    proposals = await db_session.scalar(
        select(func.count()).select_from(Proposal).where(Proposal.booking_id == booking.id)
    )
    assert proposals == 1


@pytest.mark.asyncio
async def test_sweep_racing_final_signature_stays_consistent(
    session_factory, contracting_booking, db_session, frozen_now
):
    outcome = await contract_service.initiate_contract(db_session, contracting_booking.id, PROMOTER, now=frozen_now)
    cid = outcome.contract.id
    signature = SignatureData("sig", "typed", "10.0.0.1", "pytest")
    for principal in (ARTIST, PROMOTER):
        await contract_service.review_contract(db_session, cid, principal, ReviewAction.ACCEPT_AS_IS, now=frozen_now)
        await contract_service.accept_contract(db_session, cid, principal, now=frozen_now)
    await contract_service.sign_contract(db_session, cid, ARTIST, signature, now=frozen_now)

    at_deadline = frozen_now + hours(48)
    after_deadline = at_deadline + timedelta(seconds=1)
    results = await _race(
        _in_session(session_factory, contract_service.sign_contract, cid, PROMOTER, signature, now=at_deadline),
        _in_session(session_factory, sweep_expired_contracts, after_deadline),
    )

    for result in results:
        if isinstance(result, BaseException):
            assert isinstance(result, GigflowError)
    contract = await fetch(db_session, Contract, id=cid)
    booking = await fetch(db_session, Booking, id=contracting_booking.id)
    if contract.status == "voided":
        assert booking.status == "cancelled"
        assert contract.signed_at is None
    else:
        assert contract.status == "admin_review"
        assert booking.status == "contracting"
