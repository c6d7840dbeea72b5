"""
Deadline sweep: voids `sent` contracts whose signing window has closed and
cancels their bookings.

Candidates are selected without locks, then each one is re-read under its
contract lock and re-checked, so a party signing in the same instant either
commits first (the sweep then sees a non-`sent` status and skips it) or
finds the contract already voided.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.core.config import get_settings
from gigflow.core.logging import get_logger
from gigflow.core.metrics import deadline_sweep_duration, record_contract_voided
from gigflow.engine.deadlines import DeadlineDecision, compute_deadline_enforcement
from gigflow.models.booking import Booking
from gigflow.models.contract import Contract
from gigflow.services.contract_service import append_contract_event
from gigflow.services.lock_service import locked_transaction
from gigflow.services.repository import load

logger = get_logger(__name__)
settings = get_settings()


async def _void_if_expired(db: AsyncSession, contract_id: int, now: datetime) -> DeadlineDecision:
    async with locked_transaction(db, "contract", contract_id):
        contract = await load(db, Contract, contract_id, for_update=True)
        decision = compute_deadline_enforcement(contract, now)
        if not decision.should_void:
            return decision

        booking = await load(db, Booking, contract.booking_id, for_update=True)
        contract.status = decision.new_contract_status
        contract.voided_at = now
        contract.void_reason = decision.cancel_reason
        booking.cancel(decision.cancel_reason, "system", now)
        await append_contract_event(
            db,
            contract,
            "void",
            "system",
            None,
            now,
            payload={"reason": decision.cancel_reason},
        )
    return decision


async def sweep_expired_contracts(db: AsyncSession, now: Optional[datetime] = None) -> list[DeadlineDecision]:
    """Void every expired `sent` contract. Returns the decisions that voided something."""
    now = now or datetime.now(timezone.utc)
    start = time.perf_counter()

    result = await db.execute(
        select(Contract.id)
        .where(Contract.status == "sent", Contract.deadline_at < now)
        .order_by(Contract.id)
    )
    candidate_ids = list(result.scalars().all())

    voided = []
    for contract_id in candidate_ids:
        decision = await _void_if_expired(db, contract_id, now)
        if decision.should_void:
            voided.append(decision)
            record_contract_voided(decision.cancel_reason)
            logger.info(
                "contract_voided_deadline",
                contract_id=decision.contract_id,
                booking_id=decision.booking_id,
                reason=decision.cancel_reason,
            )

    deadline_sweep_duration.observe(time.perf_counter() - start)
    logger.info("deadline_sweep_completed", candidates=len(candidate_ids), voided=len(voided))
    return voided


async def run_deadline_sweeper(
    session_factory: Callable[[], AsyncSession],
    interval_seconds: Optional[int] = None,
) -> None:
    """Background loop started from the app lifespan; cancelled on shutdown."""
    interval = interval_seconds or settings.DEADLINE_SWEEP_INTERVAL_SECONDS
    logger.info("deadline_sweeper_started", interval_seconds=interval)
    while True:
        try:
            async with session_factory() as db:
                await sweep_expired_contracts(db)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # One failed sweep must not stop the loop; the next run retries
            logger.error("deadline_sweep_failed", error=str(e), exc_info=True)
        await asyncio.sleep(interval)
