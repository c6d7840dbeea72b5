"""
Admin endpoints: finalization of fully executed contracts and the
on-demand deadline sweep.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.api.deps import idempotency_key
from gigflow.core.security import Principal, require_admin
from gigflow.db.session import get_db
from gigflow.schemas.contract import (
    ContractActionResponse,
    DeadlineSweepResponse,
    FinalizeRequest,
    VoidedContract,
)
from gigflow.services import contract_service, deadline_service

router = APIRouter(prefix="/contracts", tags=["Admin"])


@router.post("/check-deadlines", response_model=DeadlineSweepResponse)
async def check_deadlines(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Void every `sent` contract whose signing window has closed."""
    now = datetime.now(timezone.utc)
    decisions = await deadline_service.sweep_expired_contracts(db, now)
    return DeadlineSweepResponse(
        checked_at=now,
        voided=[
            VoidedContract(contract_id=d.contract_id, booking_id=d.booking_id, reason=d.cancel_reason)
            for d in decisions
        ],
    )


@router.post("/{contract_id}/finalize", response_model=ContractActionResponse)
async def finalize_contract(
    contract_id: int,
    body: FinalizeRequest,
    principal: Principal = Depends(require_admin),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    """Approve (booking confirmed) or reject (contract voided, booking cancelled)."""
    outcome = await contract_service.finalize_contract(
        db, contract_id, principal, body.approve, note=body.note, idempotency_key=key
    )
    return ContractActionResponse.model_validate(outcome)
