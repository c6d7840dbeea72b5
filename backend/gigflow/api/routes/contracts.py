"""
Contract endpoints: initiation, review/edit workflow, acceptance, signing,
version history and the signed copy.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from gigflow.api.deps import client_ip, idempotency_key, user_agent
from gigflow.core.security import Principal, get_current_principal
from gigflow.db.session import get_db
from gigflow.engine.signing import SignatureData
from gigflow.schemas.contract import (
    AcceptRequest,
    ContractActionResponse,
    ContractResponse,
    ContractVersionResponse,
    ContractViewResponse,
    EditResponseRequest,
    ReviewRequest,
    SignRequest,
)
from gigflow.services import contract_service

booking_router = APIRouter(prefix="/bookings/{booking_id}/contract", tags=["Contracts"])
router = APIRouter(prefix="/contracts", tags=["Contracts"])


@booking_router.post("/initiate", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def initiate_contract(
    booking_id: int,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    """
    Generate the contract for an accepted negotiation.

    Returns the existing contract (200) if a live one is already there;
    a voided contract can be replaced by a new initiation (201).
    """
    outcome = await contract_service.initiate_contract(db, booking_id, principal, idempotency_key=key)
    if not outcome.created:
        response.status_code = status.HTTP_200_OK
    return ContractResponse.model_validate(outcome.contract)


@booking_router.get("", response_model=ContractViewResponse)
async def get_booking_contract(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    view = await contract_service.get_contract_for_booking(db, booking_id, principal)
    return ContractViewResponse.model_validate(view)


@router.post("/{contract_id}/review", response_model=ContractActionResponse)
async def review_contract(
    contract_id: int,
    body: ReviewRequest,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    """ACCEPT_AS_IS, or PROPOSE_EDITS with editable-category changes (one-time per party)."""
    outcome = await contract_service.review_contract(
        db,
        contract_id,
        principal,
        body.action,
        changes=body.changes,
        note=body.note,
        idempotency_key=key,
    )
    return ContractActionResponse.model_validate(outcome)


@router.post("/{contract_id}/edit-requests/{request_id}/respond", response_model=ContractActionResponse)
async def respond_to_edit_request(
    contract_id: int,
    request_id: int,
    body: EditResponseRequest,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    outcome = await contract_service.respond_to_edit_request(
        db,
        contract_id,
        request_id,
        principal,
        body.decision,
        response_note=body.response_note,
        idempotency_key=key,
    )
    return ContractActionResponse.model_validate(outcome)


@router.post("/{contract_id}/accept", response_model=ContractActionResponse)
async def accept_contract(
    contract_id: int,
    body: AcceptRequest,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    outcome = await contract_service.accept_contract(db, contract_id, principal, idempotency_key=key)
    return ContractActionResponse.model_validate(outcome)


@router.post("/{contract_id}/sign", response_model=ContractActionResponse)
async def sign_contract(
    contract_id: int,
    body: SignRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    key: Optional[str] = Depends(idempotency_key),
    db: AsyncSession = Depends(get_db),
):
    """Sign; IP address and user agent are captured from the request for non-repudiation."""
    signature = SignatureData(
        signature_data=body.signature_data,
        signature_type=body.signature_type,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    outcome = await contract_service.sign_contract(db, contract_id, principal, signature, idempotency_key=key)
    return ContractActionResponse.model_validate(outcome)


@router.get("/{contract_id}/versions", response_model=list[ContractVersionResponse])
async def list_versions(
    contract_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    versions = await contract_service.list_contract_versions(db, contract_id, principal)
    return [ContractVersionResponse.model_validate(v) for v in versions]


@router.get("/{contract_id}/signed-copy", response_class=PlainTextResponse)
async def download_signed_copy(
    contract_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    text = await contract_service.get_signed_copy(db, contract_id, principal)
    return PlainTextResponse(
        text,
        headers={"Content-Disposition": f'attachment; filename="contract-{contract_id}-signed.txt"'},
    )
