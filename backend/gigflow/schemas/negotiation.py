"""
Pydantic schemas for negotiation request/response validation.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ProposeRequest(BaseModel):
    offer_amount: Optional[int] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    slot_time: Optional[str] = Field(default=None, max_length=50)
    message: Optional[str] = Field(default=None, max_length=2000)


class BookingSummary(BaseModel):
    id: int
    status: str
    offer_amount: Optional[int]
    offer_currency: str
    final_amount: Optional[int]
    deposit_percent: int
    slot_time: Optional[str]
    cancel_reason: Optional[str]
    cancelled_at: Optional[datetime]
    cancelled_by: Optional[str]

    model_config = {"from_attributes": True}


class WorkflowResponse(BaseModel):
    booking_id: int
    node: str
    round: int
    max_rounds: int
    awaiting_party: Optional[str]
    awaiting_user_id: Optional[int]
    locked: bool
    deadline_at: Optional[datetime]

    model_config = {"from_attributes": True}


class ProposalResponse(BaseModel):
    id: int
    booking_id: int
    author_user_id: int
    author_party: str
    round: int
    proposed_terms: dict[str, Any]
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class NegotiationEventResponse(BaseModel):
    seq: int
    kind: str
    actor_party: Optional[str]
    actor_user_id: Optional[int]
    round: int
    payload: dict[str, Any]
    idempotency_key: str
    occurred_at: datetime

    model_config = {"from_attributes": True}


class NegotiationActionResponse(BaseModel):
    booking: BookingSummary
    workflow: WorkflowResponse
    proposal: Optional[ProposalResponse] = None
    replayed: bool = False

    model_config = {"from_attributes": True}


class NegotiationViewResponse(BaseModel):
    booking: BookingSummary
    workflow: WorkflowResponse
    proposals: list[ProposalResponse]
    history: list[NegotiationEventResponse]

    model_config = {"from_attributes": True}
