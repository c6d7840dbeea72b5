"""
Pydantic schemas for contract request/response validation.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from gigflow.engine.review import EditDecision, ReviewAction


class ReviewRequest(BaseModel):
    action: ReviewAction
    changes: Optional[dict[str, Any]] = None
    note: Optional[str] = Field(default=None, max_length=2000)


class EditResponseRequest(BaseModel):
    decision: EditDecision
    response_note: Optional[str] = Field(default=None, max_length=2000)


class AcceptRequest(BaseModel):
    agreed: Literal[True]


class SignRequest(BaseModel):
    # Completeness is checked by the signing gate so every missing field is reported at once
    signature_data: Optional[str] = None
    signature_type: Optional[str] = None


class FinalizeRequest(BaseModel):
    approve: bool
    note: Optional[str] = Field(default=None, max_length=2000)


class ContractResponse(BaseModel):
    id: int
    booking_id: int
    status: str
    contract_text: str
    terms: dict[str, Any]
    current_version: int
    initiated_at: datetime
    deadline_at: Optional[datetime]
    artist_review_done_at: Optional[datetime]
    promoter_review_done_at: Optional[datetime]
    artist_edit_used: bool
    promoter_edit_used: bool
    artist_accepted_at: Optional[datetime]
    promoter_accepted_at: Optional[datetime]
    signed_by_artist: bool
    signed_by_promoter: bool
    signed_at: Optional[datetime]
    finalized_at: Optional[datetime]
    voided_at: Optional[datetime]
    void_reason: Optional[str]

    model_config = {"from_attributes": True}


class ContractVersionResponse(BaseModel):
    version: int
    contract_text: str
    terms: dict[str, Any]
    change_summary: Optional[str]
    created_by: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class EditRequestResponse(BaseModel):
    id: int
    contract_id: int
    requested_by: int
    requested_by_role: str
    changes: dict[str, Any]
    note: Optional[str]
    status: str
    responded_by: Optional[int]
    responded_at: Optional[datetime]
    response_note: Optional[str]
    resulting_version: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class SignatureResponse(BaseModel):
    role: str
    user_id: int
    signature_type: str
    ip_address: str
    user_agent: str
    signed_at: datetime

    model_config = {"from_attributes": True}


class ContractActionResponse(BaseModel):
    contract: ContractResponse
    edit_request: Optional[EditRequestResponse] = None
    version: Optional[ContractVersionResponse] = None
    signature: Optional[SignatureResponse] = None
    fully_executed: bool = False
    replayed: bool = False

    model_config = {"from_attributes": True}


class ContractViewResponse(BaseModel):
    contract: ContractResponse
    versions: list[ContractVersionResponse]
    edit_requests: list[EditRequestResponse]
    signatures: list[SignatureResponse]
    user_role: Optional[str]
    user_can_edit: bool
    user_has_reviewed: bool
    user_has_accepted: bool
    user_has_signed: bool
    time_remaining_seconds: Optional[int]

    model_config = {"from_attributes": True}


class VoidedContract(BaseModel):
    contract_id: int
    booking_id: int
    reason: str


class DeadlineSweepResponse(BaseModel):
    checked_at: datetime
    voided: list[VoidedContract]
