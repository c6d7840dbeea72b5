from gigflow.schemas.negotiation import (
    ProposeRequest,
    NegotiationActionResponse,
    NegotiationViewResponse,
)
from gigflow.schemas.contract import (
    ReviewRequest,
    EditResponseRequest,
    AcceptRequest,
    SignRequest,
    FinalizeRequest,
    ContractActionResponse,
    ContractResponse,
    ContractVersionResponse,
    ContractViewResponse,
    DeadlineSweepResponse,
)

__all__ = [
    "ProposeRequest", "NegotiationActionResponse", "NegotiationViewResponse",
    "ReviewRequest", "EditResponseRequest", "AcceptRequest", "SignRequest", "FinalizeRequest",
    "ContractActionResponse", "ContractResponse", "ContractVersionResponse",
    "ContractViewResponse", "DeadlineSweepResponse",
]
