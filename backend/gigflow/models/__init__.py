from gigflow.models.booking import Booking
from gigflow.models.negotiation import NegotiationEvent, NegotiationWorkflow, Proposal
from gigflow.models.contract import (
    Contract,
    ContractEditRequest,
    ContractEvent,
    ContractSignature,
    ContractVersion,
)

__all__ = [
    "Booking",
    "NegotiationWorkflow",
    "Proposal",
    "NegotiationEvent",
    "Contract",
    "ContractVersion",
    "ContractEditRequest",
    "ContractSignature",
    "ContractEvent",
]
