"""
Typed exception hierarchy for the negotiation & contract engine.

Every rejection the engine can produce is a subclass of GigflowError carrying:
  - code:        machine-readable, stable across message wording changes
  - message:     human-readable summary
  - status_code: HTTP status used by the API exception handler
  - violations:  every violated rule, for validators that collect more than one

    GigflowError
    |
    +-- NotFound
    +-- NegotiationError
    |   +-- NotYourTurn
    |   +-- MaxRoundsReached
    |   +-- NegotiationLocked
    |   +-- InvalidBookingState
    |
    +-- ContractError
    |   +-- ContractVoided
    |   +-- DeadlineExpired
    |   +-- ContractAlreadySigned
    |   +-- ContractNotAwaitingFinalization
    |   +-- EditAlreadyUsed
    |   +-- PendingEditBlocks
    |   +-- EditRequestAlreadyResolved
    |   +-- CannotRespondToOwnEdit
    |   +-- EmptyChanges
    |   +-- ContractValidationError
    |   +-- ReviewRequired
    |   +-- AcceptRequired
    |   +-- AlreadyReviewed
    |   +-- AlreadyAccepted
    |   +-- AlreadySigned
    |   +-- IncompleteSignature
    |
    +-- NotAParty
    +-- IdempotencyConflict

Domain errors are raised by the pure engine and the services; the API layer
renders them uniformly. None are retried by the engine.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Violation:
    """One broken rule. Validators return every violation, never just the first."""

    code: str
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code, "field": self.field, "message": self.message}


class GigflowError(Exception):
    code = "GIGFLOW_ERROR"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, violations: Optional[list[Violation]] = None):
        self.message = message or self.default_message
        self.violations = list(violations or [])
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "errors": [v.to_dict() for v in self.violations],
        }


class NotFound(GigflowError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class NotAParty(GigflowError):
    code = "NOT_A_PARTY"
    status_code = 403
    default_message = "You are not a party to this booking"


class IdempotencyConflict(GigflowError):
    code = "IDEMPOTENCY_CONFLICT"
    status_code = 409
    default_message = "Idempotency key was already used for a different action"


# ---------------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------------


class NegotiationError(GigflowError):
    code = "NEGOTIATION_ERROR"
    status_code = 409


class NotYourTurn(NegotiationError):
    code = "NOT_YOUR_TURN"
    default_message = "Not your turn"


class MaxRoundsReached(NegotiationError):
    code = "MAX_ROUNDS_REACHED"
    default_message = "Max rounds reached. Must Accept or Decline."


class NegotiationLocked(NegotiationError):
    code = "NEGOTIATION_LOCKED"
    default_message = "Negotiation is closed"


class InvalidBookingState(NegotiationError):
    code = "INVALID_BOOKING_STATE"
    default_message = "Booking is not in a state that allows this action"


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class ContractError(GigflowError):
    code = "CONTRACT_ERROR"
    status_code = 409


class ContractVoided(ContractError):
    code = "CONTRACT_VOIDED"
    default_message = "Contract has been voided; no further actions are allowed"


class DeadlineExpired(ContractError):
    code = "DEADLINE_EXPIRED"
    default_message = "Contract deadline has passed"


class ContractAlreadySigned(ContractError):
    code = "CONTRACT_ALREADY_SIGNED"
    default_message = "Contract is already fully signed"


class ContractNotAwaitingFinalization(ContractError):
    code = "CONTRACT_NOT_IN_ADMIN_REVIEW"
    default_message = "Contract is not awaiting admin review"


class EditAlreadyUsed(ContractError):
    code = "EDIT_ALREADY_USED"
    default_message = "You have already used your one-time edit opportunity"


class PendingEditBlocks(ContractError):
    code = "PENDING_EDIT_BLOCKS"
    default_message = "Cannot proceed while edit requests are pending"


class EditRequestAlreadyResolved(ContractError):
    code = "EDIT_REQUEST_ALREADY_RESOLVED"
    default_message = "Edit request has already been processed"


class CannotRespondToOwnEdit(ContractError):
    code = "CANNOT_RESPOND_TO_OWN_EDIT"
    status_code = 403
    default_message = "You cannot respond to your own edit request"


class EmptyChanges(ContractError):
    code = "EMPTY_CHANGES"
    status_code = 422
    default_message = "Changes are required for edit proposals"


class ContractValidationError(ContractError):
    code = "CONTRACT_VALIDATION_FAILED"
    status_code = 422
    default_message = "Invalid changes"


class ReviewRequired(ContractError):
    code = "REVIEW_REQUIRED"
    default_message = "You must complete your review before accepting"


class AcceptRequired(ContractError):
    code = "ACCEPT_REQUIRED"
    default_message = "You must accept the contract terms before signing"


class AlreadyReviewed(ContractError):
    code = "ALREADY_REVIEWED"
    default_message = "You have already completed your review"


class AlreadyAccepted(ContractError):
    code = "ALREADY_ACCEPTED"
    default_message = "You have already accepted this contract"


class AlreadySigned(ContractError):
    code = "ALREADY_SIGNED"
    default_message = "You have already signed this contract"


class IncompleteSignature(ContractError):
    code = "INCOMPLETE_SIGNATURE"
    status_code = 422
    default_message = "Signature is incomplete"
