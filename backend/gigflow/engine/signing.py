"""
Signature and finalization gate.

Per party, independently: review -> accept -> sign. When the second party
signs, the contract is fully executed and moves to admin_review; which party
completes execution depends only on who signs last.
"""

from dataclasses import dataclass
from typing import Optional

from gigflow.core.errors import AcceptRequired, ReviewRequired, Violation
from gigflow.engine.parties import Party

SIGNATURE_TYPES = ("drawn", "typed", "uploaded")


@dataclass(frozen=True)
class SignatureData:
    signature_data: Optional[str]
    signature_type: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]


@dataclass(frozen=True)
class DualSignatureResult:
    fully_executed: bool
    new_status: Optional[str] = None
    should_set_signed_at: bool = False


def check_review_before_accept(contract, party: Party) -> None:
    if getattr(contract, f"{party.value}_review_done_at") is None:
        raise ReviewRequired()


def check_accept_before_sign(contract, party: Party) -> None:
    if getattr(contract, f"{party.value}_accepted_at") is None:
        raise AcceptRequired()


def validate_signature_data(sig: SignatureData) -> list[Violation]:
    violations = []
    if not sig.signature_data:
        violations.append(
            Violation("MISSING_FIELD", "signature_data", "Signature data is required")
        )
    if sig.signature_type not in SIGNATURE_TYPES:
        violations.append(
            Violation(
                "MISSING_FIELD",
                "signature_type",
                "Signature type must be one of: drawn, typed, uploaded",
            )
        )
    if not sig.ip_address:
        violations.append(Violation("MISSING_FIELD", "ip_address", "IP address is required"))
    if not sig.user_agent:
        violations.append(Violation("MISSING_FIELD", "user_agent", "User agent is required"))
    return violations


def has_signed(contract, party: Party) -> bool:
    return bool(getattr(contract, f"signed_by_{party.value}"))


def check_dual_signature(contract, signing_party: Party) -> DualSignatureResult:
    if has_signed(contract, signing_party.other):
        return DualSignatureResult(
            fully_executed=True,
            new_status="admin_review",
            should_set_signed_at=True,
        )
    return DualSignatureResult(fully_executed=False)
