"""
Contract document generation.

The contract text is a pure projection of (booking, terms): no clock reads,
no hidden state. Rendering the same pair twice yields the same bytes, which
lets every ContractVersion be regenerated and verified.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

from gigflow.engine.terms import build_terms

DEADLINE_HOURS = 48
INITIAL_CHANGE_SUMMARY = "Initial contract generation from negotiated terms"

RULE = "═" * 63
THIN_RULE = "─" * 63


@dataclass(frozen=True)
class InitiationBundle:
    """Everything needed to persist a freshly initiated contract."""

    contract: dict
    version: dict
    terms: dict
    contract_text: str


class ExistingContractDecision(str, Enum):
    NONE = "none"
    VOIDED = "voided"
    RETURN_EXISTING = "return_existing"


def calculate_deadline(initiated_at: datetime, hours: int = DEADLINE_HOURS) -> datetime:
    return initiated_at + timedelta(hours=hours)


def _money(amount: Any) -> str:
    value = Decimal(str(amount or 0)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{value:,}"


def _share(fee: Any, percent: Any) -> str:
    return _money(Decimal(str(fee or 0)) * Decimal(str(percent or 0)) / Decimal(100))


def _yes_no(value: Any, yes: str = "Yes", no: str = "No") -> str:
    return yes if value else no


def _humanize(value: Optional[str], fallback: str = "To be discussed") -> str:
    if not value:
        return fallback
    return str(value).replace("_", " ").title()


def _format_event_date(raw: Optional[str]) -> tuple[str, Optional[str]]:
    if not raw:
        return "To Be Determined", None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return raw, None
    return f"{parsed:%A}, {parsed:%B} {parsed.day}, {parsed.year}", f"{parsed:%H:%M}"


def _section(title: str) -> list[str]:
    return [THIN_RULE, title, THIN_RULE, ""]


def generate_contract_text(booking, terms: dict) -> str:
    """Render the human-readable contract snapshot for a terms document."""
    financial = terms.get("financial") or {}
    travel = terms.get("travel") or {}
    accommodation = terms.get("accommodation") or {}
    technical = terms.get("technical") or {}
    hospitality = terms.get("hospitality") or {}
    branding = terms.get("branding") or {}
    rights = terms.get("contentRights") or {}
    cancellation = terms.get("cancellation") or {}

    currency = terms.get("currency") or ""
    fee = terms.get("fee") or 0
    deposit = terms.get("depositPercent") or 0
    event_date, event_time = _format_event_date(terms.get("eventDate"))
    milestones = financial.get("paymentMilestones") or []

    lines = [
        RULE,
        "                    PERFORMANCE CONTRACT",
        RULE,
        "",
        f"Contract Reference: BK-{booking.id}",
        "",
        *_section("PARTIES"),
        "ARTIST (Party A):",
        f"  Name: {terms.get('artistName') or 'Artist'}",
        "",
        "PROMOTER/ORGANIZER (Party B):",
        f"  Name: {terms.get('organizerName') or 'Organizer'}",
        "",
        *_section("1. EVENT DETAILS  ★ Non-Editable Core Terms"),
        f"  Event:       {terms.get('eventTitle') or 'Performance Event'}",
        f"  Date:        {event_date}",
        f"  Time Slot:   {terms.get('slotTime') or event_time or 'TBD'}",
        f"  Venue:       {terms.get('venueName') or 'TBD'}",
        f"  Location:    {terms.get('venueAddress') or 'TBD'}",
        "",
        *_section("2. FINANCIAL TERMS  ★ Non-Editable Core Terms"),
        f"  Performance Fee:   {currency} {_money(fee)}",
        f"  Deposit:           {deposit}% ({currency} {_share(fee, deposit)})",
        f"  Balance Due:       {currency} {_share(fee, 100 - deposit)}",
        f"  Payment Method:    {_humanize(financial.get('paymentMethod'), 'Bank Transfer')}",
        "  Payment Terms:     "
        + (
            ", ".join(f"{m.get('milestone')}: {m.get('percentage')}%" for m in milestones)
            if milestones
            else "Deposit upon signing; balance 24h before event"
        ),
        "",
        *_section("3. TRAVEL ARRANGEMENTS"),
        f"  Responsibility:     {_humanize(travel.get('responsibility'))}",
        f"  Flight Class:       {_humanize(travel.get('flightClass'), 'Economy')}",
        f"  Airport Pickup:     {_yes_no(travel.get('airportPickup'), 'Provided', 'Not Provided')}",
        f"  Ground Transport:   {_humanize(travel.get('groundTransport'))}",
        "",
        *_section("4. ACCOMMODATION"),
        f"  Included:           {_yes_no(accommodation.get('included'))}",
        f"  Hotel Rating:       {accommodation.get('hotelStarRating', '-')} star",
        f"  Room Type:          {_humanize(accommodation.get('roomType'))}",
        f"  Check-in / out:     {accommodation.get('checkInTime', '-')} / {accommodation.get('checkOutTime', '-')}",
        f"  Nights:             {accommodation.get('nights', '-')}",
        "",
        *_section("5. TECHNICAL RIDER"),
        f"  Equipment:          {', '.join(technical.get('equipmentList') or []) or 'Per venue standard'}",
        f"  Backline Provided:  {', '.join(technical.get('backlineProvided') or []) or 'None'}",
        f"  Sound Check:        {technical.get('soundCheckDuration', '-')} minutes",
        f"  Stage Setup:        {technical.get('stageSetupTime', '-')} minutes",
        "",
        *_section("6. HOSPITALITY"),
        f"  Guest List:         {hospitality.get('guestListCount', 0)}",
        f"  Green Room:         {_yes_no(hospitality.get('greenRoomAccess'))}",
        f"  Meals:              {', '.join(hospitality.get('mealsProvided') or []) or 'Not provided'}",
        f"  Security:           {_humanize(hospitality.get('securityProvisions'), 'Standard')}",
        "",
        *_section("7. BRANDING & CONTENT RIGHTS"),
        f"  Logo Usage:         {_yes_no(branding.get('logoUsageAllowed'), 'Allowed', 'Not Allowed')}",
        f"  Promo Approval:     {_yes_no(branding.get('promotionalApprovalRequired'), 'Required', 'Not Required')}",
        f"  Recording:          {_yes_no(rights.get('recordingAllowed'), 'Allowed', 'Not Allowed')}",
        f"  Photography:        {_yes_no(rights.get('photographyAllowed'), 'Allowed', 'Not Allowed')}",
        f"  Videography:        {_yes_no(rights.get('videographyAllowed'), 'Allowed', 'Not Allowed')}",
        f"  Live Streaming:     {_yes_no(rights.get('liveStreamingAllowed'), 'Allowed', 'Not Allowed')}",
        f"  Social Posting:     {_yes_no(rights.get('socialMediaPostingAllowed'), 'Allowed', 'Not Allowed')}",
        "",
        *_section("8. CANCELLATION"),
        "  Artist cancels:     "
        + _penalties(cancellation.get("artistCancellationPenalties")),
        "  Organizer cancels:  "
        + _penalties(cancellation.get("organizerCancellationPenalties")),
        f"  Force Majeure:      {_humanize(cancellation.get('forceMajeureClause'), 'Standard')}",
    ]
    if cancellation.get("forceMajeureClause") == "custom" and cancellation.get("customForceMajeureText"):
        lines.append(f"    {cancellation['customForceMajeureText']}")
    lines += [
        "",
        RULE,
        f"VENUE: {terms.get('venueName') or 'TBD'}",
        RULE,
    ]
    return "\n".join(lines)


def _penalties(schedule: Optional[dict]) -> str:
    if not schedule:
        return "None"
    return ", ".join(f"{window}: {pct}%" for window, pct in schedule.items())


def build_version_one(contract_text: str, terms: dict, created_by: Optional[int] = None) -> dict:
    return {
        "version": 1,
        "contract_text": contract_text,
        "terms": terms,
        "change_summary": INITIAL_CHANGE_SUMMARY,
        "created_by": created_by,
    }


def prepare_contract_initiation(
    booking,
    now: datetime,
    deadline_hours: int = DEADLINE_HOURS,
    **terms_defaults,
) -> InitiationBundle:
    """
    Compose terms, text, contract fields and the version-1 record.

    Deterministic: identical (booking, now) inputs give identical bundles.
    """
    terms = build_terms(booking, **terms_defaults)
    contract_text = generate_contract_text(booking, terms)
    contract = {
        "booking_id": booking.id,
        "status": "sent",
        "contract_text": contract_text,
        "terms": terms,
        "current_version": 1,
        "initiated_at": now,
        "deadline_at": calculate_deadline(now, deadline_hours),
        "artist_edit_used": False,
        "promoter_edit_used": False,
        "signed_by_artist": False,
        "signed_by_promoter": False,
    }
    return InitiationBundle(
        contract=contract,
        version=build_version_one(contract_text, terms),
        terms=terms,
        contract_text=contract_text,
    )


def resolve_existing_contract(existing) -> ExistingContractDecision:
    """Idempotent initiation: reuse a live contract, allow re-initiation after a void."""
    if existing is None:
        return ExistingContractDecision.NONE
    if existing.status == "voided":
        return ExistingContractDecision.VOIDED
    return ExistingContractDecision.RETURN_EXISTING


def render_signed_copy(contract_text: str, signatures: list) -> str:
    """Append the signature block to a contract text for the signed copy download."""
    lines = [contract_text, "", RULE, "SIGNATURES", RULE, ""]
    for sig in sorted(signatures, key=lambda s: s.signed_at):
        lines += [
            f"{str(sig.role).upper()}: {sig.signature_data}",
            f"Signed at: {sig.signed_at.isoformat()}",
            f"Method: {sig.signature_type}",
            f"IP: {sig.ip_address}",
            "",
        ]
    return "\n".join(lines)
