"""
Contract terms model.

A terms document is a plain JSON-shaped dict with two partitions:

  Locked facts (fixed when the negotiation is accepted, never editable):
    fee, currency, depositPercent, eventTitle, eventDate, slotTime,
    venueName, venueAddress, artistName, organizerName

  Editable categories (renegotiable through the one-time edit workflow):
    financial, travel, accommodation, technical, hospitality,
    branding, contentRights, cancellation

Each editable category has its own merge function. A category merge only
accepts the keys that category defines, so a change set can never reach a
locked fact through a category, and unknown keys are dropped.
"""

import copy
from datetime import date, datetime
from typing import Any, Callable, Optional

DEFAULT_CURRENCY = "INR"
DEFAULT_DEPOSIT_PERCENT = 30

LOCKED_FACTS = (
    "fee",
    "currency",
    "depositPercent",
    "eventTitle",
    "eventDate",
    "slotTime",
    "venueName",
    "venueAddress",
    "artistName",
    "organizerName",
)

# Field names a change set may never carry at the top level
LOCKED_FIELDS = (
    "fee",
    "totalFee",
    "currency",
    "eventDate",
    "eventTime",
    "slotType",
    "venueName",
    "artistName",
    "organizerName",
    "performanceDuration",
    "platformCommission",
)

CATEGORY_FIELDS: dict[str, tuple[str, ...]] = {
    "financial": ("paymentMethod", "paymentMilestones", "bankDetails"),
    "travel": ("responsibility", "flightClass", "airportPickup", "groundTransport"),
    "accommodation": (
        "included",
        "hotelStarRating",
        "roomType",
        "checkInTime",
        "checkOutTime",
        "nights",
    ),
    "technical": ("equipmentList", "soundCheckDuration", "backlineProvided", "stageSetupTime"),
    "hospitality": ("guestListCount", "greenRoomAccess", "mealsProvided", "securityProvisions"),
    "branding": (
        "logoUsageAllowed",
        "promotionalApprovalRequired",
        "socialMediaGuidelines",
        "pressRequirements",
    ),
    "contentRights": (
        "recordingAllowed",
        "photographyAllowed",
        "videographyAllowed",
        "liveStreamingAllowed",
        "socialMediaPostingAllowed",
    ),
    "cancellation": (
        "artistCancellationPenalties",
        "organizerCancellationPenalties",
        "forceMajeureClause",
        "customForceMajeureText",
    ),
}

EDITABLE_CATEGORIES = tuple(CATEGORY_FIELDS)


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def build_terms(
    booking,
    default_currency: str = DEFAULT_CURRENCY,
    default_deposit_percent: int = DEFAULT_DEPOSIT_PERCENT,
) -> dict:
    """
    Build the structured terms document for a booking.

    Locked facts come from the negotiated booking; editable categories are
    pre-populated from the booking's metadata blob with sane defaults.
    Pure: the same booking always yields an equal document.
    """
    meta = dict(getattr(booking, "meta", None) or {})
    fee = getattr(booking, "final_amount", None) or getattr(booking, "offer_amount", None) or 0
    deposit = getattr(booking, "deposit_percent", None) or default_deposit_percent

    return {
        # Locked facts
        "fee": fee,
        "currency": getattr(booking, "offer_currency", None) or default_currency,
        "depositPercent": deposit,
        "eventTitle": getattr(booking, "event_title", None) or "",
        "eventDate": _iso(getattr(booking, "event_date", None)),
        "slotTime": getattr(booking, "slot_time", None),
        "venueName": getattr(booking, "venue_name", None) or "",
        "venueAddress": getattr(booking, "venue_address", None) or "",
        "artistName": getattr(booking, "artist_name", None) or "",
        "organizerName": getattr(booking, "organizer_name", None) or "",
        # Editable categories
        "financial": {
            "paymentMethod": meta.get("paymentMethod") or "bank_transfer",
            "paymentMilestones": meta.get("paymentMilestones") or [
                {"milestone": "deposit", "percentage": deposit, "dueDate": "upon_signing"},
                {"milestone": "pre_event", "percentage": 100 - deposit, "dueDate": "24h_before"},
            ],
        },
        "travel": {
            "responsibility": "organizer" if meta.get("travelProvided") else "artist",
            "flightClass": meta.get("flightClass") or "economy",
            "airportPickup": bool(meta.get("airportPickup", False)),
            "groundTransport": meta.get("groundTransport") or "not_provided",
        },
        "accommodation": {
            "included": bool(meta.get("accommodationProvided", False)),
            "hotelStarRating": meta.get("hotelStarRating") or 3,
            "roomType": meta.get("roomType") or "single",
            "checkInTime": "14:00",
            "checkOutTime": "12:00",
            "nights": meta.get("nights") or 1,
        },
        "technical": {
            "equipmentList": list(meta.get("equipmentList") or []),
            "soundCheckDuration": meta.get("soundCheckDuration") or 60,
            "backlineProvided": list(meta.get("backlineProvided") or []),
            "stageSetupTime": meta.get("stageSetupTime") or 30,
        },
        "hospitality": {
            "guestListCount": meta.get("guestListCount") or 2,
            "greenRoomAccess": bool(meta.get("greenRoom", False)),
            "mealsProvided": ["dinner", "drinks"] if meta.get("mealsProvided") else [],
            "securityProvisions": "standard",
        },
        "branding": {
            "logoUsageAllowed": True,
            "promotionalApprovalRequired": True,
            "socialMediaGuidelines": "",
            "pressRequirements": "",
        },
        "contentRights": {
            "recordingAllowed": False,
            "photographyAllowed": True,
            "videographyAllowed": False,
            "liveStreamingAllowed": False,
            "socialMediaPostingAllowed": True,
        },
        "cancellation": {
            "artistCancellationPenalties": {
                "moreThan90Days": 0,
                "between30And90Days": 20,
                "lessThan30Days": 50,
            },
            "organizerCancellationPenalties": {
                "moreThan30Days": 20,
                "between15And30Days": 50,
                "lessThan15Days": 100,
            },
            "forceMajeureClause": "standard",
            "customForceMajeureText": "",
        },
    }


def locked_facts(terms: dict) -> dict:
    return {key: terms.get(key) for key in LOCKED_FACTS}


# ---------------------------------------------------------------------------
# Per-category merges
# ---------------------------------------------------------------------------


def _category_merger(category: str) -> Callable[[dict, dict], dict]:
    fields = CATEGORY_FIELDS[category]

    def merge(current: Optional[dict], changes: dict) -> dict:
        merged = copy.deepcopy(current or {})
        for key in fields:
            if key in changes:
                merged[key] = copy.deepcopy(changes[key])
        return merged

    merge.__name__ = f"merge_{category}"
    merge.__doc__ = f"Shallow-merge a {category} change set; untouched {category} keys survive."
    return merge


merge_financial = _category_merger("financial")
merge_travel = _category_merger("travel")
merge_accommodation = _category_merger("accommodation")
merge_technical = _category_merger("technical")
merge_hospitality = _category_merger("hospitality")
merge_branding = _category_merger("branding")
merge_content_rights = _category_merger("contentRights")
merge_cancellation = _category_merger("cancellation")

CATEGORY_MERGES: dict[str, Callable[[dict, dict], dict]] = {
    "financial": merge_financial,
    "travel": merge_travel,
    "accommodation": merge_accommodation,
    "technical": merge_technical,
    "hospitality": merge_hospitality,
    "branding": merge_branding,
    "contentRights": merge_content_rights,
    "cancellation": merge_cancellation,
}


def apply_contract_changes(current_terms: dict, changes: dict) -> dict:
    """
    Merge an editable-only change set into a terms document.

    Never mutates current_terms. Locked facts and anything outside the
    editable categories pass through unchanged.
    """
    merged = copy.deepcopy(current_terms)
    for category, merge in CATEGORY_MERGES.items():
        category_changes = changes.get(category)
        if isinstance(category_changes, dict) and category_changes:
            merged[category] = merge(current_terms.get(category), category_changes)
    return merged
