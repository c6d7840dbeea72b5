"""
Booking: the anchor entity a negotiation and its contract hang off.

Profile data (artist, organizer, venue) belongs to the surrounding platform;
the booking keeps the display facts it needs for contract generation as
plain columns. `final_amount` is only written by negotiation acceptance.
"""

from sqlalchemy import Column, Integer, String, JSON, CheckConstraint

from gigflow.db.base import Base, TimestampMixin, UTCDateTime

BOOKING_STATUSES = (
    "inquiry",
    "offered",
    "negotiating",
    "contracting",
    "confirmed",
    "paid_deposit",
    "scheduled",
    "completed",
    "cancelled",
)


def _in(column: str, values: tuple) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    # Parties (ids owned by the surrounding platform)
    artist_id = Column(Integer, nullable=False, index=True)
    artist_user_id = Column(Integer, nullable=False, index=True)
    organizer_id = Column(Integer, nullable=True)
    organizer_user_id = Column(Integer, nullable=False, index=True)
    venue_id = Column(Integer, nullable=True)
    event_id = Column(Integer, nullable=True)

    # Display facts used in the contract
    event_title = Column(String(255), nullable=True)
    event_date = Column(UTCDateTime, nullable=True)
    slot_time = Column(String(50), nullable=True)
    artist_name = Column(String(255), nullable=True)
    organizer_name = Column(String(255), nullable=True)
    venue_name = Column(String(255), nullable=True)
    venue_address = Column(String(500), nullable=True)

    # Money
    offer_amount = Column(Integer, nullable=True)
    offer_currency = Column(String(3), nullable=False, default="INR")
    final_amount = Column(Integer, nullable=True)
    deposit_percent = Column(Integer, nullable=False, default=30)

    status = Column(String(20), nullable=False, default="inquiry")
    offered_by = Column(String(20), nullable=False, default="promoter")  # artist, promoter
    meta = Column(JSON, nullable=False, default=dict)

    cancel_reason = Column(String(100), nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(String(50), nullable=True)  # artist, promoter, admin, system

    __table_args__ = (
        CheckConstraint(_in("status", BOOKING_STATUSES), name="check_booking_status"),
        CheckConstraint("offered_by IN ('artist', 'promoter')", name="check_booking_offered_by"),
        CheckConstraint(
            "deposit_percent >= 0 AND deposit_percent <= 100",
            name="check_booking_deposit_percent_range",
        ),
    )

    def user_id_for(self, party: str) -> int:
        return self.artist_user_id if party == "artist" else self.organizer_user_id

    def party_of(self, user_id: int):
        """Which side of the deal `user_id` is on, or None for outsiders."""
        if user_id == self.artist_user_id:
            return "artist"
        if user_id == self.organizer_user_id:
            return "promoter"
        return None

    def cancel(self, reason: str, by: str, now) -> None:
        self.status = "cancelled"
        self.cancel_reason = reason
        self.cancelled_at = now
        self.cancelled_by = by

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, offer={self.offer_amount})>"
