"""
Negotiation rows: one workflow instance per booking, the immutable proposals
it produced, and the append-only event history.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)

from gigflow.db.base import Base, TimestampMixin, UTCDateTime


class NegotiationWorkflow(Base, TimestampMixin):
    __tablename__ = "negotiation_workflows"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    node = Column(String(30), nullable=False, default="WAITING_FIRST_MOVE")
    round = Column(Integer, nullable=False, default=0)
    max_rounds = Column(Integer, nullable=False, default=3)
    awaiting_party = Column(String(20), nullable=True)
    awaiting_user_id = Column(Integer, nullable=True)
    locked = Column(Boolean, nullable=False, default=False)
    deadline_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "node IN ('WAITING_FIRST_MOVE', 'AWAITING_ARTIST', 'AWAITING_ORGANIZER', "
            "'ACCEPTED', 'DECLINED')",
            name="check_workflow_node",
        ),
        CheckConstraint("round >= 0 AND round <= max_rounds", name="check_workflow_round_range"),
        # Exactly one party is awaited while open; nobody once locked
        CheckConstraint(
            "(locked AND awaiting_party IS NULL) OR (NOT locked AND awaiting_party IS NOT NULL)",
            name="check_workflow_awaiting_party",
        ),
    )

    def __repr__(self) -> str:
        return f"<NegotiationWorkflow(booking={self.booking_id}, node={self.node}, round={self.round})>"


class Proposal(Base, TimestampMixin):
    __tablename__ = "proposals"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    author_user_id = Column(Integer, nullable=False)
    author_party = Column(String(20), nullable=False)
    round = Column(Integer, nullable=False)
    proposed_terms = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="active")

    __table_args__ = (
        UniqueConstraint("booking_id", "round", name="uq_proposal_booking_round"),
    )


class NegotiationEvent(Base):
    __tablename__ = "negotiation_events"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    kind = Column(String(30), nullable=False)  # offered, counter_offered, accepted, declined
    actor_party = Column(String(20), nullable=True)
    actor_user_id = Column(Integer, nullable=True)
    round = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    idempotency_key = Column(String(100), nullable=False)
    occurred_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("booking_id", "seq", name="uq_negotiation_event_seq"),
        UniqueConstraint("booking_id", "idempotency_key", name="uq_negotiation_event_idempotency"),
        CheckConstraint(
            "kind IN ('offered', 'counter_offered', 'accepted', 'declined')",
            name="check_negotiation_event_kind",
        ),
    )
