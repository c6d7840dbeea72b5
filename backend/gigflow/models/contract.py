"""
Contract rows.

A booking has at most one live (non-voided) contract; voided ones are kept
for history. Versions, signatures and events are append-only: rows are
inserted and never updated. Edit requests are the one child row that
changes, exactly once, from pending to approved or rejected.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from gigflow.db.base import Base, TimestampMixin, UTCDateTime

CONTRACT_STATUSES = (
    "draft",
    "sent",
    "signed_by_artist",
    "signed_by_promoter",
    "signed",
    "admin_review",
    "voided",
    "completed",
)

# Fully executed or past it: no party action applies any more
EXECUTED_STATUSES = ("admin_review", "signed", "completed")


class Contract(Base, TimestampMixin):
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="draft")
    contract_text = Column(Text, nullable=False)
    terms = Column(JSON, nullable=False)
    current_version = Column(Integer, nullable=False, default=1)

    initiated_at = Column(UTCDateTime, nullable=False)
    deadline_at = Column(UTCDateTime, nullable=True)

    # Review -> accept -> sign, per party
    artist_review_done_at = Column(UTCDateTime, nullable=True)
    promoter_review_done_at = Column(UTCDateTime, nullable=True)
    artist_edit_used = Column(Boolean, nullable=False, default=False)
    promoter_edit_used = Column(Boolean, nullable=False, default=False)
    artist_accepted_at = Column(UTCDateTime, nullable=True)
    promoter_accepted_at = Column(UTCDateTime, nullable=True)
    signed_by_artist = Column(Boolean, nullable=False, default=False)
    signed_by_promoter = Column(Boolean, nullable=False, default=False)
    artist_signed_at = Column(UTCDateTime, nullable=True)
    promoter_signed_at = Column(UTCDateTime, nullable=True)

    signed_at = Column(UTCDateTime, nullable=True)
    finalized_at = Column(UTCDateTime, nullable=True)
    finalized_by = Column(Integer, nullable=True)
    admin_note = Column(Text, nullable=True)
    voided_at = Column(UTCDateTime, nullable=True)
    void_reason = Column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in CONTRACT_STATUSES) + ")",
            name="check_contract_status",
        ),
        CheckConstraint("current_version >= 1", name="check_contract_version_positive"),
        Index("ix_contracts_status_deadline", "status", "deadline_at"),
    )

    def __repr__(self) -> str:
        return f"<Contract(id={self.id}, booking={self.booking_id}, status={self.status}, v={self.current_version})>"


class ContractVersion(Base):
    __tablename__ = "contract_versions"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    contract_text = Column(Text, nullable=False)
    terms = Column(JSON, nullable=False)
    change_summary = Column(String(500), nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("contract_id", "version", name="uq_contract_version"),
    )


class ContractEditRequest(Base, TimestampMixin):
    __tablename__ = "contract_edit_requests"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)
    requested_by = Column(Integer, nullable=False)
    requested_by_role = Column(String(20), nullable=False)
    changes = Column(JSON, nullable=False)
    note = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    responded_by = Column(Integer, nullable=True)
    responded_at = Column(UTCDateTime, nullable=True)
    response_note = Column(Text, nullable=True)
    resulting_version = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="check_edit_request_status"
        ),
        CheckConstraint(
            "requested_by_role IN ('artist', 'promoter')", name="check_edit_request_role"
        ),
    )


class ContractSignature(Base):
    __tablename__ = "contract_signatures"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    role = Column(String(20), nullable=False)
    signature_data = Column(Text, nullable=False)
    signature_type = Column(String(20), nullable=False)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(String(500), nullable=False)
    signed_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("contract_id", "role", name="uq_contract_signature_role"),
        CheckConstraint(
            "signature_type IN ('drawn', 'typed', 'uploaded')", name="check_signature_type"
        ),
    )


class ContractEvent(Base):
    __tablename__ = "contract_events"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    action = Column(String(30), nullable=False)
    actor_role = Column(String(20), nullable=False)  # artist, promoter, admin, system
    actor_user_id = Column(Integer, nullable=True)
    version = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    idempotency_key = Column(String(100), nullable=False)
    occurred_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("contract_id", "seq", name="uq_contract_event_seq"),
        UniqueConstraint("contract_id", "idempotency_key", name="uq_contract_event_idempotency"),
    )
