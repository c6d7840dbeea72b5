"""Initial schema: bookings, negotiation workflow/proposals/events, contracts and their children.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("artist_id", sa.Integer(), nullable=False),
        sa.Column("artist_user_id", sa.Integer(), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=True),
        sa.Column("organizer_user_id", sa.Integer(), nullable=False),
        sa.Column("venue_id", sa.Integer(), nullable=True),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("event_title", sa.String(255), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("slot_time", sa.String(50), nullable=True),
        sa.Column("artist_name", sa.String(255), nullable=True),
        sa.Column("organizer_name", sa.String(255), nullable=True),
        sa.Column("venue_name", sa.String(255), nullable=True),
        sa.Column("venue_address", sa.String(500), nullable=True),
        sa.Column("offer_amount", sa.Integer(), nullable=True),
        sa.Column("offer_currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("final_amount", sa.Integer(), nullable=True),
        sa.Column("deposit_percent", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("status", sa.String(20), nullable=False, server_default="inquiry"),
        sa.Column("offered_by", sa.String(20), nullable=False, server_default="promoter"),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("cancel_reason", sa.String(100), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(50), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('inquiry', 'offered', 'negotiating', 'contracting', 'confirmed', "
            "'paid_deposit', 'scheduled', 'completed', 'cancelled')",
            name="check_booking_status",
        ),
        sa.CheckConstraint("offered_by IN ('artist', 'promoter')", name="check_booking_offered_by"),
        sa.CheckConstraint(
            "deposit_percent >= 0 AND deposit_percent <= 100",
            name="check_booking_deposit_percent_range",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_artist_id", "bookings", ["artist_id"])
    op.create_index("ix_bookings_artist_user_id", "bookings", ["artist_user_id"])
    op.create_index("ix_bookings_organizer_user_id", "bookings", ["organizer_user_id"])

    # Negotiation workflow: one per booking
    op.create_table(
        "negotiation_workflows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False, unique=True),
        sa.Column("node", sa.String(30), nullable=False, server_default="WAITING_FIRST_MOVE"),
        sa.Column("round", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_rounds", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("awaiting_party", sa.String(20), nullable=True),
        sa.Column("awaiting_user_id", sa.Integer(), nullable=True),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deadline_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "node IN ('WAITING_FIRST_MOVE', 'AWAITING_ARTIST', 'AWAITING_ORGANIZER', "
            "'ACCEPTED', 'DECLINED')",
            name="check_workflow_node",
        ),
        sa.CheckConstraint("round >= 0 AND round <= max_rounds", name="check_workflow_round_range"),
        sa.CheckConstraint(
            "(locked AND awaiting_party IS NULL) OR (NOT locked AND awaiting_party IS NOT NULL)",
            name="check_workflow_awaiting_party",
        ),
    )
    op.create_index("ix_negotiation_workflows_id", "negotiation_workflows", ["id"])

    op.create_table(
        "proposals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("author_user_id", sa.Integer(), nullable=False),
        sa.Column("author_party", sa.String(20), nullable=False),
        sa.Column("round", sa.Integer(), nullable=False),
        sa.Column("proposed_terms", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "round", name="uq_proposal_booking_round"),
    )
    op.create_index("ix_proposals_id", "proposals", ["id"])
    op.create_index("ix_proposals_booking_id", "proposals", ["booking_id"])

    # Append-only negotiation history; (booking_id, idempotency_key) blocks double-apply
    op.create_table(
        "negotiation_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("actor_party", sa.String(20), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("round", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("idempotency_key", sa.String(100), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("booking_id", "seq", name="uq_negotiation_event_seq"),
        sa.UniqueConstraint("booking_id", "idempotency_key", name="uq_negotiation_event_idempotency"),
        sa.CheckConstraint(
            "kind IN ('offered', 'counter_offered', 'accepted', 'declined')",
            name="check_negotiation_event_kind",
        ),
    )
    op.create_index("ix_negotiation_events_id", "negotiation_events", ["id"])
    op.create_index("ix_negotiation_events_booking_id", "negotiation_events", ["booking_id"])

    # Contracts
    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("contract_text", sa.Text(), nullable=False),
        sa.Column("terms", sa.JSON(), nullable=False),
        sa.Column("current_version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("initiated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deadline_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("artist_review_done_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promoter_review_done_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("artist_edit_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("promoter_edit_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("artist_accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promoter_accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_by_artist", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("signed_by_promoter", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("artist_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promoter_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_by", sa.Integer(), nullable=True),
        sa.Column("admin_note", sa.Text(), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('draft', 'sent', 'signed_by_artist', 'signed_by_promoter', 'signed', "
            "'admin_review', 'voided', 'completed')",
            name="check_contract_status",
        ),
        sa.CheckConstraint("current_version >= 1", name="check_contract_version_positive"),
    )
    op.create_index("ix_contracts_id", "contracts", ["id"])
    op.create_index("ix_contracts_booking_id", "contracts", ["booking_id"])
    # Deadline sweep scans sent contracts by deadline
    op.create_index("ix_contracts_status_deadline", "contracts", ["status", "deadline_at"])

    op.create_table(
        "contract_versions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("contract_text", sa.Text(), nullable=False),
        sa.Column("terms", sa.JSON(), nullable=False),
        sa.Column("change_summary", sa.String(500), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("contract_id", "version", name="uq_contract_version"),
    )
    op.create_index("ix_contract_versions_id", "contract_versions", ["id"])
    op.create_index("ix_contract_versions_contract_id", "contract_versions", ["contract_id"])

    op.create_table(
        "contract_edit_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("requested_by", sa.Integer(), nullable=False),
        sa.Column("requested_by_role", sa.String(20), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("responded_by", sa.Integer(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_note", sa.Text(), nullable=True),
        sa.Column("resulting_version", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="check_edit_request_status"
        ),
        sa.CheckConstraint(
            "requested_by_role IN ('artist', 'promoter')", name="check_edit_request_role"
        ),
    )
    op.create_index("ix_contract_edit_requests_id", "contract_edit_requests", ["id"])
    op.create_index("ix_contract_edit_requests_contract_id", "contract_edit_requests", ["contract_id"])

    op.create_table(
        "contract_signatures",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("signature_data", sa.Text(), nullable=False),
        sa.Column("signature_type", sa.String(20), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("user_agent", sa.String(500), nullable=False),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("contract_id", "role", name="uq_contract_signature_role"),
        sa.CheckConstraint(
            "signature_type IN ('drawn', 'typed', 'uploaded')", name="check_signature_type"
        ),
    )
    op.create_index("ix_contract_signatures_id", "contract_signatures", ["id"])
    op.create_index("ix_contract_signatures_contract_id", "contract_signatures", ["contract_id"])

    op.create_table(
        "contract_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("actor_role", sa.String(20), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("idempotency_key", sa.String(100), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("contract_id", "seq", name="uq_contract_event_seq"),
        sa.UniqueConstraint("contract_id", "idempotency_key", name="uq_contract_event_idempotency"),
    )
    op.create_index("ix_contract_events_id", "contract_events", ["id"])
    op.create_index("ix_contract_events_contract_id", "contract_events", ["contract_id"])


def downgrade() -> None:
    op.drop_table("contract_events")
    op.drop_table("contract_signatures")
    op.drop_table("contract_edit_requests")
    op.drop_table("contract_versions")
    op.drop_table("contracts")
    op.drop_table("negotiation_events")
    op.drop_table("proposals")
    op.drop_table("negotiation_workflows")
    op.drop_table("bookings")
