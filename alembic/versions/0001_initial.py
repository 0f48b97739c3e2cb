"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "booking_statuses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("booking_id", sa.String(length=64), nullable=False),
        sa.Column("is_arrived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_no_show", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("paid_on_arrival", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_by", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("date_key", "booking_id", name="uq_booking_statuses_date_booking"),
    )
    op.create_index("ix_booking_statuses_date_key", "booking_statuses", ["date_key"])
    op.create_index("ix_booking_statuses_booking_id", "booking_statuses", ["booking_id"])

    op.create_table(
        "pickup_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("booking_id", sa.String(length=64), nullable=False),
        sa.Column("guide_id", sa.String(length=64), nullable=False),
        sa.Column("guide_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("date_key", "booking_id", name="uq_pickup_assignments_date_booking"),
    )
    op.create_index("ix_pickup_assignments_date_key", "pickup_assignments", ["date_key"])
    op.create_index("ix_pickup_assignments_booking_id", "pickup_assignments", ["booking_id"])
    op.create_index("ix_pickup_assignments_guide_id", "pickup_assignments", ["guide_id"])

    op.create_table(
        "pickup_place_updates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("booking_id", sa.String(length=64), nullable=False),
        sa.Column("pickup_place", sa.String(length=500), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("date_key", "booking_id", name="uq_pickup_place_updates_date_booking"),
    )
    op.create_index("ix_pickup_place_updates_date_key", "pickup_place_updates", ["date_key"])
    op.create_index("ix_pickup_place_updates_booking_id", "pickup_place_updates", ["booking_id"])

    op.create_table(
        "reordered_bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("guide_id", sa.String(length=64), nullable=False),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("booking_ids_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("guide_id", "date_key", name="uq_reordered_bookings_guide_date"),
    )
    op.create_index("ix_reordered_bookings_guide_id", "reordered_bookings", ["guide_id"])
    op.create_index("ix_reordered_bookings_date_key", "reordered_bookings", ["date_key"])

    op.create_table(
        "cached_bookings",
        sa.Column("date_key", sa.String(length=10), primary_key=True),
        sa.Column("bookings_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("booking_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cached_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "manual_bookings",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("booking_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_manual_bookings_date_key", "manual_bookings", ["date_key"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor", "audit_logs", ["actor"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_date_key", "audit_logs", ["date_key"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("manual_bookings")
    op.drop_table("cached_bookings")
    op.drop_table("reordered_bookings")
    op.drop_table("pickup_place_updates")
    op.drop_table("pickup_assignments")
    op.drop_table("booking_statuses")
