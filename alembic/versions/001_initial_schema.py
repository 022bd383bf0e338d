"""Create trips, location_samples, sos_tickets, user_safety_profiles and user_positions.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "trips",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_location", sa.String(255), nullable=True),
        sa.Column("end_location", sa.String(255), nullable=True),
        sa.Column("planned_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("planned_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actual_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PLANNED"),
        sa.Column("safety_score_snapshot", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_trips_owner_id"), "trips", ["owner_id"], unique=False)
    op.create_index("ix_trips_owner_status", "trips", ["owner_id", "status"], unique=False)

    op.create_table(
        "location_samples",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("trip_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("heading", sa.Float(), nullable=True),
        sa.Column("altitude", sa.Float(), nullable=True),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("reported_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["trip_id"], ["trips.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_location_samples_user_id"), "location_samples", ["user_id"], unique=False)
    op.create_index("ix_location_samples_trip_timestamp", "location_samples", ["trip_id", "timestamp"], unique=False)

    op.create_table(
        "sos_tickets",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("trip_id", sa.String(36), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="NEW"),
        sa.Column("sos_type", sa.String(30), nullable=False, server_default="GENERAL"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("contact_snapshot", sa.JSON(), nullable=False),
        sa.Column("resolved_by", sa.String(64), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.Column("dispatch_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["trip_id"], ["trips.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sos_tickets_user_id"), "sos_tickets", ["user_id"], unique=False)
    op.create_index("ix_sos_tickets_trip_status", "sos_tickets", ["trip_id", "status"], unique=False)
    op.create_index("ix_sos_tickets_status_updated", "sos_tickets", ["status", "updated_at"], unique=False)

    op.create_table(
        "user_safety_profiles",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("safety_score", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("last_recomputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "user_positions",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    op.drop_table("user_positions")
    op.drop_table("user_safety_profiles")
    op.drop_index("ix_sos_tickets_status_updated", table_name="sos_tickets")
    op.drop_index("ix_sos_tickets_trip_status", table_name="sos_tickets")
    op.drop_index(op.f("ix_sos_tickets_user_id"), table_name="sos_tickets")
    op.drop_table("sos_tickets")
    op.drop_index("ix_location_samples_trip_timestamp", table_name="location_samples")
    op.drop_index(op.f("ix_location_samples_user_id"), table_name="location_samples")
    op.drop_table("location_samples")
    op.drop_index("ix_trips_owner_status", table_name="trips")
    op.drop_index(op.f("ix_trips_owner_id"), table_name="trips")
    op.drop_table("trips")
