"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the timeline tables:
- trip
- entry
- entry_option
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables."""
    # trip table
    op.create_table(
        "trip",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False, server_default=""),
        sa.Column("home_timezone", sa.Text(), nullable=False, server_default="Europe/London"),
        sa.Column("walk_threshold_min", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("default_checkin_hours", sa.Float(), nullable=False, server_default="2"),
        sa.Column("default_checkout_min", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    # entry table
    op.create_table(
        "entry",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("trip_id", sa.Text(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_scheduled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("scheduled_day", sa.Integer(), nullable=True),
        sa.Column("linked_flight_id", sa.Text(), nullable=True),
        sa.Column("linked_type", sa.Text(), nullable=True),
        sa.Column("from_entry_id", sa.Text(), nullable=True),
        sa.Column("to_entry_id", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"], ondelete="CASCADE"),
        sa.CheckConstraint("end_time > start_time", name="ck_entry_end_after_start"),
    )
    op.create_index("idx_entry_trip_start", "entry", ["trip_id", "start_time"])
    op.create_index("idx_entry_linked_flight", "entry", ["linked_flight_id"])
    op.create_index("idx_entry_from", "entry", ["from_entry_id"])

    # entry_option table
    op.create_table(
        "entry_option",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("entry_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location_name", sa.Text(), nullable=True),
        sa.Column("departure_location", sa.Text(), nullable=True),
        sa.Column("arrival_location", sa.Text(), nullable=True),
        sa.Column("departure_tz", sa.Text(), nullable=True),
        sa.Column("arrival_tz", sa.Text(), nullable=True),
        sa.Column("departure_terminal", sa.Text(), nullable=True),
        sa.Column("arrival_terminal", sa.Text(), nullable=True),
        sa.Column("airport_checkin_hours", sa.Float(), nullable=True),
        sa.Column("airport_checkout_min", sa.Integer(), nullable=True),
        sa.Column("transport_mode", sa.Text(), nullable=True),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("route_polyline", sa.Text(), nullable=True),
        sa.Column("transport_modes", sa.JSON(), nullable=False),
        sa.Column("hotel_id", sa.Text(), nullable=True),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["entry_id"], ["entry.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_entry_option_entry", "entry_option", ["entry_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_entry_option_entry", table_name="entry_option")
    op.drop_table("entry_option")
    op.drop_index("idx_entry_from", table_name="entry")
    op.drop_index("idx_entry_linked_flight", table_name="entry")
    op.drop_index("idx_entry_trip_start", table_name="entry")
    op.drop_table("entry")
    op.drop_table("trip")
