"""SQLAlchemy ORM models for trips, timeline entries and entry options.

Column types are portable (Text ids, generic JSON) so the same metadata
runs on PostgreSQL and on SQLite in tests. Instants are stored in UTC.
"""

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TripRow(Base):
    """Trip table - container and scheduling policy."""

    __tablename__ = "trip"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    home_timezone: Mapped[str] = mapped_column(Text, nullable=False, default="Europe/London")
    walk_threshold_min: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    default_checkin_hours: Mapped[float] = mapped_column(Float, nullable=False, default=2.0)
    default_checkout_min: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    entries: Mapped[list["EntryRow"]] = relationship(
        "EntryRow", back_populates="trip", cascade="all, delete-orphan"
    )


class EntryRow(Base):
    """Entry table - one block of time on a trip timeline."""

    __tablename__ = "entry"
    __table_args__ = (
        Index("idx_entry_trip_start", "trip_id", "start_time"),
        Index("idx_entry_linked_flight", "linked_flight_id"),
        Index("idx_entry_from", "from_entry_id"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    trip_id: Mapped[str] = mapped_column(
        Text, ForeignKey("trip.id", ondelete="CASCADE"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_scheduled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    scheduled_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Plain references: a dangling link is repaired by recovery, not by the database
    linked_flight_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    linked_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_entry_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_entry_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    trip: Mapped["TripRow"] = relationship("TripRow", back_populates="entries")
    options: Mapped[list["EntryOptionRow"]] = relationship(
        "EntryOptionRow", back_populates="entry", cascade="all, delete-orphan"
    )


class EntryOptionRow(Base):
    """Entry option table - descriptive content, several per entry for voting."""

    __tablename__ = "entry_option"
    __table_args__ = (Index("idx_entry_option_entry", "entry_id"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    entry_id: Mapped[str] = mapped_column(
        Text, ForeignKey("entry.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    departure_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    arrival_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    departure_tz: Mapped[str | None] = mapped_column(Text, nullable=True)
    arrival_tz: Mapped[str | None] = mapped_column(Text, nullable=True)
    departure_terminal: Mapped[str | None] = mapped_column(Text, nullable=True)
    arrival_terminal: Mapped[str | None] = mapped_column(Text, nullable=True)
    airport_checkin_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    airport_checkout_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    transport_mode: Mapped[str | None] = mapped_column(Text, nullable=True)
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    route_polyline: Mapped[str | None] = mapped_column(Text, nullable=True)
    transport_modes: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    hotel_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    entry: Mapped["EntryRow"] = relationship("EntryRow", back_populates="options")
