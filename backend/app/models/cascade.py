"""Cascade models - derived writes triggered by an anchor entry change."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from backend.app.models.entries import Entry, EntryOption


class AnchorField(str, Enum):
    """Which property of the anchor entry changed."""

    start_time = "start_time"
    end_time = "end_time"
    checkin_hours = "checkin_hours"
    checkout_min = "checkout_min"


class CascadeReason(str, Enum):
    """Kind of dependency that produced a cascade command."""

    checkin = "checkin"
    checkout = "checkout"
    transfer_pull = "transfer_pull"
    transfer_reposition = "transfer_reposition"


class CascadeCommand(BaseModel):
    """Write the given interval onto a dependent entry."""

    entry_id: str
    new_start: datetime
    new_end: datetime
    reason: CascadeReason
    expected_version: int | None = None


class CascadeOutcome(BaseModel):
    """Per-command results of applying a cascade."""

    applied: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class EntryEditResult(BaseModel):
    """An explicit user edit and the derived writes it caused."""

    entry: Entry
    cascade: CascadeOutcome = Field(default_factory=CascadeOutcome)


class FlightBundle(BaseModel):
    """A flight together with its automatically created airport blocks."""

    flight: Entry
    option: EntryOption
    checkin: Entry | None = None
    checkout: Entry | None = None
