"""Transport synthesis models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from backend.app.models.common import TravelMode


class SkipReason(str, Enum):
    """Why a consecutive entry pair got no synthesized transfer."""

    missing_option = "missing_option"
    transport_like = "transport_like"
    already_bridged = "already_bridged"
    unresolvable_location = "unresolvable_location"
    no_gap = "no_gap"
    checkin_bridges_gap = "checkin_bridges_gap"
    no_route = "no_route"
    persistence_failure = "persistence_failure"


class CreatedTransfer(BaseModel):
    """Transfer entry inserted by the synthesizer."""

    id: str
    start_time: datetime
    end_time: datetime
    mode: TravelMode
    duration_min: int
    from_entry_id: str
    to_entry_id: str


class OverlapRecord(BaseModel):
    """A synthesized transfer that runs past the next entry's start."""

    transport_id: str
    transport_end: datetime
    blocked_entry_id: str
    blocked_start: datetime
    overlap_min: int


class SkippedPair(BaseModel):
    """Consecutive pair left without a transfer."""

    from_entry_id: str
    to_entry_id: str
    reason: SkipReason


class SynthesisResult(BaseModel):
    """Outcome of one synthesis pass over a trip."""

    created: list[CreatedTransfer] = Field(default_factory=list)
    overlaps: list[OverlapRecord] = Field(default_factory=list)
    skipped: list[SkippedPair] = Field(default_factory=list)
    cancelled: bool = False
