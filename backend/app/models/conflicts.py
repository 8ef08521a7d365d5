"""Conflict models - transient scheduling analysis results."""

from datetime import datetime

from pydantic import BaseModel, Field


class ConflictInfo(BaseModel):
    """How far a placed entry's travel needs exceed its neighbouring gaps.

    Gaps are ``math.inf`` when there is no neighbour on that side.
    ``discrepancy_min <= 0`` means the placement fits as-is.
    """

    entry_id: str
    entry_name: str
    discrepancy_min: int
    prev_travel_min: float | None
    next_travel_min: float | None
    prev_gap_min: float
    next_gap_min: float

    @property
    def has_conflict(self) -> bool:
        return self.discrepancy_min > 0


class EntryChange(BaseModel):
    """Concrete time edit for one entry."""

    entry_id: str
    new_start: datetime
    new_end: datetime


class Recommendation(BaseModel):
    """Proposed schedule edit. An empty ``changes`` list means unschedule ``entry_id``."""

    id: str
    entry_id: str
    label: str
    description: str
    changes: list[EntryChange] = Field(default_factory=list)

    @property
    def is_skip(self) -> bool:
        return not self.changes
