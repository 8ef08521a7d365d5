"""Conflict analyzer - travel time needed versus the gaps around a placed entry."""

import math

from backend.app.models.conflicts import ConflictInfo
from backend.app.scheduling.timezones import gap_minutes
from backend.app.scheduling.views import EntryView


def round_half_up(value: float) -> float:
    """Round to the nearest minute, halves up; infinities pass through."""
    if math.isinf(value):
        return value
    return float(math.floor(value + 0.5))


def analyze_conflict(
    placed: EntryView,
    prev_entry: EntryView | None,
    next_entry: EntryView | None,
    prev_travel_min: float | None,
    next_travel_min: float | None,
) -> ConflictInfo:
    """Quantify how many minutes of travel do not fit around ``placed``.

    Args:
        placed: Entry being placed (or already placed)
        prev_entry: Entry immediately before, if any
        next_entry: Entry immediately after, if any
        prev_travel_min: Travel minutes needed to arrive (None means 0)
        next_travel_min: Travel minutes needed to leave (None means 0)

    Returns:
        ConflictInfo; a positive ``discrepancy_min`` means the placement does not fit
    """
    prev_gap = gap_minutes(prev_entry.end_time, placed.start_time) if prev_entry else math.inf
    next_gap = gap_minutes(placed.end_time, next_entry.start_time) if next_entry else math.inf

    prev_shortfall = max(0.0, (prev_travel_min or 0) - prev_gap)
    next_shortfall = max(0.0, (next_travel_min or 0) - next_gap)

    return ConflictInfo(
        entry_id=placed.id,
        entry_name=placed.name,
        discrepancy_min=int(round_half_up(prev_shortfall + next_shortfall)),
        prev_travel_min=prev_travel_min,
        next_travel_min=next_travel_min,
        prev_gap_min=round_half_up(prev_gap),
        next_gap_min=round_half_up(next_gap),
    )
