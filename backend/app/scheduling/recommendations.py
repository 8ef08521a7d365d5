"""Recommendation generator - ways to reclaim a conflict's missing minutes."""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta

from backend.app.db.repositories import EntryStore
from backend.app.models.conflicts import ConflictInfo, EntryChange, Recommendation
from backend.app.models.entries import Entry, EntryPatch
from backend.app.scheduling.timezones import utc_to_local
from backend.app.scheduling.views import EntryView

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 5
# A shortened entry keeps at least this many minutes
MIN_REMAINDER_MIN = 15


class LockedEntryError(Exception):
    """A recommendation tried to move a locked entry."""

    pass


def _clock(instant: datetime, tz: str) -> str:
    return utc_to_local(instant, tz).time


def _shift(view: EntryView, minutes: int, direction: str, tz: str) -> Recommendation:
    delta = timedelta(minutes=minutes if direction == "later" else -minutes)
    new_start = view.start_time + delta
    return Recommendation(
        id=f"shift-{direction}-{view.id}",
        entry_id=view.id,
        label=f'Start "{view.name}" {minutes}m {direction}',
        description=f"Move from {_clock(view.start_time, tz)} to {_clock(new_start, tz)}",
        changes=[EntryChange(entry_id=view.id, new_start=new_start, new_end=view.end_time + delta)],
    )


def generate_recommendations(
    conflict: ConflictInfo,
    day_entries: Sequence[EntryView],
    placed_entry_id: str,
    display_tz: str = "UTC",
) -> list[Recommendation]:
    """Propose schedule edits that free ``conflict.discrepancy_min`` minutes.

    Candidates are the day's unlocked entries other than the placed one. Each
    candidate after the placed entry may start later, each before it may start
    earlier, and any candidate long enough to keep 15 minutes may be shortened.
    Skip proposals for every candidate follow. Only the first five proposals
    are returned; this is a presentation cap, not a ranking.

    Args:
        conflict: Result of ``analyze_conflict``
        day_entries: The day's entries in timeline order
        placed_entry_id: Entry that was just placed (never adjusted)
        display_tz: Zone used for clock times in descriptions

    Returns:
        Up to five recommendations; empty when there is no conflict
    """
    discrepancy = conflict.discrepancy_min
    if discrepancy <= 0:
        return []

    placed_index = next(
        (i for i, v in enumerate(day_entries) if v.id == placed_entry_id), -1
    )
    candidates = [
        (i, v) for i, v in enumerate(day_entries) if not v.is_locked and v.id != placed_entry_id
    ]

    recommendations: list[Recommendation] = []
    for index, view in candidates:
        if index > placed_index:
            recommendations.append(_shift(view, discrepancy, "later", display_tz))
        elif index < placed_index:
            recommendations.append(_shift(view, discrepancy, "earlier", display_tz))

        if view.entry.duration_min > discrepancy + MIN_REMAINDER_MIN:
            new_end = view.end_time - timedelta(minutes=discrepancy)
            recommendations.append(
                Recommendation(
                    id=f"shorten-{view.id}",
                    entry_id=view.id,
                    label=f'Shorten "{view.name}" by {discrepancy}m',
                    description=(
                        f"End at {_clock(new_end, display_tz)} "
                        f"instead of {_clock(view.end_time, display_tz)}"
                    ),
                    changes=[
                        EntryChange(entry_id=view.id, new_start=view.start_time, new_end=new_end)
                    ],
                )
            )

    for _, view in candidates:
        recommendations.append(
            Recommendation(
                id=f"skip-{view.id}",
                entry_id=view.id,
                label=f'Skip "{view.name}"',
                description="Move to ideas (unscheduled)",
            )
        )

    return recommendations[:MAX_RECOMMENDATIONS]


async def apply_recommendation(store: EntryStore, recommendation: Recommendation) -> list[Entry]:
    """Commit a chosen recommendation.

    An empty change list unschedules ``recommendation.entry_id``; otherwise
    each change is written as a time edit conditional on the version read.

    Returns:
        The updated entries

    Raises:
        LockedEntryError: If any affected entry is locked (nothing is written)
        EntryNotFoundError: If an affected entry no longer exists
        StaleEntryError: If an entry changed between read and write
    """
    if recommendation.is_skip:
        entry = await store.get_entry(recommendation.entry_id)
        if entry.is_locked:
            raise LockedEntryError(f"Entry {entry.id} is locked")
        updated = await store.update_entry(
            entry.id, EntryPatch(is_scheduled=False), expected_version=entry.version
        )
        logger.info(f"Unscheduled entry {entry.id} ({recommendation.id})")
        return [updated]

    current = {c.entry_id: await store.get_entry(c.entry_id) for c in recommendation.changes}
    locked = [e.id for e in current.values() if e.is_locked]
    if locked:
        raise LockedEntryError(f"Entries {', '.join(locked)} are locked")

    results = []
    for change in recommendation.changes:
        entry = current[change.entry_id]
        results.append(
            await store.update_entry(
                entry.id,
                EntryPatch(start_time=change.new_start, end_time=change.new_end),
                expected_version=entry.version,
            )
        )
    logger.info(f"Applied recommendation {recommendation.id}")
    return results
