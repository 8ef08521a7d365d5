"""Linked-entry cascade - derived writes after an anchor entry changes.

``on_anchor_time_changed`` is pure: it turns one anchor change into the list of
writes that keep dependents consistent. ``apply_cascade`` performs them one
entry at a time, each conditional on the version that was read.

Dependencies:
- flight start -> check-in children: ``[start - checkin_hours, start]``
- flight end -> check-out children: ``[end, end + checkout_min]``
- transfer end -> the entry it leads to slides to start at the transfer's end
- any entry moved -> transfers departing from it keep their length and start at its end
  (after the check-out block for flights)

Locked dependents are never moved.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta

from backend.app.db.repositories import (
    EntryFilter,
    EntryNotFoundError,
    EntryStore,
    PersistenceError,
)
from backend.app.models.cascade import AnchorField, CascadeCommand, CascadeOutcome, CascadeReason
from backend.app.models.common import LinkRole
from backend.app.models.entries import Entry, EntryPatch, Trip
from backend.app.scheduling.views import EntryView

logger = logging.getLogger(__name__)


def checkin_hours_for(anchor: EntryView, trip: Trip) -> float:
    """Flight's own check-in policy, else the trip default."""
    if anchor.option and anchor.option.airport_checkin_hours is not None:
        return anchor.option.airport_checkin_hours
    return trip.default_checkin_hours


def checkout_minutes_for(anchor: EntryView, trip: Trip) -> int:
    """Flight's own check-out policy, else the trip default."""
    if anchor.option and anchor.option.airport_checkout_min is not None:
        return anchor.option.airport_checkout_min
    return trip.default_checkout_min


def _command(
    dependent: Entry, new_start: datetime, new_end: datetime, reason: CascadeReason
) -> CascadeCommand | None:
    if dependent.is_locked or new_end <= new_start:
        return None
    if dependent.start_time == new_start and dependent.end_time == new_end:
        return None
    return CascadeCommand(
        entry_id=dependent.id,
        new_start=new_start,
        new_end=new_end,
        reason=reason,
        expected_version=dependent.version,
    )


def on_anchor_time_changed(
    anchor: EntryView,
    field: AnchorField,
    dependents: Sequence[Entry],
    trip: Trip,
) -> list[CascadeCommand]:
    """Writes needed after ``field`` of ``anchor`` changed.

    Args:
        anchor: The changed entry, already carrying its new values
        field: Which property changed
        dependents: Candidate dependent entries as currently stored
        trip: Trip supplying default check-in/check-out policy

    Returns:
        One command per dependent whose interval must change
    """
    commands: list[CascadeCommand | None] = []

    if anchor.is_flight:
        linked = [d for d in dependents if d.linked_flight_id == anchor.id]

        if field in (AnchorField.start_time, AnchorField.checkin_hours):
            start = anchor.start_time
            new_start = start - timedelta(hours=checkin_hours_for(anchor, trip))
            commands.extend(
                _command(d, new_start, start, CascadeReason.checkin)
                for d in linked
                if d.linked_type == LinkRole.checkin
            )

        if field in (AnchorField.end_time, AnchorField.checkout_min):
            end = anchor.end_time
            new_end = end + timedelta(minutes=checkout_minutes_for(anchor, trip))
            commands.extend(
                _command(d, end, new_end, CascadeReason.checkout)
                for d in linked
                if d.linked_type == LinkRole.checkout
            )

    if field == AnchorField.end_time and anchor.is_transfer and anchor.entry.to_entry_id:
        for d in dependents:
            if d.id == anchor.entry.to_entry_id:
                delta = anchor.end_time - d.start_time
                commands.append(
                    _command(
                        d, d.start_time + delta, d.end_time + delta, CascadeReason.transfer_pull
                    )
                )

    moved = field in (AnchorField.start_time, AnchorField.end_time) or (
        anchor.is_flight and field == AnchorField.checkout_min
    )
    if moved and not anchor.is_transport_like:
        depart_at = anchor.end_time
        if anchor.is_flight and any(
            d.linked_flight_id == anchor.id and d.linked_type == LinkRole.checkout
            for d in dependents
        ):
            depart_at += timedelta(minutes=checkout_minutes_for(anchor, trip))

        for d in dependents:
            if d.from_entry_id == anchor.id and d.id != anchor.id:
                length = d.end_time - d.start_time
                commands.append(
                    _command(
                        d,
                        depart_at,
                        depart_at + length,
                        CascadeReason.transfer_reposition,
                    )
                )

    return [c for c in commands if c is not None]


async def load_dependents(store: EntryStore, anchor: Entry) -> list[Entry]:
    """Entries that may depend on ``anchor``: linked children, outgoing transfers,
    and the entry a transfer leads to."""
    linked = await store.list_entries(anchor.trip_id, EntryFilter(linked_flight_id=anchor.id))
    outgoing = await store.list_entries(anchor.trip_id, EntryFilter(from_entry_id=anchor.id))
    found = {e.id: e for e in [*linked, *outgoing]}

    if anchor.to_entry_id and anchor.to_entry_id not in found:
        try:
            found[anchor.to_entry_id] = await store.get_entry(anchor.to_entry_id)
        except EntryNotFoundError:
            logger.warning(f"Transfer {anchor.id} leads to missing entry {anchor.to_entry_id}")

    return list(found.values())


async def apply_cascade(store: EntryStore, commands: Sequence[CascadeCommand]) -> CascadeOutcome:
    """Write each command independently; a failed write does not stop the rest."""
    outcome = CascadeOutcome()
    for command in commands:
        try:
            await store.update_entry(
                command.entry_id,
                EntryPatch(start_time=command.new_start, end_time=command.new_end),
                expected_version=command.expected_version,
            )
        except (PersistenceError, ValueError) as e:
            logger.warning(
                f"Cascade write failed for {command.entry_id}: {e}",
                extra={
                    "structured": {
                        "entry_id": command.entry_id,
                        "reason": command.reason.value,
                        "error_reason": type(e).__name__,
                    }
                },
            )
            outcome.failed.append(command.entry_id)
            continue
        outcome.applied.append(command.entry_id)
    return outcome
