"""Cleanup after partially completed multi-entry operations.

Cross-entry operations are sequences of single-row writes, so a crash can
leave an entry without its option, or a check-in/check-out block whose flight
is gone. ``sweep_orphans`` removes both kinds and is safe to run at any time.
"""

import logging

from backend.app.db.repositories import EntryStore, PersistenceError

logger = logging.getLogger(__name__)


async def sweep_orphans(store: EntryStore, trip_id: str) -> list[str]:
    """Delete a trip's orphaned entries.

    Returns:
        IDs of the deleted entries
    """
    entries = await store.list_entries(trip_id)
    with_option = {o.entry_id for o in await store.list_options([e.id for e in entries])}
    existing = {e.id for e in entries}

    orphans = [
        e.id
        for e in entries
        if e.id not in with_option
        or (e.linked_flight_id is not None and e.linked_flight_id not in existing)
    ]

    removed = []
    for entry_id in orphans:
        try:
            await store.delete_entry(entry_id)
        except PersistenceError as e:
            logger.warning(f"Failed to remove orphaned entry {entry_id}: {e}")
            continue
        removed.append(entry_id)

    if removed:
        logger.info(
            f"Removed {len(removed)} orphaned entries",
            extra={"structured": {"trip_id": trip_id, "entry_ids": removed}},
        )
    return removed
