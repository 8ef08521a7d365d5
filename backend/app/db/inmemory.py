"""In-memory implementations of repository interfaces."""

import uuid
from collections.abc import Sequence

from backend.app.db.repositories import (
    EntryFilter,
    EntryNotFoundError,
    StaleEntryError,
    TripNotFoundError,
)
from backend.app.models.entries import (
    Entry,
    EntryOption,
    EntryPatch,
    NewEntry,
    NewOption,
    OptionPatch,
    Trip,
)


class InMemoryEntryStore:
    """In-memory implementation of EntryStore."""

    def __init__(self) -> None:
        self._entries: dict[str, Entry] = {}
        self._options: dict[str, EntryOption] = {}

    async def list_entries(self, trip_id: str, filter: EntryFilter | None = None) -> list[Entry]:
        """List a trip's entries ordered by start time."""
        criteria = filter or EntryFilter()
        matches = [
            e for e in self._entries.values() if e.trip_id == trip_id and criteria.matches(e)
        ]
        return sorted(matches, key=lambda e: e.start_time)

    async def get_entry(self, entry_id: str) -> Entry:
        """Get one entry."""
        entry = self._entries.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Entry {entry_id} not found")
        return entry

    async def create_entry(self, fields: NewEntry) -> Entry:
        """Create an entry."""
        data = fields.model_dump()
        data["id"] = fields.id or str(uuid.uuid4())
        entry = Entry.model_validate(data)
        self._entries[entry.id] = entry
        return entry

    async def update_entry(
        self, entry_id: str, patch: EntryPatch, expected_version: int | None = None
    ) -> Entry:
        """Apply a partial update and bump the version."""
        current = await self.get_entry(entry_id)
        if expected_version is not None and current.version != expected_version:
            raise StaleEntryError(entry_id, expected_version, current.version)

        # Re-validate the merged record so end > start still holds
        data = {
            **current.model_dump(),
            **patch.model_dump(exclude_unset=True),
            "version": current.version + 1,
        }
        updated = Entry.model_validate(data)
        self._entries[entry_id] = updated
        return updated

    async def delete_entry(self, entry_id: str) -> None:
        """Delete an entry and its options."""
        self._entries.pop(entry_id, None)
        for option_id in [o.id for o in self._options.values() if o.entry_id == entry_id]:
            del self._options[option_id]

    async def list_options(self, entry_ids: Sequence[str]) -> list[EntryOption]:
        """Options belonging to any of the given entries, in creation order."""
        wanted = set(entry_ids)
        return [o for o in self._options.values() if o.entry_id in wanted]

    async def create_option(self, fields: NewOption) -> EntryOption:
        """Create an option for an existing entry."""
        if fields.entry_id not in self._entries:
            raise EntryNotFoundError(f"Entry {fields.entry_id} not found")
        data = fields.model_dump()
        data["id"] = fields.id or str(uuid.uuid4())
        option = EntryOption.model_validate(data)
        self._options[option.id] = option
        return option

    async def update_option(self, option_id: str, patch: OptionPatch) -> EntryOption:
        """Apply a partial update to an option."""
        current = self._options.get(option_id)
        if current is None:
            raise EntryNotFoundError(f"Option {option_id} not found")
        data = {**current.model_dump(), **patch.model_dump(exclude_unset=True)}
        updated = EntryOption.model_validate(data)
        self._options[option_id] = updated
        return updated

    async def set_vote_count(self, option_id: str, vote_count: int) -> None:
        """Set an option's vote tally (voting itself lives outside the scheduling core)."""
        current = self._options.get(option_id)
        if current is None:
            raise EntryNotFoundError(f"Option {option_id} not found")
        self._options[option_id] = current.model_copy(update={"vote_count": vote_count})


class InMemoryTripRepository:
    """In-memory implementation of TripRepository."""

    def __init__(self, trips: Sequence[Trip] = ()) -> None:
        self._trips: dict[str, Trip] = {t.id: t for t in trips}

    async def create_trip(self, trip: Trip) -> Trip:
        """Insert a trip."""
        self._trips[trip.id] = trip
        return trip

    async def get_trip(self, trip_id: str) -> Trip:
        """Get a trip."""
        trip = self._trips.get(trip_id)
        if trip is None:
            raise TripNotFoundError(f"Trip {trip_id} not found")
        return trip
