"""Repository protocol interfaces for data access."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from backend.app.models.entries import (
    Entry,
    EntryOption,
    EntryPatch,
    NewEntry,
    NewOption,
    OptionPatch,
    Trip,
)


class PersistenceError(Exception):
    """A create/update/delete against the store failed."""

    pass


class EntryNotFoundError(PersistenceError):
    """Entry (or option) does not exist."""

    pass


class TripNotFoundError(PersistenceError):
    """Trip does not exist."""

    pass


class StaleEntryError(PersistenceError):
    """Conditional update lost against a concurrent write."""

    def __init__(self, entry_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Entry {entry_id} is at version {actual}, expected {expected}"
        )
        self.entry_id = entry_id
        self.expected = expected
        self.actual = actual


@dataclass
class EntryFilter:
    """Criteria for listing a trip's entries. ``None`` means "any"."""

    is_scheduled: bool | None = None
    linked_flight_id: str | None = None
    from_entry_id: str | None = None
    to_entry_id: str | None = None

    def matches(self, entry: Entry) -> bool:
        if self.is_scheduled is not None and entry.is_scheduled != self.is_scheduled:
            return False
        if self.linked_flight_id is not None and entry.linked_flight_id != self.linked_flight_id:
            return False
        if self.from_entry_id is not None and entry.from_entry_id != self.from_entry_id:
            return False
        if self.to_entry_id is not None and entry.to_entry_id != self.to_entry_id:
            return False
        return True


class EntryStore(Protocol):
    """Entries and their options, keyed by trip and entry id.

    Every method is atomic for a single row; multi-entry operations are
    sequences of these calls.
    """

    async def list_entries(self, trip_id: str, filter: EntryFilter | None = None) -> list[Entry]:
        """List a trip's entries ordered by start time.

        Args:
            trip_id: Trip ID
            filter: Optional criteria

        Returns:
            Matching entries
        """
        ...

    async def get_entry(self, entry_id: str) -> Entry:
        """Get one entry.

        Raises:
            EntryNotFoundError: If the entry does not exist
        """
        ...

    async def create_entry(self, fields: NewEntry) -> Entry:
        """Create an entry (version 1)."""
        ...

    async def update_entry(
        self, entry_id: str, patch: EntryPatch, expected_version: int | None = None
    ) -> Entry:
        """Apply a partial update and bump the version.

        Args:
            entry_id: Entry ID
            patch: Fields to write (only explicitly set fields)
            expected_version: When given, update only if the stored version matches

        Returns:
            The updated entry

        Raises:
            EntryNotFoundError: If the entry does not exist
            StaleEntryError: If ``expected_version`` does not match
            ValueError: If the result would violate ``end_time > start_time``
        """
        ...

    async def delete_entry(self, entry_id: str) -> None:
        """Delete an entry and its options. Missing entries are ignored."""
        ...

    async def list_options(self, entry_ids: Sequence[str]) -> list[EntryOption]:
        """Options belonging to any of the given entries."""
        ...

    async def create_option(self, fields: NewOption) -> EntryOption:
        """Create an option for an existing entry.

        Raises:
            EntryNotFoundError: If the owning entry does not exist
        """
        ...

    async def update_option(self, option_id: str, patch: OptionPatch) -> EntryOption:
        """Apply a partial update to an option.

        Raises:
            EntryNotFoundError: If the option does not exist
        """
        ...


class TripRepository(Protocol):
    """Trips and their scheduling policy values."""

    async def get_trip(self, trip_id: str) -> Trip:
        """Get a trip.

        Raises:
            TripNotFoundError: If the trip does not exist
        """
        ...

    async def create_trip(self, trip: Trip) -> Trip:
        """Insert a trip."""
        ...