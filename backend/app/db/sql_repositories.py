"""SQL implementations of repository interfaces."""

import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import EntryOptionRow, EntryRow, TripRow
from backend.app.db.repositories import (
    EntryFilter,
    EntryNotFoundError,
    PersistenceError,
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

logger = logging.getLogger(__name__)

_ENTRY_COLUMNS = (
    "trip_id",
    "start_time",
    "end_time",
    "is_locked",
    "is_scheduled",
    "scheduled_day",
    "linked_flight_id",
    "linked_type",
    "from_entry_id",
    "to_entry_id",
    "version",
)


def _entry_from_row(row: EntryRow) -> Entry:
    return Entry(
        id=row.id,
        trip_id=row.trip_id,
        start_time=row.start_time,
        end_time=row.end_time,
        is_locked=row.is_locked,
        is_scheduled=row.is_scheduled,
        scheduled_day=row.scheduled_day,
        linked_flight_id=row.linked_flight_id,
        linked_type=row.linked_type,
        from_entry_id=row.from_entry_id,
        to_entry_id=row.to_entry_id,
        version=row.version,
    )


def _entry_values(entry: Entry) -> dict:
    data = entry.model_dump(mode="python", include=set(_ENTRY_COLUMNS))
    if entry.linked_type is not None:
        data["linked_type"] = entry.linked_type.value
    return data


def _option_from_row(row: EntryOptionRow) -> EntryOption:
    return EntryOption.model_validate(
        {c.name: getattr(row, c.name) for c in EntryOptionRow.__table__.columns}
    )


def _option_values(option: EntryOption) -> dict:
    # JSON mode turns enums and nested route models into plain values
    return option.model_dump(mode="json", exclude={"id"})


class SqlEntryStore:
    """SQL implementation of EntryStore.

    Every method commits on its own. Updates are conditional on the stored
    version so concurrent writers cannot silently overwrite each other. Any
    database error, from a statement or the commit, is rolled back and
    raised as PersistenceError.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @asynccontextmanager
    async def _database(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(f"Entry store {action} failed: {e}")
            raise PersistenceError(str(e)) from e

    async def list_entries(self, trip_id: str, filter: EntryFilter | None = None) -> list[Entry]:
        """List a trip's entries ordered by start time."""
        criteria = filter or EntryFilter()
        stmt = select(EntryRow).where(EntryRow.trip_id == trip_id)
        if criteria.is_scheduled is not None:
            stmt = stmt.where(EntryRow.is_scheduled == criteria.is_scheduled)
        if criteria.linked_flight_id is not None:
            stmt = stmt.where(EntryRow.linked_flight_id == criteria.linked_flight_id)
        if criteria.from_entry_id is not None:
            stmt = stmt.where(EntryRow.from_entry_id == criteria.from_entry_id)
        if criteria.to_entry_id is not None:
            stmt = stmt.where(EntryRow.to_entry_id == criteria.to_entry_id)

        async with self._database("read"):
            rows = (await self._session.scalars(stmt.order_by(EntryRow.start_time))).all()
        return [_entry_from_row(row) for row in rows]

    async def get_entry(self, entry_id: str) -> Entry:
        """Get one entry."""
        async with self._database("read"):
            row = await self._session.get(EntryRow, entry_id, populate_existing=True)
        if row is None:
            raise EntryNotFoundError(f"Entry {entry_id} not found")
        return _entry_from_row(row)

    async def create_entry(self, fields: NewEntry) -> Entry:
        """Create an entry."""
        data = fields.model_dump()
        data["id"] = fields.id or str(uuid.uuid4())
        entry = Entry.model_validate(data)

        async with self._database("write"):
            self._session.add(EntryRow(id=entry.id, **_entry_values(entry)))
            await self._session.commit()
        return entry

    async def update_entry(
        self, entry_id: str, patch: EntryPatch, expected_version: int | None = None
    ) -> Entry:
        """Apply a partial update and bump the version."""
        current = await self.get_entry(entry_id)
        if expected_version is not None and current.version != expected_version:
            raise StaleEntryError(entry_id, expected_version, current.version)

        updated = Entry.model_validate(
            {
                **current.model_dump(),
                **patch.model_dump(exclude_unset=True),
                "version": current.version + 1,
            }
        )

        async with self._database("write"):
            result = await self._session.execute(
                update(EntryRow)
                .where(EntryRow.id == entry_id, EntryRow.version == current.version)
                .values(**_entry_values(updated))
                .execution_options(synchronize_session=False)
            )
            await self._session.commit()

        if result.rowcount == 0:
            # Another writer got in between the read and the conditional update
            latest = await self.get_entry(entry_id)
            raise StaleEntryError(entry_id, current.version, latest.version)
        return updated

    async def delete_entry(self, entry_id: str) -> None:
        """Delete an entry and its options."""
        async with self._database("delete"):
            await self._session.execute(
                delete(EntryOptionRow).where(EntryOptionRow.entry_id == entry_id)
            )
            await self._session.execute(delete(EntryRow).where(EntryRow.id == entry_id))
            await self._session.commit()

    async def list_options(self, entry_ids: Sequence[str]) -> list[EntryOption]:
        """Options belonging to any of the given entries, in creation order."""
        if not entry_ids:
            return []
        async with self._database("read"):
            rows = (
                await self._session.scalars(
                    select(EntryOptionRow)
                    .where(EntryOptionRow.entry_id.in_(list(entry_ids)))
                    .order_by(EntryOptionRow.created_at, EntryOptionRow.id)
                )
            ).all()
        return [_option_from_row(row) for row in rows]

    async def create_option(self, fields: NewOption) -> EntryOption:
        """Create an option for an existing entry."""
        async with self._database("read"):
            parent = await self._session.get(EntryRow, fields.entry_id)
        if parent is None:
            raise EntryNotFoundError(f"Entry {fields.entry_id} not found")

        data = fields.model_dump()
        data["id"] = fields.id or str(uuid.uuid4())
        option = EntryOption.model_validate(data)

        async with self._database("write"):
            self._session.add(EntryOptionRow(id=option.id, **_option_values(option)))
            await self._session.commit()
        return option

    async def update_option(self, option_id: str, patch: OptionPatch) -> EntryOption:
        """Apply a partial update to an option."""
        async with self._database("read"):
            row = await self._session.get(EntryOptionRow, option_id, populate_existing=True)
        if row is None:
            raise EntryNotFoundError(f"Option {option_id} not found")

        updated = EntryOption.model_validate(
            {**_option_from_row(row).model_dump(), **patch.model_dump(exclude_unset=True)}
        )
        async with self._database("write"):
            for key, value in _option_values(updated).items():
                setattr(row, key, value)
            await self._session.commit()
        return updated


class SqlTripRepository:
    """SQL implementation of TripRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_trip(self, trip_id: str) -> Trip:
        """Get a trip."""
        try:
            row = await self._session.get(TripRow, trip_id)
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise PersistenceError(str(e)) from e
        if row is None:
            raise TripNotFoundError(f"Trip {trip_id} not found")
        return Trip(
            id=row.id,
            name=row.name,
            home_timezone=row.home_timezone,
            walk_threshold_min=row.walk_threshold_min,
            default_checkin_hours=row.default_checkin_hours,
            default_checkout_min=row.default_checkout_min,
            start_date=row.start_date,
            end_date=row.end_date,
        )

    async def create_trip(self, trip: Trip) -> Trip:
        """Insert a trip row."""
        self._session.add(TripRow(**trip.model_dump()))
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise PersistenceError(str(e)) from e
        return trip
