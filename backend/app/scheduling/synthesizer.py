"""Transport leg synthesizer - inserts transfers between consecutive entries.

For every calendar day (grouped with the per-day effective time zone) the
synthesizer walks adjacent non-transport entries and, when nothing bridges
them yet, queries walk and transit routes and inserts a transfer entry with
the default mode. Check-in/check-out blocks are not paired themselves; they
move the effective departure and deadline of the flights they belong to.

Overlaps (a transfer running past the next entry's start) are reported, not fixed.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta

from backend.app.db.repositories import EntryFilter, EntryStore, PersistenceError, TripRepository
from backend.app.models.common import Category, Geo, LinkRole, Waypoint
from backend.app.models.entries import EntryOption, NewEntry, NewOption, Trip
from backend.app.models.routes import ModeRoute
from backend.app.models.synthesis import (
    CreatedTransfer,
    OverlapRecord,
    SkippedPair,
    SkipReason,
    SynthesisResult,
)
from backend.app.scheduling.timezones import group_entries_by_day
from backend.app.scheduling.travel_modes import (
    SYNTHESIS_MODES,
    TravelModeResolver,
    UnresolvableLocationError,
    select_synthesis_mode,
    transfer_block_minutes,
    transfer_name,
)
from backend.app.scheduling.views import EntryView, build_entry_views
from backend.app.tools.executor import CancelToken, OperationCancelledError

logger = logging.getLogger(__name__)


class SynthesisMetrics:
    """Metrics interface; the default records nothing."""

    def inc_created(self, mode: str) -> None:
        pass

    def inc_skipped(self, reason: str) -> None:
        pass


def departure_point(option: EntryOption) -> Waypoint | None:
    """Where a traveller is after this entry (a flight ends at its arrival airport)."""
    if option.category == Category.flight.value and option.arrival_location:
        return option.arrival_location
    if option.has_coordinates:
        return Geo(lat=option.latitude, lng=option.longitude)
    return option.location_name or option.arrival_location or None


def arrival_point(option: EntryOption) -> Waypoint | None:
    """Where a traveller must be for this entry (a flight starts at its departure airport)."""
    if option.category == Category.flight.value and option.departure_location:
        return option.departure_location
    if option.has_coordinates:
        return Geo(lat=option.latitude, lng=option.longitude)
    return option.location_name or option.departure_location or None


def place_label(option: EntryOption, end: str) -> str:
    """Human name of the place an entry is at; ``end`` is ``"from"`` or ``"to"``."""
    if option.name and option.category != Category.flight.value:
        return option.name
    if option.location_name:
        return option.location_name
    if end == "from":
        return option.arrival_location or "Unknown"
    return option.departure_location or "Unknown"


class TransportSynthesizer:
    """Creates transfer entries for a trip's unbridged consecutive entries."""

    def __init__(
        self,
        store: EntryStore,
        trips: TripRepository,
        resolver: TravelModeResolver,
        metrics: SynthesisMetrics | None = None,
    ) -> None:
        self._store = store
        self._trips = trips
        self._resolver = resolver
        self._metrics = metrics or SynthesisMetrics()

    async def synthesize(
        self, trip_id: str, cancel_token: CancelToken | None = None
    ) -> SynthesisResult:
        """Run one synthesis pass over the trip's scheduled entries.

        Pairs are processed one at a time in day and time order. A pair that
        cannot be bridged is recorded in ``skipped``; it never aborts the pass.
        When ``cancel_token`` is cancelled, the pass stops before the next pair
        and returns what was created so far with ``cancelled=True``.

        Raises:
            TripNotFoundError: If the trip does not exist
        """
        token = cancel_token or CancelToken()
        trip = await self._trips.get_trip(trip_id)
        result = SynthesisResult()

        entries = await self._store.list_entries(trip_id, EntryFilter(is_scheduled=True))
        if len(entries) < 2:
            return result

        options = await self._store.list_options([e.id for e in entries])
        views = build_entry_views(entries, options)

        try:
            for day, day_views in group_entries_by_day(views, trip.home_timezone).items():
                await self._process_day(trip, day, day_views, result, token)
        except OperationCancelledError:
            logger.info(f"Synthesis for trip {trip_id} cancelled")
            result.cancelled = True

        logger.info(
            f"Created {len(result.created)} transport entries, "
            f"{len(result.overlaps)} overlaps detected",
            extra={
                "structured": {
                    "trip_id": trip_id,
                    "created": len(result.created),
                    "overlaps": len(result.overlaps),
                    "skipped": len(result.skipped),
                    "cancelled": result.cancelled,
                }
            },
        )
        return result

    async def _process_day(
        self,
        trip: Trip,
        day: str,
        day_views: list[EntryView],
        result: SynthesisResult,
        token: CancelToken,
    ) -> None:
        checkout_end: dict[str, datetime] = {}
        checkin_start: dict[str, datetime] = {}
        for v in day_views:
            if v.entry.linked_flight_id and v.entry.linked_type == LinkRole.checkout:
                checkout_end[v.entry.linked_flight_id] = v.end_time
            if v.entry.linked_flight_id and v.entry.linked_type == LinkRole.checkin:
                checkin_start[v.entry.linked_flight_id] = v.start_time

        main = sorted(
            (v for v in day_views if v.entry.linked_type is None), key=lambda v: v.start_time
        )

        for a, b in zip(main, main[1:]):
            token.throw_if_cancelled()
            reason = await self._bridge(
                trip, a, b, main, checkout_end, checkin_start, result, token
            )
            if reason is not None:
                self._skip(day, a, b, reason, result)

    async def _bridge(
        self,
        trip: Trip,
        a: EntryView,
        b: EntryView,
        main: list[EntryView],
        checkout_end: dict[str, datetime],
        checkin_start: dict[str, datetime],
        result: SynthesisResult,
        token: CancelToken,
    ) -> SkipReason | None:
        """Create the transfer for one pair, or say why not."""
        if a.option is None or b.option is None:
            return SkipReason.missing_option
        if a.is_transport_like or b.is_transport_like:
            return SkipReason.transport_like
        if any(
            v.is_transfer
            and (
                a.end_time <= v.start_time <= b.start_time
                or (v.entry.from_entry_id == a.id and v.entry.to_entry_id == b.id)
            )
            for v in main
        ):
            return SkipReason.already_bridged

        origin = departure_point(a.option)
        destination = arrival_point(b.option)
        if origin is None or destination is None:
            return SkipReason.unresolvable_location

        start = checkout_end.get(a.id, a.end_time) if a.is_flight else a.end_time
        deadline = checkin_start.get(b.id, b.start_time) if b.is_flight else b.start_time

        if b.is_flight and b.id in checkin_start and checkin_start[b.id] <= start:
            return SkipReason.checkin_bridges_gap
        if start >= deadline:
            return SkipReason.no_gap

        try:
            routes = await self._resolver.resolve(
                origin, destination, SYNTHESIS_MODES, departure_time=start, cancel_token=token
            )
        except UnresolvableLocationError:
            return SkipReason.unresolvable_location

        selected = select_synthesis_mode(routes, trip.walk_threshold_min)
        if selected is None:
            return SkipReason.no_route

        end = start + timedelta(minutes=transfer_block_minutes(selected.duration_min))
        try:
            transfer_id = await asyncio.shield(
                self._write_transfer(a, b, start, end, selected, routes)
            )
        except (PersistenceError, ValueError) as e:
            logger.warning(f"Failed to insert transport entry {a.id} -> {b.id}: {e}")
            return SkipReason.persistence_failure

        result.created.append(
            CreatedTransfer(
                id=transfer_id,
                start_time=start,
                end_time=end,
                mode=selected.mode,
                duration_min=selected.duration_min,
                from_entry_id=a.id,
                to_entry_id=b.id,
            )
        )
        self._metrics.inc_created(selected.mode.value)

        if end > b.start_time:
            result.overlaps.append(
                OverlapRecord(
                    transport_id=transfer_id,
                    transport_end=end,
                    blocked_entry_id=b.id,
                    blocked_start=b.start_time,
                    overlap_min=math.ceil((end - b.start_time).total_seconds() / 60),
                )
            )
        return None

    async def _write_transfer(
        self,
        a: EntryView,
        b: EntryView,
        start: datetime,
        end: datetime,
        selected: ModeRoute,
        routes: list[ModeRoute],
    ) -> str:
        """Create the transfer entry and its option as one unit.

        If the option cannot be written the entry is deleted again, so no
        entry is left behind without its option.
        """
        entry = await self._store.create_entry(
            NewEntry(
                trip_id=a.entry.trip_id,
                start_time=start,
                end_time=end,
                is_scheduled=True,
                is_locked=False,
                scheduled_day=a.entry.scheduled_day,
                from_entry_id=a.id,
                to_entry_id=b.id,
            )
        )

        destination = place_label(b.option, "to")
        try:
            await self._store.create_option(
                NewOption(
                    entry_id=entry.id,
                    name=transfer_name(selected.mode, destination),
                    category=Category.transfer.value,
                    location_name=destination,
                    departure_location=place_label(a.option, "from"),
                    arrival_location=destination,
                    transport_mode=selected.mode,
                    distance_km=selected.distance_km,
                    route_polyline=selected.polyline,
                    transport_modes=routes,
                )
            )
        except (PersistenceError, ValueError):
            await self._store.delete_entry(entry.id)
            raise

        return entry.id

    def _skip(
        self, day: str, a: EntryView, b: EntryView, reason: SkipReason, result: SynthesisResult
    ) -> None:
        result.skipped.append(SkippedPair(from_entry_id=a.id, to_entry_id=b.id, reason=reason))
        self._metrics.inc_skipped(reason.value)
        logger.info(
            f"Skipping {a.id} -> {b.id}: {reason.value}",
            extra={"structured": {"day": day, "from": a.id, "to": b.id, "reason": reason.value}},
        )
