"""Entry lifecycle operations that trigger derived writes.

These are the explicit user actions (save a flight, edit times, switch a
transfer's mode, delete) together with the cascade each of them implies.
Validation happens before the first write.
"""

import logging
from datetime import date, datetime, timedelta

from backend.app.db.repositories import (
    EntryFilter,
    EntryStore,
    PersistenceError,
    TripRepository,
)
from backend.app.models.cascade import (
    AnchorField,
    CascadeOutcome,
    CascadeReason,
    EntryEditResult,
    FlightBundle,
)
from backend.app.models.common import Category, LinkRole, TravelMode
from backend.app.models.entries import (
    Entry,
    EntryOption,
    EntryPatch,
    NewEntry,
    NewOption,
    OptionPatch,
    Trip,
)
from backend.app.models.extraction import ExtractedFlight, ExtractedHotel
from backend.app.scheduling.cascade import (
    apply_cascade,
    checkin_hours_for,
    checkout_minutes_for,
    load_dependents,
    on_anchor_time_changed,
)
from backend.app.scheduling.timezones import (
    InvalidTimeFormatError,
    build_day_timezone_map,
    flight_legs,
    get_zone,
    local_to_utc,
    parse_date,
)
from backend.app.scheduling.travel_modes import transfer_block_minutes, transfer_name
from backend.app.scheduling.views import EntryView, build_entry_views, select_active_option

logger = logging.getLogger(__name__)

CHECKIN_NAME = "Airport Check-in"
CHECKOUT_NAME = "Airport Checkout"
DEFAULT_CHECK_IN_TIME = "15:00"
DEFAULT_CHECKOUT_TIME = "11:00"


class NotATransferError(ValueError):
    """Mode switching was requested for an entry that is not a transfer."""

    pass


class ModeUnavailableError(ValueError):
    """The requested mode is not among the transfer's stored candidate modes."""

    pass


async def load_view(store: EntryStore, entry: Entry) -> EntryView:
    """Entry with its active option."""
    options = await store.list_options([entry.id])
    return EntryView(entry=entry, option=select_active_option(options))


def _airport_label(location: str | None) -> str | None:
    # "LHR - London Heathrow" -> "LHR"
    if not location:
        return None
    return location.split(" - ")[0] or None


async def create_entry_with_option(store: EntryStore, entry: NewEntry, option: NewOption) -> Entry:
    """Entry plus option; the entry is removed again if the option write fails."""
    created = await store.create_entry(entry)
    try:
        await store.create_option(option.model_copy(update={"entry_id": created.id}))
    except (PersistenceError, ValueError):
        await store.delete_entry(created.id)
        raise
    return created


async def create_flight_with_links(
    store: EntryStore, trip: Trip, flight: NewEntry, option: NewOption
) -> FlightBundle:
    """Save a new flight and create its check-in and check-out blocks.

    The check-in block is ``[departure - checkin_hours, departure]`` and the
    check-out block ``[arrival, arrival + checkout_min]``, using the option's
    policy or else the trip defaults. A zero duration creates no block. A
    failure creating either block is logged; the flight itself stays.

    Raises:
        InvalidTimeZoneError: If either flight zone is missing or unknown
        PersistenceError: If the flight or its option cannot be written
    """
    for tz in (option.departure_tz, option.arrival_tz):
        get_zone(tz or "")

    flight_option = option.model_copy(update={"category": Category.flight.value})
    flight_entry = await create_entry_with_option(store, flight, flight_option)
    view = await load_view(store, flight_entry)
    bundle = FlightBundle(flight=flight_entry, option=view.option)

    checkin_hours = checkin_hours_for(view, trip)
    if checkin_hours > 0:
        bundle.checkin = await _create_linked_block(
            store,
            flight_entry,
            LinkRole.checkin,
            flight_entry.start_time - timedelta(hours=checkin_hours),
            flight_entry.start_time,
            CHECKIN_NAME,
            _airport_label(option.departure_location),
        )

    checkout_min = checkout_minutes_for(view, trip)
    if checkout_min > 0:
        bundle.checkout = await _create_linked_block(
            store,
            flight_entry,
            LinkRole.checkout,
            flight_entry.end_time,
            flight_entry.end_time + timedelta(minutes=checkout_min),
            CHECKOUT_NAME,
            _airport_label(option.arrival_location),
        )

    return bundle


async def _create_linked_block(
    store: EntryStore,
    flight: Entry,
    role: LinkRole,
    start: datetime,
    end: datetime,
    name: str,
    location_name: str | None,
) -> Entry | None:
    try:
        return await create_entry_with_option(
            store,
            NewEntry(
                trip_id=flight.trip_id,
                start_time=start,
                end_time=end,
                scheduled_day=flight.scheduled_day,
                linked_flight_id=flight.id,
                linked_type=role,
            ),
            NewOption(
                entry_id=flight.id,
                name=name,
                category=Category.airport_processing.value,
                location_name=location_name,
            ),
        )
    except PersistenceError as e:
        logger.warning(f"Failed to create {role.value} block for flight {flight.id}: {e}")
        return None


def flight_times_from_extraction(
    flight: ExtractedFlight,
    departure_tz: str,
    arrival_tz: str,
    fallback_date: date | str | None = None,
) -> tuple[datetime, datetime]:
    """UTC departure and arrival instants for an extracted flight leg.

    Local times are read in the respective airport zones. An arrival that
    would not come after the departure is taken to land on a following day.

    Raises:
        InvalidTimeFormatError: If times are not HH:MM or no date is known
        InvalidTimeZoneError: If either zone is unknown
    """
    day_value = flight.date or fallback_date
    if day_value is None:
        raise InvalidTimeFormatError(f"Flight {flight.flight_number} has no date")
    day = parse_date(day_value)

    departure = local_to_utc(day, flight.departure_time, departure_tz)
    arrival = local_to_utc(day, flight.arrival_time, arrival_tz)
    offset = 1
    while arrival <= departure and offset <= 2:
        arrival = local_to_utc(day + timedelta(days=offset), flight.arrival_time, arrival_tz)
        offset += 1
    if arrival <= departure:
        raise InvalidTimeFormatError(f"Flight {flight.flight_number} arrives before departing")
    return departure, arrival


def hotel_stay_from_extraction(hotel: ExtractedHotel, tz: str) -> tuple[datetime, datetime]:
    """UTC check-in and checkout instants for an extracted hotel stay.

    Missing times fall back to 15:00 check-in and 11:00 checkout. A missing
    checkout date is derived from ``num_nights``.

    Raises:
        InvalidTimeFormatError: If the stay has no check-in date, no way to
            find its checkout date, or ends before it starts
        InvalidTimeZoneError: If ``tz`` is unknown
    """
    if hotel.check_in_date is None:
        raise InvalidTimeFormatError(f"Hotel {hotel.hotel_name} has no check-in date")
    check_in_day = parse_date(hotel.check_in_date)

    if hotel.checkout_date is not None:
        checkout_day = parse_date(hotel.checkout_date)
    elif hotel.num_nights:
        checkout_day = check_in_day + timedelta(days=hotel.num_nights)
    else:
        raise InvalidTimeFormatError(f"Hotel {hotel.hotel_name} has no checkout date")

    check_in = local_to_utc(check_in_day, hotel.check_in_time or DEFAULT_CHECK_IN_TIME, tz)
    checkout = local_to_utc(checkout_day, hotel.checkout_time or DEFAULT_CHECKOUT_TIME, tz)
    if checkout <= check_in:
        raise InvalidTimeFormatError(f"Hotel {hotel.hotel_name} checks out before checking in")
    return check_in, checkout


async def zone_for_day(store: EntryStore, trip: Trip, day: date | str) -> str:
    """Time zone in effect on a calendar day of the trip."""
    entries = await store.list_entries(trip.id, EntryFilter(is_scheduled=True))
    views = build_entry_views(entries, await store.list_options([e.id for e in entries]))
    key = parse_date(day).isoformat()
    return build_day_timezone_map(flight_legs(views), trip.home_timezone, [key])[key]


async def _cascade(
    store: EntryStore, trip: Trip, entry: Entry, fields: list[AnchorField]
) -> CascadeOutcome:
    if not fields:
        return CascadeOutcome()
    anchor = await load_view(store, entry)
    dependents = await load_dependents(store, entry)

    commands = {}
    for field in fields:
        for command in on_anchor_time_changed(anchor, field, dependents, trip):
            commands[command.entry_id] = command
    outcome = await apply_cascade(store, list(commands.values()))

    # A pulled entry brings its own check-in/check-out blocks and transfers along
    for command in commands.values():
        if command.reason != CascadeReason.transfer_pull:
            continue
        if command.entry_id not in outcome.applied:
            continue
        try:
            pulled = await store.get_entry(command.entry_id)
            follow_up = await _cascade(
                store, trip, pulled, [AnchorField.start_time, AnchorField.end_time]
            )
        except PersistenceError as e:
            logger.warning(f"Cascade from pulled entry {command.entry_id} failed: {e}")
            outcome.failed.append(command.entry_id)
            continue
        outcome.applied.extend(follow_up.applied)
        outcome.failed.extend(follow_up.failed)
    return outcome


async def update_entry_times(
    store: EntryStore,
    trips: TripRepository,
    entry_id: str,
    new_start: datetime,
    new_end: datetime,
    expected_version: int | None = None,
) -> EntryEditResult:
    """Explicit user edit of an entry's interval, followed by its cascade.

    Locked entries may be edited here; the lock only protects them from
    automated changes.

    Raises:
        ValueError: If ``new_end`` is not after ``new_start``
        EntryNotFoundError: If the entry does not exist
        StaleEntryError: If ``expected_version`` does not match
    """
    patch = EntryPatch(start_time=new_start, end_time=new_end)
    if patch.end_time <= patch.start_time:
        raise ValueError("end_time must be after start_time")

    current = await store.get_entry(entry_id)
    trip = await trips.get_trip(current.trip_id)
    updated = await store.update_entry(entry_id, patch, expected_version=expected_version)

    fields = []
    if updated.start_time != current.start_time:
        fields.append(AnchorField.start_time)
    if updated.end_time != current.end_time:
        fields.append(AnchorField.end_time)

    outcome = await _cascade(store, trip, updated, fields)
    return EntryEditResult(entry=updated, cascade=outcome)


async def update_flight_policy(
    store: EntryStore,
    trips: TripRepository,
    flight_id: str,
    checkin_hours: float | None = None,
    checkout_min: int | None = None,
) -> EntryEditResult:
    """Change a flight's check-in/check-out durations and resize its blocks.

    Raises:
        ValueError: If the entry is not a flight or a duration is negative
    """
    flight = await store.get_entry(flight_id)
    view = await load_view(store, flight)
    if not view.is_flight or view.option is None:
        raise ValueError(f"Entry {flight_id} is not a flight")

    patch = OptionPatch.model_validate(
        {
            k: v
            for k, v in {
                "airport_checkin_hours": checkin_hours,
                "airport_checkout_min": checkout_min,
            }.items()
            if v is not None
        }
    )
    if (checkin_hours or 0) < 0 or (checkout_min or 0) < 0:
        raise ValueError("Check-in and check-out durations must not be negative")

    await store.update_option(view.option.id, patch)
    fields = []
    if checkin_hours is not None:
        fields.append(AnchorField.checkin_hours)
    if checkout_min is not None:
        fields.append(AnchorField.checkout_min)

    trip = await trips.get_trip(flight.trip_id)
    outcome = await _cascade(store, trip, flight, fields)
    return EntryEditResult(entry=flight, cascade=outcome)


async def switch_transfer_mode(
    store: EntryStore,
    trips: TripRepository,
    transfer_id: str,
    mode: TravelMode,
    expected_version: int | None = None,
) -> EntryEditResult:
    """Re-select a transfer's mode from its stored candidates without re-querying.

    The transfer keeps its start; its end moves to fit the new mode's block,
    and the entry it leads to is pulled along.

    Raises:
        NotATransferError: If the entry is not a transfer
        ModeUnavailableError: If ``mode`` was not among the stored candidates
    """
    transfer = await store.get_entry(transfer_id)
    view = await load_view(store, transfer)
    if not view.is_transfer or view.option is None:
        raise NotATransferError(f"Entry {transfer_id} is not a transfer")

    option: EntryOption = view.option
    route = next((m for m in option.transport_modes if m.mode == mode), None)
    if route is None:
        raise ModeUnavailableError(f"No stored {mode.value} route for transfer {transfer_id}")

    new_end = transfer.start_time + timedelta(minutes=transfer_block_minutes(route.duration_min))
    trip = await trips.get_trip(transfer.trip_id)
    updated = await store.update_entry(
        transfer_id, EntryPatch(end_time=new_end), expected_version=expected_version
    )
    await store.update_option(
        option.id,
        OptionPatch(
            name=transfer_name(mode, option.arrival_location or "Unknown"),
            transport_mode=mode,
            distance_km=route.distance_km,
            route_polyline=route.polyline,
        ),
    )

    fields = [AnchorField.end_time] if updated.end_time != transfer.end_time else []
    outcome = await _cascade(store, trip, updated, fields)
    return EntryEditResult(entry=updated, cascade=outcome)


async def delete_entry(store: EntryStore, entry_id: str) -> list[str]:
    """Delete an entry with its options and whatever only exists because of it.

    - flights take their check-in/check-out blocks with them
    - hotels take every night-block booked under the same ``hotel_id``
    - transfers that led to or from a deleted entry are detached

    Returns:
        IDs of all deleted entries
    """
    entry = await store.get_entry(entry_id)
    view = await load_view(store, entry)
    doomed = [entry.id]

    if view.is_flight:
        children = await store.list_entries(entry.trip_id, EntryFilter(linked_flight_id=entry.id))
        doomed.extend(c.id for c in children)

    if view.category == Category.hotel.value and view.option and view.option.hotel_id:
        trip_entries = await store.list_entries(entry.trip_id)
        for option in await store.list_options([e.id for e in trip_entries]):
            if option.hotel_id == view.option.hotel_id and option.entry_id not in doomed:
                doomed.append(option.entry_id)

    for doomed_id in doomed:
        await store.delete_entry(doomed_id)

    gone = set(doomed)
    for other in await store.list_entries(entry.trip_id):
        patch = {}
        if other.from_entry_id in gone:
            patch["from_entry_id"] = None
        if other.to_entry_id in gone:
            patch["to_entry_id"] = None
        if patch:
            try:
                await store.update_entry(other.id, EntryPatch.model_validate(patch))
            except PersistenceError as e:
                logger.warning(f"Failed to detach transfer {other.id}: {e}")

    logger.info(f"Deleted {len(doomed)} entries starting from {entry_id}")
    return doomed
