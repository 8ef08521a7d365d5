"""Temporal interval utilities.

All timeline instants are stored as aware UTC datetimes. Users enter wall-clock
times, which only make sense together with the zone active on that calendar day,
so every conversion here takes an explicit IANA zone.
"""

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from functools import lru_cache
from types import MappingProxyType
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.app.models.common import LinkRole, ensure_utc
from backend.app.models.entries import Trip
from backend.app.scheduling.views import EntryView

# Symbolic calendar for trips without fixed dates: day n is REFERENCE_DATE + n
REFERENCE_DATE = date(2099, 1, 1)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class InvalidTimeZoneError(ValueError):
    """Time zone identifier could not be resolved."""

    pass


class InvalidTimeFormatError(ValueError):
    """Time is not 24-hour HH:MM (or date is not YYYY-MM-DD)."""

    pass


@dataclass(frozen=True)
class LocalDateTime:
    """Wall-clock date and time in some zone."""

    date: str  # YYYY-MM-DD
    time: str  # HH:MM


@dataclass(frozen=True)
class FlightLeg:
    """The parts of a flight that move the active time zone."""

    entry_id: str
    departure: datetime
    arrival: datetime
    departure_tz: str
    arrival_tz: str


@lru_cache(maxsize=256)
def get_zone(tz: str) -> ZoneInfo:
    """Resolve an IANA zone id.

    Raises:
        InvalidTimeZoneError: If the identifier is unknown or malformed
    """
    if not tz:
        raise InvalidTimeZoneError("Time zone identifier is empty")
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidTimeZoneError(f"Unknown time zone: {tz!r}") from e


def parse_time(value: str) -> time:
    """Parse a 24-hour ``HH:MM`` string."""
    match = _TIME_RE.match(value or "")
    if match is None:
        raise InvalidTimeFormatError(f"Expected 24-hour HH:MM, got {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def parse_date(value: date | str) -> date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise InvalidTimeFormatError(f"Expected YYYY-MM-DD, got {value!r}") from e


def local_to_utc(day: date | str, time_str: str, tz: str) -> datetime:
    """Interpret a wall-clock date+time in ``tz`` and return the UTC instant.

    The offset is taken for that specific date, so DST and non-whole-hour zones
    resolve correctly. Ambiguous wall times (autumn fall-back) resolve to the
    first occurrence; times inside a spring-forward gap use the pre-transition
    offset.

    Raises:
        InvalidTimeZoneError: If ``tz`` is not resolvable
        InvalidTimeFormatError: If ``time_str`` or ``day`` is malformed
    """
    zone = get_zone(tz)
    local = datetime.combine(parse_date(day), parse_time(time_str), tzinfo=zone)
    return local.astimezone(UTC)


def utc_to_local(instant: datetime, tz: str) -> LocalDateTime:
    """Inverse of ``local_to_utc``."""
    local = ensure_utc(instant).astimezone(get_zone(tz))
    return LocalDateTime(date=local.strftime("%Y-%m-%d"), time=local.strftime("%H:%M"))


def date_in_timezone(instant: datetime, tz: str) -> str:
    """Calendar day (YYYY-MM-DD) of an instant as seen in ``tz``."""
    return utc_to_local(instant, tz).date


def gap_minutes(earlier_end: datetime, later_start: datetime) -> float:
    """Minutes between two instants; negative when the intervals overlap."""
    return (ensure_utc(later_start) - ensure_utc(earlier_end)).total_seconds() / 60


def day_index_to_date(index: int) -> date:
    """Symbolic calendar date of relative day ``index``."""
    return REFERENCE_DATE + timedelta(days=index)


def date_to_day_index(day: date | str) -> int:
    """Relative day index of a symbolic calendar date."""
    return (parse_date(day) - REFERENCE_DATE).days


def trip_day_date(trip: Trip, index: int) -> date:
    """Calendar date of day ``index`` of a trip, fixed or symbolic."""
    if trip.start_date is not None:
        return trip.start_date + timedelta(days=index)
    return day_index_to_date(index)


def flight_legs(views: Iterable[EntryView]) -> list[FlightLeg]:
    """Flights with both zones, in departure order."""
    legs = [
        FlightLeg(
            entry_id=v.id,
            departure=v.start_time,
            arrival=v.end_time,
            departure_tz=v.option.departure_tz,
            arrival_tz=v.option.arrival_tz,
        )
        for v in views
        if v.is_flight and v.option and v.option.departure_tz and v.option.arrival_tz
    ]
    return sorted(legs, key=lambda leg: leg.departure)


def build_day_timezone_map(
    flights: Sequence[FlightLeg], home_tz: str, days: Iterable[str]
) -> Mapping[str, str]:
    """Map each calendar day to the zone that local times on it are read in.

    Starts at ``home_tz``; from the arrival day of each flight (in its arrival
    zone) onward, that flight's arrival zone takes over. Flights are folded in
    departure order, so a later flight overrides an earlier one.
    """
    get_zone(home_tz)
    transitions = [
        (date_in_timezone(leg.arrival, leg.arrival_tz), leg.arrival_tz)
        for leg in sorted(flights, key=lambda f: f.departure)
    ]

    result: dict[str, str] = {}
    for day in sorted(set(days)):
        tz = home_tz
        for arrival_day, arrival_tz in transitions:
            if day >= arrival_day:
                tz = arrival_tz
        result[day] = tz

    return MappingProxyType(result)


def group_entries_by_day(views: Sequence[EntryView], home_tz: str) -> dict[str, list[EntryView]]:
    """Partition entries into calendar days using the per-day effective zone.

    A flight belongs to the day of its departure in its departure zone.
    Check-in/check-out entries follow their anchor flight when it is present,
    so the synthesizer sees them alongside it. Everything else is dated in
    the zone active on its (home-zone) day.
    """
    legs = flight_legs(views)
    provisional = {v.id: date_in_timezone(v.start_time, home_tz) for v in views}
    day_tz = build_day_timezone_map(legs, home_tz, provisional.values())

    day_of: dict[str, str] = {}
    for v in views:
        if v.is_flight and v.option and v.option.departure_tz:
            day_of[v.id] = date_in_timezone(v.start_time, v.option.departure_tz)
        else:
            tz = day_tz.get(provisional[v.id], home_tz)
            day_of[v.id] = date_in_timezone(v.start_time, tz)

    for v in views:
        anchor_id = v.entry.linked_flight_id
        if v.entry.linked_type in (LinkRole.checkin, LinkRole.checkout) and anchor_id in day_of:
            day_of[v.id] = day_of[anchor_id]

    groups: dict[str, list[EntryView]] = {}
    for v in views:
        groups.setdefault(day_of[v.id], []).append(v)

    return {day: groups[day] for day in sorted(groups)}
