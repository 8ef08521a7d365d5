"""Timeline models - trips, entries and their options."""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.app.models.common import Category, LinkRole, TravelMode, ensure_utc
from backend.app.models.routes import ModeRoute


class Trip(BaseModel):
    """Trip container with the scheduling policy values."""

    id: str
    name: str = ""
    home_timezone: str = "Europe/London"
    walk_threshold_min: int = Field(default=10, ge=0)
    default_checkin_hours: float = Field(default=2.0, ge=0)
    default_checkout_min: int = Field(default=30, ge=0)
    start_date: date | None = None
    end_date: date | None = None

    @property
    def has_fixed_dates(self) -> bool:
        return self.start_date is not None


class Entry(BaseModel):
    """A block of time on a trip timeline.

    Unscheduled entries sit in the ideas backlog. ``scheduled_day`` is only
    meaningful when the trip has no fixed calendar dates.
    """

    id: str
    trip_id: str
    start_time: datetime
    end_time: datetime
    is_locked: bool = False
    is_scheduled: bool = True
    scheduled_day: int | None = None
    linked_flight_id: str | None = None
    linked_type: LinkRole | None = None
    from_entry_id: str | None = None
    to_entry_id: str | None = None
    version: int = 1

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "Entry":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def duration_min(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60


class EntryOption(BaseModel):
    """Descriptive content attached to an entry.

    Several options may compete for one entry (voting); the scheduling core
    only ever sees the active one (see ``scheduling.views``).
    """

    id: str
    entry_id: str
    name: str
    category: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None

    # Flights
    departure_location: str | None = None
    arrival_location: str | None = None
    departure_tz: str | None = None
    arrival_tz: str | None = None
    departure_terminal: str | None = None
    arrival_terminal: str | None = None
    airport_checkin_hours: float | None = Field(default=None, ge=0)
    airport_checkout_min: int | None = Field(default=None, ge=0)

    # Transfers (departure/arrival_location double as from/to)
    transport_mode: TravelMode | None = None
    distance_km: float | None = None
    route_polyline: str | None = None
    transport_modes: list[ModeRoute] = Field(default_factory=list)

    # Hotels
    hotel_id: str | None = None

    vote_count: int = 0

    @model_validator(mode="after")
    def _category_invariants(self) -> "EntryOption":
        if self.category == Category.flight.value and not (self.departure_tz and self.arrival_tz):
            raise ValueError("flight options require departure_tz and arrival_tz")
        if self.transport_mode is not None and self.transport_modes:
            if self.transport_mode not in {m.mode for m in self.transport_modes}:
                raise ValueError("transport_mode must be one of transport_modes")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class NewEntry(BaseModel):
    """Fields for creating an entry (id is generated when omitted)."""

    id: str | None = None
    trip_id: str
    start_time: datetime
    end_time: datetime
    is_locked: bool = False
    is_scheduled: bool = True
    scheduled_day: int | None = None
    linked_flight_id: str | None = None
    linked_type: LinkRole | None = None
    from_entry_id: str | None = None
    to_entry_id: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "NewEntry":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class EntryPatch(BaseModel):
    """Partial entry update; only explicitly set fields are written."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    is_locked: bool | None = None
    is_scheduled: bool | None = None
    scheduled_day: int | None = None
    from_entry_id: str | None = None
    to_entry_id: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class NewOption(BaseModel):
    """Fields for creating an entry option."""

    id: str | None = None
    entry_id: str
    name: str
    category: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None
    departure_location: str | None = None
    arrival_location: str | None = None
    departure_tz: str | None = None
    arrival_tz: str | None = None
    departure_terminal: str | None = None
    arrival_terminal: str | None = None
    airport_checkin_hours: float | None = None
    airport_checkout_min: int | None = None
    transport_mode: TravelMode | None = None
    distance_km: float | None = None
    route_polyline: str | None = None
    transport_modes: list[ModeRoute] = Field(default_factory=list)
    hotel_id: str | None = None


class OptionPatch(BaseModel):
    """Partial option update."""

    name: str | None = None
    airport_checkin_hours: float | None = None
    airport_checkout_min: int | None = None
    transport_mode: TravelMode | None = None
    distance_km: float | None = None
    route_polyline: str | None = None
