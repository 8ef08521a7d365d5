"""Trip-level endpoints - timeline listing, transport synthesis, conflicts and weather."""

import base64
import binascii
import logging
import math
from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.app.adapters.weather import fetch_hourly_weather
from backend.app.api.deps import (
    ExecutorDep,
    ExtractorDep,
    SettingsDep,
    StoreDep,
    SynthesizerDep,
    TripsDep,
)
from backend.app.db.repositories import EntryFilter
from backend.app.models.cascade import FlightBundle
from backend.app.models.common import Category, Geo
from backend.app.models.conflicts import ConflictInfo, Recommendation
from backend.app.models.entries import Entry, EntryOption, NewEntry, NewOption, Trip
from backend.app.models.extraction import ExtractedHotel, FlightExtraction
from backend.app.models.synthesis import SynthesisResult
from backend.app.models.weather import WeatherHour, WeatherRequest
from backend.app.scheduling.conflicts import analyze_conflict
from backend.app.scheduling.lifecycle import (
    create_entry_with_option,
    create_flight_with_links,
    hotel_stay_from_extraction,
    load_view,
    zone_for_day,
)
from backend.app.scheduling.recommendations import apply_recommendation, generate_recommendations
from backend.app.scheduling.recovery import sweep_orphans
from backend.app.scheduling.timezones import (
    InvalidTimeFormatError,
    get_zone,
    group_entries_by_day,
)
from backend.app.scheduling.views import build_entry_views
from backend.app.tools.executor import ProviderConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])

WEATHER_PROVIDER = "open_meteo"


class CreateTripRequest(BaseModel):
    """Request body for POST /trips."""

    id: str = Field(..., min_length=1)
    name: str = ""
    home_timezone: str | None = None
    walk_threshold_min: int | None = Field(None, ge=0)
    default_checkin_hours: float | None = Field(None, ge=0)
    default_checkout_min: int | None = Field(None, ge=0)
    start_date: date | None = None
    end_date: date | None = None


class OptionFields(BaseModel):
    """Option content supplied with a new entry."""

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
    airport_checkin_hours: float | None = Field(None, ge=0)
    airport_checkout_min: int | None = Field(None, ge=0)
    hotel_id: str | None = None


class EntryFields(BaseModel):
    """Timing of a new entry (instants, stored in UTC)."""

    start_time: datetime
    end_time: datetime
    is_locked: bool = False
    is_scheduled: bool = True
    scheduled_day: int | None = None


class CreateEntryRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/entries."""

    entry: EntryFields
    option: OptionFields


class TimelineItem(BaseModel):
    """Entry with its active option."""

    entry: Entry
    option: EntryOption | None


class CreateEntryResponse(BaseModel):
    """Created entry; flights also report their check-in/check-out blocks."""

    entry: Entry
    checkin: Entry | None = None
    checkout: Entry | None = None


class ConflictRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/conflicts."""

    placed_entry_id: str
    prev_entry_id: str | None = None
    next_entry_id: str | None = None
    prev_travel_min: float | None = Field(None, ge=0)
    next_travel_min: float | None = Field(None, ge=0)


class ConflictSummary(BaseModel):
    """JSON form of ConflictInfo; a missing neighbour's gap is null."""

    entry_id: str
    entry_name: str
    discrepancy_min: int
    prev_travel_min: float | None
    next_travel_min: float | None
    prev_gap_min: float | None
    next_gap_min: float | None
    has_conflict: bool

    @classmethod
    def from_info(cls, info: ConflictInfo) -> "ConflictSummary":
        return cls(
            entry_id=info.entry_id,
            entry_name=info.entry_name,
            discrepancy_min=info.discrepancy_min,
            prev_travel_min=info.prev_travel_min,
            next_travel_min=info.next_travel_min,
            prev_gap_min=None if math.isinf(info.prev_gap_min) else info.prev_gap_min,
            next_gap_min=None if math.isinf(info.next_gap_min) else info.next_gap_min,
            has_conflict=info.has_conflict,
        )


class ConflictResponse(BaseModel):
    """Response for POST /trips/{trip_id}/conflicts."""

    conflict: ConflictSummary
    recommendations: list[Recommendation]
    display_timezone: str


class ExtractBookingRequest(BaseModel):
    """Request body for the POST /trips/{trip_id}/bookings/extract* routes."""

    content_base64: str = Field(..., min_length=1)
    mime_type: str = "image/png"


class HotelStayResponse(BaseModel):
    """Response for POST /trips/{trip_id}/bookings/extract-hotel."""

    hotel: ExtractedHotel | None = None
    source: str = "stub"
    check_in: datetime | None = None
    checkout: datetime | None = None
    timezone: str | None = None


@router.post("", response_model=Trip, status_code=status.HTTP_201_CREATED)
async def create_trip(request: CreateTripRequest, trips: TripsDep, settings: SettingsDep) -> Trip:
    """Create a trip; unset policy values fall back to the configured defaults."""
    get_zone(request.home_timezone or settings.default_home_timezone)
    trip = Trip(
        id=request.id,
        name=request.name,
        home_timezone=request.home_timezone or settings.default_home_timezone,
        walk_threshold_min=(
            request.walk_threshold_min
            if request.walk_threshold_min is not None
            else settings.default_walk_threshold_min
        ),
        default_checkin_hours=(
            request.default_checkin_hours
            if request.default_checkin_hours is not None
            else settings.default_checkin_hours
        ),
        default_checkout_min=(
            request.default_checkout_min
            if request.default_checkout_min is not None
            else settings.default_checkout_min
        ),
        start_date=request.start_date,
        end_date=request.end_date,
    )
    return await trips.create_trip(trip)


@router.get("/{trip_id}/entries", response_model=list[TimelineItem])
async def list_timeline(
    trip_id: str,
    store: StoreDep,
    trips: TripsDep,
    scheduled: Annotated[bool | None, Query()] = None,
) -> list[TimelineItem]:
    """List a trip's entries with their active options, in start order."""
    await trips.get_trip(trip_id)
    entries = await store.list_entries(trip_id, EntryFilter(is_scheduled=scheduled))
    views = build_entry_views(entries, await store.list_options([e.id for e in entries]))
    return [TimelineItem(entry=v.entry, option=v.option) for v in views]


@router.post(
    "/{trip_id}/entries",
    response_model=CreateEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_entry(
    trip_id: str, request: CreateEntryRequest, store: StoreDep, trips: TripsDep
) -> CreateEntryResponse:
    """Create an entry with its option.

    Flights get their check-in and check-out blocks created alongside.
    """
    trip = await trips.get_trip(trip_id)
    new_entry = NewEntry(trip_id=trip.id, **request.entry.model_dump())
    option = NewOption(entry_id="", **request.option.model_dump())

    if option.category == Category.flight.value:
        bundle: FlightBundle = await create_flight_with_links(store, trip, new_entry, option)
        return CreateEntryResponse(
            entry=bundle.flight, checkin=bundle.checkin, checkout=bundle.checkout
        )

    entry = await create_entry_with_option(store, new_entry, option)
    return CreateEntryResponse(entry=entry)


@router.post("/{trip_id}/transport/synthesize", response_model=SynthesisResult)
async def synthesize_transport(trip_id: str, synthesizer: SynthesizerDep) -> SynthesisResult:
    """Insert transfers between consecutive entries that have none yet."""
    return await synthesizer.synthesize(trip_id)


@router.post("/{trip_id}/conflicts", response_model=ConflictResponse)
async def analyze_placement(
    trip_id: str, request: ConflictRequest, store: StoreDep, trips: TripsDep
) -> ConflictResponse:
    """Check whether a placed entry leaves room for the travel around it.

    Recommendations are proposed from the placed entry's day, with clock
    times shown in that day's zone.
    """
    trip = await trips.get_trip(trip_id)

    placed = await load_view(store, await store.get_entry(request.placed_entry_id))
    prev_view = (
        await load_view(store, await store.get_entry(request.prev_entry_id))
        if request.prev_entry_id
        else None
    )
    next_view = (
        await load_view(store, await store.get_entry(request.next_entry_id))
        if request.next_entry_id
        else None
    )
    if placed.entry.trip_id != trip.id:
        raise HTTPException(status_code=404, detail="Entry does not belong to this trip")

    conflict = analyze_conflict(
        placed, prev_view, next_view, request.prev_travel_min, request.next_travel_min
    )

    entries = await store.list_entries(trip.id, EntryFilter(is_scheduled=True))
    if all(e.id != placed.id for e in entries):
        # An entry coming in from the ideas list is judged at its proposed slot
        entries = sorted([*entries, placed.entry], key=lambda e: e.start_time)
    views = build_entry_views(entries, await store.list_options([e.id for e in entries]))
    day_entries = []
    placed_day = None
    for day, day_views in group_entries_by_day(views, trip.home_timezone).items():
        if any(v.id == placed.id for v in day_views):
            day_entries, placed_day = day_views, day
            break

    display_tz = (
        await zone_for_day(store, trip, placed_day) if placed_day else trip.home_timezone
    )
    recommendations = generate_recommendations(conflict, day_entries, placed.id, display_tz)

    return ConflictResponse(
        conflict=ConflictSummary.from_info(conflict),
        recommendations=recommendations,
        display_timezone=display_tz,
    )


@router.post("/{trip_id}/recommendations/apply", response_model=list[Entry])
async def apply_chosen_recommendation(
    trip_id: str, recommendation: Recommendation, store: StoreDep, trips: TripsDep
) -> list[Entry]:
    """Commit a recommendation returned by the conflicts endpoint."""
    await trips.get_trip(trip_id)
    return await apply_recommendation(store, recommendation)


@router.post("/{trip_id}/recover", response_model=list[str])
async def recover_trip(trip_id: str, store: StoreDep, trips: TripsDep) -> list[str]:
    """Remove entries left behind by interrupted multi-entry writes."""
    await trips.get_trip(trip_id)
    return await sweep_orphans(store, trip_id)


@router.get("/{trip_id}/weather", response_model=list[WeatherHour])
async def trip_weather(
    trip_id: str,
    lat: Annotated[float, Query(ge=-90, le=90)],
    lng: Annotated[float, Query(ge=-180, le=180)],
    start_date: date,
    end_date: date,
    trips: TripsDep,
    settings: SettingsDep,
    executor: ExecutorDep,
) -> list[WeatherHour]:
    """Hourly forecast for a location, in the location's local time."""
    await trips.get_trip(trip_id)
    request = WeatherRequest(
        location=Geo(lat=lat, lng=lng), start_date=start_date, end_date=end_date
    )
    config = ProviderConfig.from_settings(
        WEATHER_PROVIDER,
        settings,
        hard_timeout_ms=settings.weather_timeout_ms,
        cache_ttl_seconds=settings.weather_cache_ttl_seconds,
    )

    async def fetch(payload: WeatherRequest) -> list[WeatherHour]:
        return await fetch_hourly_weather(payload, base_url=settings.open_meteo_url)

    return await executor.execute(config, fetch, request)


def _decode_document(request: ExtractBookingRequest) -> bytes:
    try:
        return base64.b64decode(request.content_base64, validate=True)
    except binascii.Error as e:
        raise HTTPException(status_code=422, detail="content_base64 is not valid base64") from e


@router.post("/{trip_id}/bookings/extract", response_model=FlightExtraction)
async def extract_booking(
    trip_id: str, request: ExtractBookingRequest, trips: TripsDep, extractor: ExtractorDep
) -> FlightExtraction:
    """Read flight legs out of a booking document (base64 encoded)."""
    await trips.get_trip(trip_id)
    content = _decode_document(request)

    extraction = await extractor.extract_flights(content, request.mime_type)
    logger.info(f"Extracted {len(extraction.flights)} flights for trip {trip_id}")
    return extraction


@router.post("/{trip_id}/bookings/extract-hotel", response_model=HotelStayResponse)
async def extract_hotel_booking(
    trip_id: str,
    request: ExtractBookingRequest,
    store: StoreDep,
    trips: TripsDep,
    extractor: ExtractorDep,
) -> HotelStayResponse:
    """Read a hotel stay out of a booking confirmation (base64 encoded).

    When the stay's dates are readable, check-in and checkout are also given
    as UTC instants in the zone in effect on the check-in day.
    """
    trip = await trips.get_trip(trip_id)
    content = _decode_document(request)

    extraction = await extractor.extract_hotel(content, request.mime_type)
    response = HotelStayResponse(hotel=extraction.hotel, source=extraction.source)
    if extraction.hotel is None:
        logger.info(f"No hotel stay found for trip {trip_id}")
        return response

    hotel = extraction.hotel
    try:
        tz = (
            await zone_for_day(store, trip, hotel.check_in_date)
            if hotel.check_in_date
            else trip.home_timezone
        )
        response.check_in, response.checkout = hotel_stay_from_extraction(hotel, tz)
        response.timezone = tz
    except InvalidTimeFormatError as e:
        logger.info(f"Extracted hotel {hotel.hotel_name} has no usable stay dates: {e}")

    logger.info(f"Extracted hotel {hotel.hotel_name} for trip {trip_id}")
    return response
