"""Entry endpoints - time edits, flight policy, transfer mode switching and deletion."""

from datetime import date, datetime, timedelta

from fastapi import APIRouter
from pydantic import BaseModel, Field, model_validator

from backend.app.api.deps import StoreDep, TripsDep
from backend.app.models.cascade import EntryEditResult
from backend.app.models.common import TravelMode
from backend.app.scheduling.lifecycle import (
    delete_entry,
    switch_transfer_mode,
    update_entry_times,
    update_flight_policy,
    zone_for_day,
)
from backend.app.scheduling.timezones import local_to_utc

router = APIRouter(prefix="/entries", tags=["entries"])


class UpdateTimesRequest(BaseModel):
    """Request body for PATCH /entries/{entry_id}/times.

    Either both instants, or a local ``day`` with ``HH:MM`` start and end. Local
    times are read in ``timezone``, defaulting to the zone in effect on that
    day of the trip. An end at or before the start rolls to the next day.
    """

    start_time: datetime | None = None
    end_time: datetime | None = None
    day: date | None = None
    start_local: str | None = None
    end_local: str | None = None
    timezone: str | None = None
    expected_version: int | None = None

    @model_validator(mode="after")
    def _one_form(self) -> "UpdateTimesRequest":
        instants = self.start_time is not None and self.end_time is not None
        local = self.day is not None and self.start_local and self.end_local
        if not instants and not local:
            raise ValueError("Provide start_time/end_time or day/start_local/end_local")
        return self


class TransportModeRequest(BaseModel):
    """Request body for POST /entries/{entry_id}/transport-mode."""

    mode: TravelMode
    expected_version: int | None = None


class FlightPolicyRequest(BaseModel):
    """Request body for PATCH /entries/{entry_id}/flight-policy."""

    airport_checkin_hours: float | None = Field(None, ge=0)
    airport_checkout_min: int | None = Field(None, ge=0)


class DeleteResponse(BaseModel):
    """Response for DELETE /entries/{entry_id}."""

    deleted: list[str]


@router.patch("/{entry_id}/times", response_model=EntryEditResult)
async def edit_entry_times(
    entry_id: str, request: UpdateTimesRequest, store: StoreDep, trips: TripsDep
) -> EntryEditResult:
    """Move or resize an entry; its check-in/check-out blocks and transfers follow."""
    if request.start_time is not None and request.end_time is not None:
        new_start, new_end = request.start_time, request.end_time
    else:
        entry = await store.get_entry(entry_id)
        trip = await trips.get_trip(entry.trip_id)
        tz = request.timezone or await zone_for_day(store, trip, request.day)
        new_start = local_to_utc(request.day, request.start_local, tz)
        new_end = local_to_utc(request.day, request.end_local, tz)
        if new_end <= new_start:
            new_end = local_to_utc(request.day + timedelta(days=1), request.end_local, tz)

    return await update_entry_times(
        store, trips, entry_id, new_start, new_end, expected_version=request.expected_version
    )


@router.patch("/{entry_id}/flight-policy", response_model=EntryEditResult)
async def edit_flight_policy(
    entry_id: str, request: FlightPolicyRequest, store: StoreDep, trips: TripsDep
) -> EntryEditResult:
    """Change how long before departure check-in starts and how long checkout takes."""
    return await update_flight_policy(
        store,
        trips,
        entry_id,
        checkin_hours=request.airport_checkin_hours,
        checkout_min=request.airport_checkout_min,
    )


@router.post("/{entry_id}/transport-mode", response_model=EntryEditResult)
async def change_transport_mode(
    entry_id: str, request: TransportModeRequest, store: StoreDep, trips: TripsDep
) -> EntryEditResult:
    """Switch a transfer to another of its stored candidate modes."""
    return await switch_transfer_mode(
        store, trips, entry_id, request.mode, expected_version=request.expected_version
    )


@router.delete("/{entry_id}", response_model=DeleteResponse)
async def remove_entry(entry_id: str, store: StoreDep) -> DeleteResponse:
    """Delete an entry together with the entries that only exist because of it."""
    return DeleteResponse(deleted=await delete_entry(store, entry_id))
