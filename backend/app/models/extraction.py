"""Booking extraction models - structured fields read from booking documents."""

from pydantic import BaseModel, Field


class ExtractedFlight(BaseModel):
    """One flight leg found in a booking document.

    Times are local wall-clock ``HH:MM`` at the respective airport; the caller
    supplies the airport time zones when turning them into timeline instants.
    """

    flight_number: str
    departure_airport: str
    arrival_airport: str
    departure_time: str
    arrival_time: str
    date: str | None = None
    departure_terminal: str | None = None
    arrival_terminal: str | None = None


class FlightExtraction(BaseModel):
    """All flights extracted from one document."""

    flights: list[ExtractedFlight] = Field(default_factory=list)
    source: str = "stub"


class ExtractedHotel(BaseModel):
    """A hotel stay read from a booking confirmation.

    Dates are ``YYYY-MM-DD`` and times local ``HH:MM`` at the property; missing
    times mean the usual 15:00 check-in and 11:00 checkout.
    """

    hotel_name: str = Field(..., min_length=1)
    address: str | None = None
    check_in_date: str | None = None
    check_in_time: str | None = None
    checkout_date: str | None = None
    checkout_time: str | None = None
    num_nights: int | None = Field(default=None, ge=0)
    room_type: str | None = None
    confirmation_number: str | None = None


class HotelExtraction(BaseModel):
    """The hotel stay extracted from one document, if any."""

    hotel: ExtractedHotel | None = None
    source: str = "stub"
