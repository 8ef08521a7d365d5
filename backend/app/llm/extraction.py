"""Booking document extraction through an OpenAI-compatible AI gateway.

Security: Reads the gateway key from settings only, never hardcoded.
Without a key a stub extractor is used, which finds nothing.
"""

import base64
import json
import logging
import re
from typing import Any, Protocol

from openai import AsyncOpenAI
from pydantic import ValidationError

from backend.app.config import Settings, get_settings
from backend.app.models.extraction import (
    ExtractedFlight,
    ExtractedHotel,
    FlightExtraction,
    HotelExtraction,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a flight booking document parser. Extract all flight details from the
provided document (booking confirmation, e-ticket, itinerary screenshot, etc.).

For each flight found, extract:
- flight_number: The airline code + number (e.g. "BA1234", "KL1234")
- departure_airport: IATA code (e.g. "LHR", "AMS")
- arrival_airport: IATA code (e.g. "AMS", "LHR")
- departure_terminal: Terminal name/number if shown (e.g. "T5", "Terminal 2")
- arrival_terminal: Terminal name/number if shown
- departure_time: In HH:MM 24-hour format
- arrival_time: In HH:MM 24-hour format
- date: In YYYY-MM-DD format

Return ONLY valid JSON, no markdown. If multiple flights are found (connecting flights or
round trips), include all of them."""

EXTRACT_FLIGHTS_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "extract_flights",
        "description": "Extract structured flight data from a booking document",
        "parameters": {
            "type": "object",
            "properties": {
                "flights": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "flight_number": {"type": "string"},
                            "departure_airport": {"type": "string"},
                            "arrival_airport": {"type": "string"},
                            "departure_terminal": {"type": "string"},
                            "arrival_terminal": {"type": "string"},
                            "departure_time": {"type": "string"},
                            "arrival_time": {"type": "string"},
                            "date": {"type": "string"},
                        },
                        "required": [
                            "flight_number",
                            "departure_airport",
                            "arrival_airport",
                            "departure_time",
                            "arrival_time",
                        ],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["flights"],
            "additionalProperties": False,
        },
    },
}

HOTEL_SYSTEM_PROMPT = """You are a hotel booking document parser. Extract hotel stay details from
the provided document (booking confirmation, reservation email screenshot, Booking.com/Airbnb
confirmation, etc.).

Extract:
- hotel_name: The name of the hotel/property
- address: Full address if shown
- check_in_date: In YYYY-MM-DD format
- check_in_time: In HH:MM 24-hour format (if shown)
- checkout_date: In YYYY-MM-DD format
- checkout_time: In HH:MM 24-hour format (if shown)
- num_nights: Number of nights if explicitly stated
- room_type: Room type/name if shown
- confirmation_number: Booking reference/confirmation number if shown

Return ONLY valid JSON, no markdown."""

EXTRACT_HOTEL_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "extract_hotel",
        "description": "Extract structured hotel booking data from a document",
        "parameters": {
            "type": "object",
            "properties": {
                "hotel": {
                    "type": "object",
                    "properties": {
                        "hotel_name": {"type": "string"},
                        "address": {"type": "string"},
                        "check_in_date": {"type": "string"},
                        "check_in_time": {"type": "string"},
                        "checkout_date": {"type": "string"},
                        "checkout_time": {"type": "string"},
                        "num_nights": {"type": "number"},
                        "room_type": {"type": "string"},
                        "confirmation_number": {"type": "string"},
                    },
                    "required": ["hotel_name"],
                    "additionalProperties": False,
                },
            },
            "required": ["hotel"],
            "additionalProperties": False,
        },
    },
}

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class BookingExtractor(Protocol):
    """Protocol for booking extraction implementations."""

    async def extract_flights(self, content: bytes, mime_type: str) -> FlightExtraction:
        """Extract flight legs from a booking document.

        Args:
            content: Raw document bytes (image or PDF)
            mime_type: Document MIME type

        Returns:
            FlightExtraction; empty when nothing could be read
        """
        ...

    async def extract_hotel(self, content: bytes, mime_type: str) -> HotelExtraction:
        """Extract the hotel stay from a booking confirmation.

        Returns:
            HotelExtraction; ``hotel`` is None when no named property was found
        """
        ...


class StubBookingExtractor:
    """Stub extractor for testing (no API key required)."""

    async def extract_flights(self, content: bytes, mime_type: str) -> FlightExtraction:
        return FlightExtraction(flights=[], source="stub")

    async def extract_hotel(self, content: bytes, mime_type: str) -> HotelExtraction:
        return HotelExtraction(hotel=None, source="stub")


def parse_flights_payload(payload: dict[str, Any]) -> list[ExtractedFlight]:
    """Validate each flight; malformed ones are dropped with a warning."""
    flights = []
    for raw in payload.get("flights") or []:
        try:
            flights.append(ExtractedFlight.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Dropping malformed extracted flight: {e.error_count()} error(s)")
    return flights


def parse_hotel_payload(payload: dict[str, Any]) -> ExtractedHotel | None:
    """The stay under ``hotel`` (or a bare hotel object); None without a usable name."""
    raw = payload.get("hotel") if "hotel" in payload else payload
    if not isinstance(raw, dict):
        return None
    try:
        return ExtractedHotel.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Dropping malformed extracted hotel: {e.error_count()} error(s)")
        return None


def parse_completion(message: Any) -> dict[str, Any] | None:
    """Forced function-call arguments, else the first JSON object in the text content."""
    tool_calls = getattr(message, "tool_calls", None) or []
    if tool_calls and tool_calls[0].function.arguments:
        return json.loads(tool_calls[0].function.arguments)

    match = _JSON_OBJECT_RE.search(getattr(message, "content", None) or "")
    if match:
        return json.loads(match.group(0))
    return None


class GatewayBookingExtractor:
    """Gateway-backed extractor using forced ``extract_flights``/``extract_hotel`` calls."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str = "google/gemini-2.5-flash",
        timeout_s: float = 30.0,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize gateway extractor.

        Args:
            api_key: Gateway API key (read from settings)
            base_url: OpenAI-compatible gateway base URL
            model: Vision-capable model name
            timeout_s: Request timeout in seconds
            client: Optional preconfigured client (for testing)
        """
        self.client = client or AsyncOpenAI(
            api_key=api_key, base_url=base_url, timeout=timeout_s, max_retries=1
        )
        self.model = model

    async def _complete(
        self,
        content: bytes,
        mime_type: str,
        system_prompt: str,
        instruction: str,
        tool: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Send the document with ``tool`` forced and return the parsed payload."""
        data_url = f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": data_url}},
                        {"type": "text", "text": instruction},
                    ],
                },
            ],
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": tool["function"]["name"]}},
        )
        return parse_completion(response.choices[0].message)

    async def extract_flights(self, content: bytes, mime_type: str) -> FlightExtraction:
        """Extract flights; gateway errors fall back to an empty stub result."""
        try:
            payload = await self._complete(
                content,
                mime_type,
                SYSTEM_PROMPT,
                "Extract all flight details from this document. "
                'Return JSON with a "flights" array.',
                EXTRACT_FLIGHTS_TOOL,
            )
        except Exception as e:
            logger.error(f"AI gateway extraction failed: {e}")
            logger.warning("Falling back to stub extractor")
            return await StubBookingExtractor().extract_flights(content, mime_type)

        if payload is None:
            logger.warning("Could not extract flight details from gateway response")
            return FlightExtraction(flights=[], source="gateway")

        return FlightExtraction(flights=parse_flights_payload(payload), source="gateway")

    async def extract_hotel(self, content: bytes, mime_type: str) -> HotelExtraction:
        """Extract the hotel stay; gateway errors fall back to an empty stub result."""
        try:
            payload = await self._complete(
                content,
                mime_type,
                HOTEL_SYSTEM_PROMPT,
                "Extract hotel booking details from this document.",
                EXTRACT_HOTEL_TOOL,
            )
        except Exception as e:
            logger.error(f"AI gateway hotel extraction failed: {e}")
            logger.warning("Falling back to stub extractor")
            return await StubBookingExtractor().extract_hotel(content, mime_type)

        if payload is None:
            logger.warning("Could not extract hotel details from gateway response")
            return HotelExtraction(hotel=None, source="gateway")

        return HotelExtraction(hotel=parse_hotel_payload(payload), source="gateway")


def get_booking_extractor(settings: Settings | None = None) -> BookingExtractor:
    """Factory function to get the extractor matching the configuration.

    Returns:
        GatewayBookingExtractor if a gateway key is configured, StubBookingExtractor otherwise
    """
    settings = settings or get_settings()
    api_key = settings.ai_gateway_api_key.get_secret_value()

    if api_key:
        logger.info("Using AI gateway for booking extraction")
        return GatewayBookingExtractor(
            api_key=api_key,
            base_url=settings.ai_gateway_url,
            model=settings.ai_model,
            timeout_s=settings.extraction_timeout_ms / 1000,
        )

    logger.warning("No AI gateway key configured, using stub booking extractor")
    return StubBookingExtractor()
