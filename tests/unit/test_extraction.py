"""Tests for booking extraction.

All tests are deterministic and do not make real network calls.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from backend.app.config import Settings
from backend.app.llm.extraction import (
    GatewayBookingExtractor,
    StubBookingExtractor,
    get_booking_extractor,
    parse_completion,
    parse_flights_payload,
    parse_hotel_payload,
)

FLIGHT = {
    "flight_number": "KL1002",
    "departure_airport": "LHR",
    "arrival_airport": "AMS",
    "departure_time": "07:25",
    "arrival_time": "09:40",
    "date": "2025-06-01",
    "departure_terminal": "T4",
}


HOTEL = {
    "hotel_name": "Hotel V Nesplein",
    "address": "Nes 49, Amsterdam",
    "check_in_date": "2025-06-01",
    "checkout_date": "2025-06-03",
    "num_nights": 2,
    "confirmation_number": "HV-123",
}


def tool_call_message(arguments: dict) -> MagicMock:
    message = MagicMock()
    message.tool_calls = [MagicMock()]
    message.tool_calls[0].function.arguments = json.dumps(arguments)
    message.content = None
    return message


def text_message(content: str) -> MagicMock:
    message = MagicMock()
    message.tool_calls = None
    message.content = content
    return message


def gateway_returning(message: MagicMock) -> tuple[GatewayBookingExtractor, AsyncMock]:
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message = message

    client = AsyncMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return GatewayBookingExtractor(api_key="k", base_url="http://gw", client=client), client


@pytest.mark.asyncio
async def test_stub_finds_nothing() -> None:
    result = await StubBookingExtractor().extract_flights(b"%PDF", "application/pdf")

    assert result.flights == []
    assert result.source == "stub"


@pytest.mark.asyncio
async def test_gateway_reads_forced_tool_call() -> None:
    extractor, client = gateway_returning(tool_call_message({"flights": [FLIGHT]}))

    result = await extractor.extract_flights(b"\x89PNG", "image/png")

    assert result.source == "gateway"
    (flight,) = result.flights
    assert flight.flight_number == "KL1002"
    assert flight.departure_terminal == "T4"
    assert flight.arrival_terminal is None

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["tool_choice"]["function"]["name"] == "extract_flights"
    image_part = kwargs["messages"][1]["content"][0]
    assert image_part["image_url"]["url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_gateway_falls_back_to_json_in_text() -> None:
    extractor, _ = gateway_returning(
        text_message(f'Here you go:\n```json\n{json.dumps({"flights": [FLIGHT]})}\n```')
    )

    result = await extractor.extract_flights(b"img", "image/jpeg")

    assert [f.flight_number for f in result.flights] == ["KL1002"]


@pytest.mark.asyncio
async def test_gateway_unparseable_response_is_empty() -> None:
    extractor, _ = gateway_returning(text_message("I could not read this document."))

    result = await extractor.extract_flights(b"img", "image/png")

    assert result.flights == []
    assert result.source == "gateway"


@pytest.mark.asyncio
async def test_gateway_error_falls_back_to_stub() -> None:
    client = AsyncMock()
    client.chat.completions.create = AsyncMock(side_effect=Exception("API error"))
    extractor = GatewayBookingExtractor(api_key="k", base_url="http://gw", client=client)

    result = await extractor.extract_flights(b"img", "image/png")

    assert result.source == "stub"
    assert result.flights == []


def test_malformed_flights_are_dropped() -> None:
    broken = {"flight_number": "XX1", "departure_airport": "LHR"}

    flights = parse_flights_payload({"flights": [FLIGHT, broken]})

    assert [f.flight_number for f in flights] == ["KL1002"]
    assert parse_flights_payload({}) == []
    assert parse_flights_payload({"flights": None}) == []


@pytest.mark.asyncio
async def test_stub_finds_no_hotel() -> None:
    result = await StubBookingExtractor().extract_hotel(b"%PDF", "application/pdf")

    assert result.hotel is None
    assert result.source == "stub"


@pytest.mark.asyncio
async def test_gateway_reads_forced_hotel_call() -> None:
    extractor, client = gateway_returning(tool_call_message({"hotel": HOTEL}))

    result = await extractor.extract_hotel(b"%PDF", "application/pdf")

    assert result.source == "gateway"
    assert result.hotel is not None
    assert result.hotel.hotel_name == "Hotel V Nesplein"
    assert result.hotel.num_nights == 2
    assert result.hotel.check_in_time is None

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["tool_choice"]["function"]["name"] == "extract_hotel"
    assert [t["function"]["name"] for t in kwargs["tools"]] == ["extract_hotel"]
    assert kwargs["messages"][1]["content"][1]["text"] == (
        "Extract hotel booking details from this document."
    )


@pytest.mark.asyncio
async def test_gateway_hotel_from_bare_json_in_text() -> None:
    extractor, _ = gateway_returning(text_message(json.dumps(HOTEL)))

    result = await extractor.extract_hotel(b"img", "image/jpeg")

    assert result.hotel is not None
    assert result.hotel.confirmation_number == "HV-123"


@pytest.mark.asyncio
async def test_gateway_hotel_unparseable_response_is_empty() -> None:
    extractor, _ = gateway_returning(text_message("No booking here."))

    result = await extractor.extract_hotel(b"img", "image/png")

    assert result.hotel is None
    assert result.source == "gateway"


@pytest.mark.asyncio
async def test_gateway_hotel_error_falls_back_to_stub() -> None:
    client = AsyncMock()
    client.chat.completions.create = AsyncMock(side_effect=Exception("API error"))
    extractor = GatewayBookingExtractor(api_key="k", base_url="http://gw", client=client)

    result = await extractor.extract_hotel(b"img", "image/png")

    assert result.source == "stub"
    assert result.hotel is None


def test_hotel_without_name_is_dropped() -> None:
    assert parse_hotel_payload({"hotel": {"address": "Nes 49"}}) is None
    assert parse_hotel_payload({"hotel": {"hotel_name": ""}}) is None
    assert parse_hotel_payload({"hotel": None}) is None
    assert parse_hotel_payload({}) is None


def test_parse_completion_without_any_json() -> None:
    assert parse_completion(text_message("")) is None


def test_factory_returns_stub_without_key() -> None:
    extractor = get_booking_extractor(Settings(ai_gateway_api_key=SecretStr("")))
    assert isinstance(extractor, StubBookingExtractor)


def test_factory_returns_gateway_with_key() -> None:
    extractor = get_booking_extractor(
        Settings(ai_gateway_api_key=SecretStr("test_key"), ai_model="google/gemini-2.5-pro")
    )

    assert isinstance(extractor, GatewayBookingExtractor)
    assert extractor.model == "google/gemini-2.5-pro"
