"""Route adapter using the Google Routes API (computeRoutes)."""

import math
from datetime import datetime
from typing import Any

import httpx

from backend.app.config import Settings
from backend.app.models.common import Geo, TravelMode, Waypoint, ensure_utc
from backend.app.models.routes import RouteResult

ROUTES_API_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"
FIELD_MASK = "routes.legs.duration,routes.legs.distanceMeters,routes.polyline.encodedPolyline"

GOOGLE_TRAVEL_MODES = {
    TravelMode.walk: "WALK",
    TravelMode.transit: "TRANSIT",
    TravelMode.drive: "DRIVE",
    TravelMode.bicycle: "BICYCLE",
}


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def build_waypoint(point: Waypoint) -> dict[str, Any]:
    """Routes API waypoint for coordinates or a free-form address."""
    if isinstance(point, Geo):
        return {"location": {"latLng": {"latitude": point.lat, "longitude": point.lng}}}
    return {"address": point}


def build_request_body(
    origin: Waypoint,
    destination: Waypoint,
    mode: TravelMode,
    departure_time: datetime | None = None,
) -> dict[str, Any]:
    """Request body; departure time is only meaningful for transit and driving."""
    travel_mode = GOOGLE_TRAVEL_MODES[mode]
    body: dict[str, Any] = {
        "origin": build_waypoint(origin),
        "destination": build_waypoint(destination),
        "travelMode": travel_mode,
    }
    if departure_time is not None and mode in (TravelMode.transit, TravelMode.drive):
        body["departureTime"] = ensure_utc(departure_time).strftime("%Y-%m-%dT%H:%M:%SZ")
        if mode == TravelMode.drive:
            body["routingPreference"] = "TRAFFIC_AWARE"
    return body


def parse_routes_response(data: dict[str, Any]) -> RouteResult | None:
    """First route's first leg, or None when the provider found no route.

    Durations come back as ``"<seconds>s"`` strings.
    """
    routes = data.get("routes") or []
    if not routes:
        return None
    route = routes[0]
    legs = route.get("legs") or []
    if not legs:
        return None
    leg = legs[0]

    duration_sec = int(str(leg.get("duration") or "0s").rstrip("s") or 0)
    distance_m = leg.get("distanceMeters") or 0

    return RouteResult(
        duration_min=_round_half_up(duration_sec / 60),
        distance_km=_round_half_up(distance_m / 100) / 10,
        polyline=(route.get("polyline") or {}).get("encodedPolyline"),
    )


class GoogleRoutesClient:
    """``RouteQuery`` implementation backed by Google Routes."""

    def __init__(
        self,
        api_key: str,
        base_url: str = ROUTES_API_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize client.

        Args:
            api_key: Google Maps Platform key
            base_url: computeRoutes endpoint
            client: Optional httpx client (for testing with mocks)
        """
        self._api_key = api_key
        self._base_url = base_url
        self._client = client

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> "GoogleRoutesClient":
        return cls(
            api_key=settings.google_maps_api_key.get_secret_value(),
            base_url=settings.routes_api_url,
            client=client,
        )

    async def compute_route(
        self,
        origin: Waypoint,
        destination: Waypoint,
        mode: TravelMode,
        departure_time: datetime | None = None,
    ) -> RouteResult | None:
        """Fetch one route.

        Returns:
            RouteResult, or None when no route exists for the mode

        Raises:
            httpx.HTTPError: On network or HTTP errors
        """
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self._api_key,
            "X-Goog-FieldMask": FIELD_MASK,
        }
        body = build_request_body(origin, destination, mode, departure_time)

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=4.0)
            close_client = True

        try:
            response = await client.post(self._base_url, json=body, headers=headers)
            response.raise_for_status()
            return parse_routes_response(response.json())
        finally:
            if close_client:
                await client.aclose()
