"""Route models - travel data returned by the route provider."""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.app.models.common import TravelMode, Waypoint


class RouteRequest(BaseModel):
    """Single-mode route query (also the provider cache key)."""

    origin: Waypoint
    destination: Waypoint
    mode: TravelMode
    departure_time: datetime | None = None


class RouteResult(BaseModel):
    """Provider answer for one mode."""

    duration_min: int = Field(..., ge=0)
    distance_km: float = Field(..., ge=0)
    polyline: str | None = None


class ModeRoute(BaseModel):
    """Resolved route for a specific travel mode."""

    mode: TravelMode
    duration_min: int = Field(..., ge=0)
    distance_km: float = Field(..., ge=0)
    polyline: str | None = None
