"""Common types and enums shared across all models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class Geo(BaseModel):
    """Geographic coordinates (WGS84)."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# A route endpoint is either a coordinate pair or a free-form address
Waypoint = Geo | str


class TravelMode(str, Enum):
    """Travel mode understood by the route provider."""

    walk = "walk"
    transit = "transit"
    drive = "drive"
    bicycle = "bicycle"


class LinkRole(str, Enum):
    """Role of an entry derived from an anchor flight."""

    checkin = "checkin"
    checkout = "checkout"


class Category(str, Enum):
    """Option categories the scheduling core treats specially."""

    flight = "flight"
    transfer = "transfer"
    hotel = "hotel"
    airport_processing = "airport_processing"


# Categories never chained with a synthesized transfer
TRANSPORT_LIKE_CATEGORIES = frozenset({"transfer", "travel", "transport"})


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
