"""Models package - re-exports for convenience."""

from backend.app.models.cascade import (
    AnchorField,
    CascadeCommand,
    CascadeOutcome,
    CascadeReason,
    EntryEditResult,
    FlightBundle,
)
from backend.app.models.common import Category, Geo, LinkRole, TravelMode, Waypoint
from backend.app.models.conflicts import ConflictInfo, EntryChange, Recommendation
from backend.app.models.entries import (
    Entry,
    EntryOption,
    EntryPatch,
    NewEntry,
    NewOption,
    OptionPatch,
    Trip,
)
from backend.app.models.extraction import (
    ExtractedFlight,
    ExtractedHotel,
    FlightExtraction,
    HotelExtraction,
)
from backend.app.models.routes import ModeRoute, RouteRequest, RouteResult
from backend.app.models.synthesis import (
    CreatedTransfer,
    OverlapRecord,
    SkippedPair,
    SkipReason,
    SynthesisResult,
)
from backend.app.models.weather import WeatherHour, WeatherRequest

__all__ = [
    # Common
    "Geo",
    "Waypoint",
    "TravelMode",
    "LinkRole",
    "Category",
    # Timeline
    "Trip",
    "Entry",
    "EntryOption",
    "NewEntry",
    "NewOption",
    "EntryPatch",
    "OptionPatch",
    # Routes
    "RouteRequest",
    "RouteResult",
    "ModeRoute",
    # Conflicts
    "ConflictInfo",
    "EntryChange",
    "Recommendation",
    # Synthesis
    "SkipReason",
    "CreatedTransfer",
    "OverlapRecord",
    "SkippedPair",
    "SynthesisResult",
    # Cascade
    "AnchorField",
    "CascadeReason",
    "CascadeCommand",
    "CascadeOutcome",
    "EntryEditResult",
    "FlightBundle",
    # Extraction
    "ExtractedFlight",
    "FlightExtraction",
    "ExtractedHotel",
    "HotelExtraction",
    # Weather
    "WeatherRequest",
    "WeatherHour",
]
