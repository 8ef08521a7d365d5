"""Travel mode resolver - per-mode routes between two waypoints and mode selection."""

import asyncio
import logging
import math
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from backend.app.config import Settings
from backend.app.models.common import Geo, TravelMode, Waypoint
from backend.app.models.routes import ModeRoute, RouteRequest, RouteResult
from backend.app.tools.executor import (
    CancelToken,
    OperationCancelledError,
    ProviderConfig,
    ProviderExecutor,
)

logger = logging.getLogger(__name__)

# Tie-break order for "fastest" selection
MODE_PREFERENCE: tuple[TravelMode, ...] = (
    TravelMode.walk,
    TravelMode.transit,
    TravelMode.bicycle,
    TravelMode.drive,
)

# Modes queried when synthesizing transfers
SYNTHESIS_MODES: tuple[TravelMode, ...] = (TravelMode.walk, TravelMode.transit)

MODE_EMOJI = {
    TravelMode.walk: "🚶",
    TravelMode.transit: "🚇",
    TravelMode.drive: "🚗",
    TravelMode.bicycle: "🚲",
}

ROUTES_PROVIDER = "google_routes"


class UnresolvableLocationError(ValueError):
    """An endpoint has neither coordinates nor an address."""

    pass


class RouteQuery(Protocol):
    """Route provider for a single travel mode."""

    async def compute_route(
        self,
        origin: Waypoint,
        destination: Waypoint,
        mode: TravelMode,
        departure_time: datetime | None = None,
    ) -> RouteResult | None:
        """Return the route for one mode, or None when the mode has no route."""
        ...


def is_resolvable(point: Waypoint | None) -> bool:
    """True for coordinates or a non-blank address."""
    if isinstance(point, Geo):
        return True
    return isinstance(point, str) and bool(point.strip())


def transfer_block_minutes(duration_min: float) -> int:
    """On-timeline length of a transfer: round up to 5 minutes, at least 5."""
    return max(math.ceil(duration_min / 5) * 5, 5)


def transfer_name(mode: TravelMode, destination: str) -> str:
    """Display name like ``"🚶 Walk to British Museum"``."""
    short = destination if len(destination) <= 25 else destination[:25] + "…"
    return f"{MODE_EMOJI[mode]} {mode.value.capitalize()} to {short}"


def select_synthesis_mode(
    results: Sequence[ModeRoute], walk_threshold_min: float
) -> ModeRoute | None:
    """Mode policy for automatically inserted transfers.

    Walk when it is at most ``walk_threshold_min`` (inclusive), else transit,
    else walk regardless of length, else nothing.
    """
    by_mode = {r.mode: r for r in results}
    walk = by_mode.get(TravelMode.walk)
    transit = by_mode.get(TravelMode.transit)

    if walk is not None and walk.duration_min <= walk_threshold_min:
        return walk
    if transit is not None:
        return transit
    return walk


def select_fastest_mode(results: Sequence[ModeRoute]) -> ModeRoute | None:
    """Minimum duration; ties broken by walk > transit > bicycle > drive."""
    if not results:
        return None
    return min(results, key=lambda r: (r.duration_min, MODE_PREFERENCE.index(r.mode)))


class TravelModeResolver:
    """Fetches one route per requested mode through the provider executor.

    Provider failures (errors, timeouts, open circuit) never reach the caller:
    the affected mode is simply missing from the result, exactly like a mode
    with no route. Failures are logged and counted by the executor.
    """

    def __init__(
        self,
        route_query: RouteQuery,
        executor: ProviderExecutor | None = None,
        config: ProviderConfig | None = None,
    ) -> None:
        self._route_query = route_query
        self._executor = executor or ProviderExecutor()
        self._config = config or ProviderConfig(name=ROUTES_PROVIDER, hard_timeout_ms=4000)

    @classmethod
    def from_settings(
        cls,
        route_query: RouteQuery,
        settings: Settings,
        executor: ProviderExecutor | None = None,
    ) -> "TravelModeResolver":
        config = ProviderConfig.from_settings(
            ROUTES_PROVIDER,
            settings,
            hard_timeout_ms=settings.route_timeout_ms,
            cache_ttl_seconds=settings.route_cache_ttl_seconds,
        )
        return cls(route_query, executor=executor, config=config)

    async def resolve(
        self,
        origin: Waypoint | None,
        destination: Waypoint | None,
        modes: Sequence[TravelMode],
        departure_time: datetime | None = None,
        cancel_token: CancelToken | None = None,
    ) -> list[ModeRoute]:
        """Routes for each mode that has one, in request order.

        Args:
            origin: Coordinates or address to depart from
            destination: Coordinates or address to arrive at
            modes: Modes to query (at least one)
            departure_time: Departure instant, for transit and traffic-aware driving
            cancel_token: Cancellation token of the owning operation

        Returns:
            One ModeRoute per mode with a route; possibly empty

        Raises:
            ValueError: If ``modes`` is empty
            UnresolvableLocationError: If either endpoint is missing
            OperationCancelledError: If the owning operation was cancelled
        """
        if not modes:
            raise ValueError("At least one travel mode is required")
        if not is_resolvable(origin) or not is_resolvable(destination):
            raise UnresolvableLocationError("Both route endpoints need coordinates or an address")

        requests = [
            RouteRequest(
                origin=origin,
                destination=destination,
                mode=mode,
                departure_time=departure_time,
            )
            for mode in dict.fromkeys(modes)
        ]
        results = await asyncio.gather(*(self._query(r, cancel_token) for r in requests))
        return [r for r in results if r is not None]

    async def _query(
        self, request: RouteRequest, cancel_token: CancelToken | None
    ) -> ModeRoute | None:
        try:
            result = await self._executor.execute(
                self._config, self._compute, request, cancel_token
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning(
                f"Route lookup failed for {request.mode.value}",
                extra={
                    "structured": {
                        "provider": self._config.name,
                        "mode": request.mode.value,
                        "error_reason": type(e).__name__,
                    }
                },
            )
            return None

        if result is None:
            logger.info(f"No {request.mode.value} route found")
            return None

        return ModeRoute(
            mode=request.mode,
            duration_min=result.duration_min,
            distance_km=result.distance_km,
            polyline=result.polyline,
        )

    async def _compute(self, request: RouteRequest) -> RouteResult | None:
        return await self._route_query.compute_route(
            request.origin, request.destination, request.mode, request.departure_time
        )
