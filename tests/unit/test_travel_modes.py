"""Tests for the travel mode resolver and mode selection."""

from datetime import UTC, datetime

import httpx
import pytest

from backend.app.models.common import Geo, TravelMode
from backend.app.models.routes import ModeRoute, RouteResult
from backend.app.scheduling.travel_modes import (
    SYNTHESIS_MODES,
    TravelModeResolver,
    UnresolvableLocationError,
    select_fastest_mode,
    select_synthesis_mode,
    transfer_block_minutes,
    transfer_name,
)
from backend.app.tools.executor import (
    CancelToken,
    OperationCancelledError,
    ProviderConfig,
    ProviderExecutor,
)

ORIGIN = Geo(lat=51.5194, lng=-0.1270)
DESTINATION = "Tower of London"


def route(mode: TravelMode, minutes: int, km: float = 1.0) -> ModeRoute:
    return ModeRoute(mode=mode, duration_min=minutes, distance_km=km)


class TestSelectSynthesisMode:
    def test_walk_within_threshold(self) -> None:
        results = [route(TravelMode.walk, 8), route(TravelMode.transit, 5)]
        assert select_synthesis_mode(results, 10).mode == TravelMode.walk

    def test_threshold_is_inclusive(self) -> None:
        results = [route(TravelMode.walk, 10), route(TravelMode.transit, 6)]
        assert select_synthesis_mode(results, 10).mode == TravelMode.walk

    def test_transit_when_walk_too_long(self) -> None:
        results = [route(TravelMode.walk, 11), route(TravelMode.transit, 9)]
        assert select_synthesis_mode(results, 10).mode == TravelMode.transit

    def test_long_walk_when_no_transit(self) -> None:
        results = [route(TravelMode.walk, 45)]
        assert select_synthesis_mode(results, 10).mode == TravelMode.walk

    def test_nothing_when_no_routes(self) -> None:
        assert select_synthesis_mode([], 10) is None


class TestSelectFastestMode:
    def test_minimum_duration(self) -> None:
        results = [route(TravelMode.drive, 12), route(TravelMode.transit, 9)]
        assert select_fastest_mode(results).mode == TravelMode.transit

    def test_ties_prefer_walk_then_transit_then_bicycle_then_drive(self) -> None:
        results = [
            route(TravelMode.drive, 7),
            route(TravelMode.bicycle, 7),
            route(TravelMode.transit, 7),
        ]
        assert select_fastest_mode(results).mode == TravelMode.transit
        assert select_fastest_mode(results[:2]).mode == TravelMode.bicycle

    def test_empty(self) -> None:
        assert select_fastest_mode([]) is None


class TestTransferBlock:
    @pytest.mark.parametrize(
        ("minutes", "block"), [(0, 5), (1, 5), (5, 5), (6, 10), (12, 15), (31, 35)]
    )
    def test_rounds_up_to_five_minutes(self, minutes: int, block: int) -> None:
        assert transfer_block_minutes(minutes) == block

    def test_name(self) -> None:
        assert transfer_name(TravelMode.walk, "British Museum") == "🚶 Walk to British Museum"
        assert transfer_name(TravelMode.transit, "Kew") == "🚇 Transit to Kew"

    def test_long_destination_is_shortened(self) -> None:
        name = transfer_name(TravelMode.drive, "The Very Long Name Of Some Hotel Somewhere")
        assert name == "🚗 Drive to The Very Long Name Of Som…"


class TestResolver:
    """TravelModeResolver.resolve."""

    @pytest.mark.asyncio
    async def test_returns_one_route_per_mode_in_request_order(
        self, route_query, resolver: TravelModeResolver
    ) -> None:
        route_query.routes = {
            TravelMode.walk: RouteResult(duration_min=14, distance_km=1.1),
            TravelMode.transit: RouteResult(duration_min=9, distance_km=1.4, polyline="abc"),
        }
        departure = datetime(2025, 6, 1, 9, 0, tzinfo=UTC)

        results = await resolver.resolve(ORIGIN, DESTINATION, SYNTHESIS_MODES, departure)

        assert [r.mode for r in results] == [TravelMode.walk, TravelMode.transit]
        assert results[1].polyline == "abc"
        assert {call[3] for call in route_query.calls} == {departure}

    @pytest.mark.asyncio
    async def test_mode_without_route_is_omitted(
        self, route_query, resolver: TravelModeResolver
    ) -> None:
        route_query.routes = {TravelMode.walk: RouteResult(duration_min=14, distance_km=1.1)}

        results = await resolver.resolve(ORIGIN, DESTINATION, SYNTHESIS_MODES)

        assert [r.mode for r in results] == [TravelMode.walk]

    @pytest.mark.asyncio
    async def test_provider_failure_is_omitted_not_raised(
        self, route_query, resolver: TravelModeResolver
    ) -> None:
        route_query.routes = {
            TravelMode.walk: httpx.ConnectError("boom"),
            TravelMode.transit: RouteResult(duration_min=9, distance_km=1.4),
        }

        results = await resolver.resolve(ORIGIN, DESTINATION, SYNTHESIS_MODES)

        assert [r.mode for r in results] == [TravelMode.transit]

    @pytest.mark.asyncio
    async def test_all_failures_give_empty_list(
        self, route_query, resolver: TravelModeResolver
    ) -> None:
        route_query.routes = {
            TravelMode.walk: RuntimeError("down"),
            TravelMode.transit: RuntimeError("down"),
        }
        assert await resolver.resolve(ORIGIN, DESTINATION, SYNTHESIS_MODES) == []

    @pytest.mark.asyncio
    async def test_duplicate_modes_are_queried_once(
        self, route_query, resolver: TravelModeResolver
    ) -> None:
        route_query.routes = {TravelMode.drive: RouteResult(duration_min=20, distance_km=8.0)}

        results = await resolver.resolve(
            ORIGIN, DESTINATION, [TravelMode.drive, TravelMode.drive]
        )

        assert len(results) == 1
        assert len(route_query.calls) == 1

    @pytest.mark.asyncio
    async def test_empty_mode_list_is_rejected(self, resolver: TravelModeResolver) -> None:
        with pytest.raises(ValueError, match="travel mode"):
            await resolver.resolve(ORIGIN, DESTINATION, [])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("origin", [None, "", "   "])
    async def test_unresolvable_endpoint(
        self, origin: str | None, route_query, resolver: TravelModeResolver
    ) -> None:
        with pytest.raises(UnresolvableLocationError):
            await resolver.resolve(origin, DESTINATION, SYNTHESIS_MODES)
        assert route_query.calls == []

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, route_query, resolver: TravelModeResolver) -> None:
        route_query.routes = {TravelMode.walk: RouteResult(duration_min=3, distance_km=0.2)}

        with pytest.raises(OperationCancelledError):
            await resolver.resolve(
                ORIGIN, DESTINATION, SYNTHESIS_MODES, cancel_token=CancelToken(cancelled=True)
            )

    @pytest.mark.asyncio
    async def test_repeat_lookups_are_served_from_cache(
        self, route_query, executor: ProviderExecutor
    ) -> None:
        route_query.routes = {TravelMode.walk: RouteResult(duration_min=3, distance_km=0.2)}
        resolver = TravelModeResolver(
            route_query,
            executor=executor,
            config=ProviderConfig(name="google_routes", hard_timeout_ms=4000, cache_ttl_seconds=60),
        )

        first = await resolver.resolve(ORIGIN, DESTINATION, [TravelMode.walk])
        second = await resolver.resolve(ORIGIN, DESTINATION, [TravelMode.walk])

        assert first == second
        assert len(route_query.calls) == 1
