"""FastAPI dependency providers for stores, providers and scheduling services."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.adapters.google_routes import GoogleRoutesClient
from backend.app.config import Settings, get_settings
from backend.app.db.engine import get_session
from backend.app.db.repositories import EntryStore, TripRepository
from backend.app.db.sql_repositories import SqlEntryStore, SqlTripRepository
from backend.app.llm.extraction import BookingExtractor, get_booking_extractor
from backend.app.scheduling.synthesizer import TransportSynthesizer
from backend.app.scheduling.travel_modes import TravelModeResolver
from backend.app.tools.executor import ProviderExecutor
from backend.app.utils.logging import StructuredProviderLogger
from backend.app.utils.metrics import PrometheusProviderMetrics, PrometheusSynthesisMetrics

SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_entry_store(session: SessionDep) -> EntryStore:
    return SqlEntryStore(session)


def get_trip_repository(session: SessionDep) -> TripRepository:
    return SqlTripRepository(session)


@lru_cache
def get_provider_executor() -> ProviderExecutor:
    """Process-wide executor so breakers and caches outlive a single request."""
    return ProviderExecutor(
        metrics=PrometheusProviderMetrics(),
        logger=StructuredProviderLogger(),
    )


ExecutorDep = Annotated[ProviderExecutor, Depends(get_provider_executor)]


def get_route_resolver(settings: SettingsDep, executor: ExecutorDep) -> TravelModeResolver:
    return TravelModeResolver.from_settings(
        GoogleRoutesClient.from_settings(settings), settings, executor=executor
    )


StoreDep = Annotated[EntryStore, Depends(get_entry_store)]
TripsDep = Annotated[TripRepository, Depends(get_trip_repository)]
ResolverDep = Annotated[TravelModeResolver, Depends(get_route_resolver)]


def get_synthesizer(
    store: StoreDep, trips: TripsDep, resolver: ResolverDep
) -> TransportSynthesizer:
    return TransportSynthesizer(store, trips, resolver, metrics=PrometheusSynthesisMetrics())


def get_extractor(settings: SettingsDep) -> BookingExtractor:
    return get_booking_extractor(settings)


SynthesizerDep = Annotated[TransportSynthesizer, Depends(get_synthesizer)]
ExtractorDep = Annotated[BookingExtractor, Depends(get_extractor)]
