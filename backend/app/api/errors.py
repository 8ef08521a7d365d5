"""Mapping of domain errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.app.db.repositories import (
    EntryNotFoundError,
    PersistenceError,
    StaleEntryError,
    TripNotFoundError,
)
from backend.app.scheduling.recommendations import LockedEntryError
from backend.app.tools.executor import (
    ProviderCircuitOpenError,
    ProviderExecutionError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)

# Handlers are looked up along the exception MRO
_STATUS_BY_ERROR: list[tuple[type[Exception], int, str]] = [
    (EntryNotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (TripNotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (StaleEntryError, status.HTTP_409_CONFLICT, "stale_entry"),
    (LockedEntryError, status.HTTP_409_CONFLICT, "locked_entry"),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE, "persistence_error"),
    (ProviderTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT, "provider_timeout"),
    (ProviderCircuitOpenError, status.HTTP_503_SERVICE_UNAVAILABLE, "provider_unavailable"),
    (ProviderExecutionError, status.HTTP_502_BAD_GATEWAY, "provider_error"),
    (ValueError, 422, "invalid_request"),
]


def register_error_handlers(app: FastAPI) -> None:
    """Install one JSON handler per domain error class."""
    for error_cls, status_code, code in _STATUS_BY_ERROR:
        app.add_exception_handler(error_cls, _handler(status_code, code))


def _handler(status_code: int, code: str):  # type: ignore[no-untyped-def]
    async def handle(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {code}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"error": code, "detail": str(exc)},
        )

    return handle
