"""Structured logging for provider calls (Google Routes, Open-Meteo, AI gateway)."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Outcomes that are part of normal operation
_QUIET_OUTCOMES = frozenset({"success", "cache_hit", "cancelled"})


class StructuredProviderLogger:
    """Logs each provider attempt with a ``structured`` extra dict.

    Attempts of one ``execute`` call share a trace id, so a retried route
    lookup reads as one story in the log.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def log_attempt(
        self,
        provider: str,
        attempt: int,
        outcome: str,
        latency_ms: float,
        cache_hit: bool = False,
        error_reason: str | None = None,
        trace_id: str | None = None,
    ) -> None:
        structured: dict[str, Any] = {
            "trace_id": trace_id,
            "provider": provider,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "cache_hit": cache_hit,
        }
        if error_reason:
            structured["error_reason"] = error_reason

        level = logging.INFO if outcome in _QUIET_OUTCOMES else logging.WARNING
        self._log.log(
            level,
            f"{provider} attempt {attempt}: {outcome}",
            extra={"structured": structured},
        )
