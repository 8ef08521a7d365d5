"""Async provider executor with timeouts, retries, circuit breaker, and caching.

Every outbound provider call (route lookups, booking extraction, weather) goes
through ``ProviderExecutor.execute`` which applies:
- Hard timeout per attempt
- Bounded retries with 200-500ms jitter
- Per-provider circuit breaker (5 failures/60s, state shared via the executor's registry)
- Optional TTL cache keyed on the request payload
- Cancellation support
- Metrics and structured logging
"""

import asyncio
import hashlib
import json
import random
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from backend.app.config import Settings

T = TypeVar("T")
P = TypeVar("P", bound=BaseModel)


class ProviderTimeoutError(Exception):
    """Provider call exceeded its hard timeout on every attempt."""

    pass


class ProviderCircuitOpenError(Exception):
    """Circuit breaker is open for this provider."""

    pass


class ProviderExecutionError(Exception):
    """Provider call failed on every attempt."""

    pass


class OperationCancelledError(Exception):
    """The owning operation was cancelled."""

    pass


@dataclass
class CancelToken:
    """Cooperative cancellation flag shared by a long-running operation."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def throw_if_cancelled(self) -> None:
        """Raise OperationCancelledError if cancelled."""
        if self.cancelled:
            raise OperationCancelledError("operation cancelled")


@dataclass
class ProviderConfig:
    """Execution policy for one provider."""

    name: str
    hard_timeout_ms: int
    retry_count: int = 1
    retry_jitter_min_ms: int = 200
    retry_jitter_max_ms: int = 500
    breaker_failure_threshold: int = 5
    breaker_window_seconds: int = 60
    breaker_half_open_seconds: int = 30
    cache_ttl_seconds: int = 0
    # Errors that are answers, not outages: raised immediately, never retried or counted
    non_retryable: tuple[type[BaseException], ...] = ()

    @classmethod
    def from_settings(
        cls,
        name: str,
        settings: Settings,
        *,
        hard_timeout_ms: int,
        cache_ttl_seconds: int = 0,
        non_retryable: tuple[type[BaseException], ...] = (),
    ) -> "ProviderConfig":
        return cls(
            name=name,
            hard_timeout_ms=hard_timeout_ms,
            retry_count=settings.provider_retry_count,
            retry_jitter_min_ms=settings.retry_jitter_min_ms,
            retry_jitter_max_ms=settings.retry_jitter_max_ms,
            breaker_failure_threshold=settings.circuit_breaker_failures,
            breaker_window_seconds=settings.circuit_breaker_window_sec,
            breaker_half_open_seconds=settings.circuit_breaker_half_open_sec,
            cache_ttl_seconds=cache_ttl_seconds,
            non_retryable=non_retryable,
        )


class BreakerState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Per-provider circuit breaker.

    Opens after ``failure_threshold`` failures inside ``window_seconds``; after
    ``half_open_seconds`` one trial call is let through.
    """

    provider: str
    failure_threshold: int
    window_seconds: int
    half_open_seconds: int
    state: BreakerState = BreakerState.CLOSED
    failure_times: list[datetime] = field(default_factory=list)
    opened_at: datetime | None = None

    def record_success(self) -> None:
        if self.state == BreakerState.HALF_OPEN:
            self.state = BreakerState.CLOSED
            self.failure_times.clear()
            self.opened_at = None

    def record_failure(self, now: datetime) -> None:
        if self.state == BreakerState.HALF_OPEN:
            # Failed trial call
            self.state = BreakerState.OPEN
            self.opened_at = now
            return

        cutoff = now - timedelta(seconds=self.window_seconds)
        self.failure_times = [t for t in self.failure_times if t > cutoff]
        self.failure_times.append(now)

        if len(self.failure_times) >= self.failure_threshold:
            self.state = BreakerState.OPEN
            self.opened_at = now

    def is_open(self, now: datetime) -> bool:
        """Check if breaker is currently rejecting calls."""
        if self.state == BreakerState.OPEN:
            if self.opened_at and (now - self.opened_at).total_seconds() >= self.half_open_seconds:
                self.state = BreakerState.HALF_OPEN
        return self.state == BreakerState.OPEN


class BreakerRegistry:
    """Circuit breakers by provider name."""

    def __init__(self) -> None:
        self._by_provider: dict[str, CircuitBreaker] = {}

    def get_or_create(self, config: ProviderConfig) -> CircuitBreaker:
        if config.name not in self._by_provider:
            self._by_provider[config.name] = CircuitBreaker(
                provider=config.name,
                failure_threshold=config.breaker_failure_threshold,
                window_seconds=config.breaker_window_seconds,
                half_open_seconds=config.breaker_half_open_seconds,
            )
        return self._by_provider[config.name]

    def clear(self) -> None:
        self._by_provider.clear()


@dataclass
class CacheEntry(Generic[T]):
    """Cached provider result."""

    value: T
    cached_at: datetime
    ttl_seconds: int

    def is_fresh(self, now: datetime) -> bool:
        return (now - self.cached_at).total_seconds() < self.ttl_seconds


class ProviderCache:
    """In-memory TTL cache for provider results."""

    def __init__(self) -> None:
        self._cache: dict[str, CacheEntry[Any]] = {}

    def make_key(self, provider: str, payload: BaseModel) -> str:
        """Deterministic key from the provider name and payload."""
        data = payload.model_dump(mode="json")
        digest = hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()
        return f"{provider}:{digest}"

    def get(self, key: str, now: datetime) -> Any | None:
        entry = self._cache.get(key)
        if entry and entry.is_fresh(now):
            return entry.value
        elif entry:
            del self._cache[key]
        return None

    def set(self, key: str, value: Any, ttl_seconds: int, now: datetime) -> None:
        self._cache[key] = CacheEntry(value=value, cached_at=now, ttl_seconds=ttl_seconds)

    def clear(self) -> None:
        self._cache.clear()


class ProviderMetrics:
    """Metrics interface; the default records nothing."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        pass

    def inc_error(self, provider: str, reason: str) -> None:
        pass

    def inc_cache_hit(self, provider: str) -> None:
        pass


class ProviderLogger:
    """Structured logging interface; the default logs nothing."""

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
        pass


class ProviderExecutor:
    """Runs provider calls under one shared resilience policy."""

    def __init__(
        self,
        metrics: ProviderMetrics | None = None,
        logger: ProviderLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        cache: ProviderCache | None = None,
        breakers: BreakerRegistry | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
            cache: Result cache shared by all calls through this executor
            breakers: Circuit breaker registry shared by all calls through this executor
        """
        self._metrics = metrics or ProviderMetrics()
        self._logger = logger or ProviderLogger()
        self._sleep = sleep_fn or asyncio.sleep
        self.cache = cache or ProviderCache()
        self.breakers = breakers or BreakerRegistry()

    async def execute(
        self,
        config: ProviderConfig,
        fn: Callable[[P], Awaitable[T]],
        payload: P,
        cancel_token: CancelToken | None = None,
    ) -> T:
        """Execute a provider call with the full error handling pipeline.

        Args:
            config: Execution policy
            fn: Async provider function
            payload: Provider input (also the cache key)
            cancel_token: Cancellation token (optional)

        Returns:
            The provider result, possibly served from cache

        Raises:
            ProviderTimeoutError: Every attempt exceeded the hard timeout
            ProviderCircuitOpenError: Circuit breaker is open
            OperationCancelledError: Execution was cancelled
            ProviderExecutionError: Every attempt failed
            Exception: Any ``config.non_retryable`` error, unchanged
        """
        start_time = time.monotonic()
        cancel_token = cancel_token or CancelToken()
        trace_id = uuid.uuid4().hex[:16]

        def log(attempt: int, outcome: str, elapsed_ms: float, **extra: Any) -> None:
            self._logger.log_attempt(
                config.name, attempt, outcome, elapsed_ms, trace_id=trace_id, **extra
            )

        breaker = self.breakers.get_or_create(config)

        cancel_token.throw_if_cancelled()

        # Cached results bypass the breaker
        now = datetime.now()
        cache_key: str | None = None
        if config.cache_ttl_seconds > 0:
            cache_key = self.cache.make_key(config.name, payload)
            cached = self.cache.get(cache_key, now)
            if cached is not None:
                elapsed_ms = (time.monotonic() - start_time) * 1000
                self._metrics.record_latency(config.name, "cache_hit", elapsed_ms)
                self._metrics.inc_cache_hit(config.name)
                log(0, "cache_hit", elapsed_ms, cache_hit=True)
                return cached

        if breaker.is_open(now):
            elapsed_ms = (time.monotonic() - start_time) * 1000
            self._metrics.record_latency(config.name, "breaker_open", elapsed_ms)
            self._metrics.inc_error(config.name, "breaker_open")
            log(0, "breaker_open", elapsed_ms, error_reason="breaker_open")
            raise ProviderCircuitOpenError(f"Circuit breaker open for {config.name}")

        last_error: Exception | None = None
        for attempt in range(config.retry_count + 1):
            cancel_token.throw_if_cancelled()
            attempt_start = time.monotonic()

            try:
                result = await asyncio.wait_for(fn(payload), timeout=config.hard_timeout_ms / 1000)

                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                breaker.record_success()
                self._metrics.record_latency(config.name, "success", elapsed_ms)
                log(attempt + 1, "success", elapsed_ms)

                if cache_key is not None:
                    self.cache.set(cache_key, result, config.cache_ttl_seconds, datetime.now())
                return result

            except TimeoutError as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e
                self._metrics.inc_error(config.name, "timeout")
                log(attempt + 1, "timeout", elapsed_ms, error_reason="timeout")
                breaker.record_failure(datetime.now())

            except OperationCancelledError:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                self._metrics.record_latency(config.name, "cancelled", elapsed_ms)
                log(attempt + 1, "cancelled", elapsed_ms, error_reason="cancelled")
                raise

            except Exception as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                if config.non_retryable and isinstance(e, config.non_retryable):
                    self._metrics.record_latency(config.name, "rejected", elapsed_ms)
                    log(attempt + 1, "rejected", elapsed_ms, error_reason=type(e).__name__)
                    raise

                last_error = e
                self._metrics.inc_error(config.name, "execution_error")
                log(attempt + 1, "error", elapsed_ms, error_reason=type(e).__name__)
                breaker.record_failure(datetime.now())

            if attempt < config.retry_count:
                if breaker.is_open(datetime.now()):
                    break
                cancel_token.throw_if_cancelled()
                jitter_ms = random.uniform(config.retry_jitter_min_ms, config.retry_jitter_max_ms)
                await self._sleep(jitter_ms / 1000)

        if isinstance(last_error, TimeoutError):
            raise ProviderTimeoutError(f"Provider {config.name} timed out after all retries")
        raise ProviderExecutionError(
            f"Provider {config.name} failed after all retries"
        ) from last_error
