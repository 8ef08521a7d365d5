"""Prometheus metrics for provider calls and transport synthesis."""

from prometheus_client import Counter, Histogram

# Provider execution metrics
provider_latency_ms = Histogram(
    "provider_latency_ms",
    "Provider call latency in milliseconds",
    ["provider", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000, 30000],
)

provider_errors_total = Counter(
    "provider_errors_total",
    "Total provider call errors",
    ["provider", "reason"],
)

provider_cache_hits_total = Counter(
    "provider_cache_hits_total",
    "Total provider cache hits",
    ["provider"],
)

# Scheduling metrics
transfers_created_total = Counter(
    "transfers_created_total",
    "Transfer entries inserted by transport synthesis",
    ["mode"],
)

synthesis_skipped_total = Counter(
    "synthesis_skipped_total",
    "Consecutive entry pairs left without a synthesized transfer",
    ["reason"],
)


class PrometheusProviderMetrics:
    """Prometheus-based provider metrics implementation."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        provider_latency_ms.labels(provider=provider, outcome=outcome).observe(latency_ms)

    def inc_error(self, provider: str, reason: str) -> None:
        provider_errors_total.labels(provider=provider, reason=reason).inc()

    def inc_cache_hit(self, provider: str) -> None:
        provider_cache_hits_total.labels(provider=provider).inc()


class PrometheusSynthesisMetrics:
    """Counters for synthesis outcomes."""

    def inc_created(self, mode: str) -> None:
        transfers_created_total.labels(mode=mode).inc()

    def inc_skipped(self, reason: str) -> None:
        synthesis_skipped_total.labels(reason=reason).inc()
