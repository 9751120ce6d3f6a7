"""
Prometheus metrics for the gateway core.

Discovery and storage-client metrics live here; HTTP request metrics are in
services/gateway/metrics.py. All metrics are exposed via the /metrics endpoint.
"""

from collections.abc import Sequence
from typing import Any, TypeVar, cast

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

MetricType = Counter | Gauge | Histogram
T = TypeVar("T", bound=MetricType)


def get_metric(
    name: str,
    type_cls: type[T],
    documentation: str,
    labelnames: Sequence[str] = (),
    buckets: Sequence[float] | None = None,
) -> T:
    """
    Get an existing metric or create a new one.
    This prevents 'Duplicated timeseries' errors when reloading modules or running tests.
    """
    if name in REGISTRY._names_to_collectors:
        return cast("T", REGISTRY._names_to_collectors[name])

    kwargs = {}
    if buckets and type_cls is Histogram:
        kwargs["buckets"] = buckets
    return cast("T", type_cls(name, documentation, labelnames, **cast("Any", kwargs)))


# === Discovery Metrics ===

discovery_duration_histogram = get_metric(
    "gateway_discovery_duration_seconds",
    Histogram,
    "Duration of one control-plane discovery pass",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

backends_discovered_gauge = get_metric(
    "gateway_backends_discovered",
    Gauge,
    "Number of usable backends in the most recent discovery snapshot",
)

malformed_backends_counter = get_metric(
    "gateway_malformed_backends_total",
    Counter,
    "Backends skipped during discovery because their metadata was unusable",
    ["reason"],  # name, credentials, duplicate
)

# === Cache Metrics ===

cache_lookup_counter = get_metric(
    "gateway_cache_lookups_total",
    Counter,
    "Cache lookups by cache and result",
    ["cache_name", "result"],  # result=hit/miss
)

cache_evictions_counter = get_metric(
    "gateway_cache_evictions_total",
    Counter,
    "Entries evicted from a cache by capacity",
    ["cache_name"],
)

# === Backend Storage Metrics ===

backend_operation_histogram = get_metric(
    "gateway_backend_operation_seconds",
    Histogram,
    "Duration of storage calls against a single backend",
    ["operation", "status"],  # operation=put/get/list, status=success/not_found/error/cancelled
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# === Error Metrics ===

error_counter = get_metric(
    "gateway_core_errors_total",
    Counter,
    "Errors raised by the gateway core, by kind",
    ["error_type"],  # ErrorKind values
)
