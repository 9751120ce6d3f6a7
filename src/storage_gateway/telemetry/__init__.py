"""
Telemetry utilities for the object storage gateway.
"""

from .metrics import (
    backend_operation_histogram,
    backends_discovered_gauge,
    cache_evictions_counter,
    cache_lookup_counter,
    discovery_duration_histogram,
    error_counter,
    get_metric,
    malformed_backends_counter,
)
from .tracing import instrument_fastapi_app, setup_tracing


__all__ = [
    "backend_operation_histogram",
    "backends_discovered_gauge",
    "cache_evictions_counter",
    "cache_lookup_counter",
    "discovery_duration_histogram",
    "error_counter",
    "get_metric",
    "instrument_fastapi_app",
    "malformed_backends_counter",
    "setup_tracing",
]
