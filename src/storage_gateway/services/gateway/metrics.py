"""
Prometheus metrics for the gateway HTTP layer.
"""

from prometheus_client import Counter, Histogram

from ...telemetry import get_metric


# Request counter per route template and status code
request_counter = get_metric(
    "gateway_http_requests_total",
    Counter,
    "Total number of HTTP requests handled",
    ["method", "route", "status"],
)

# End-to-end latency histogram per route template
latency_histogram = get_metric(
    "gateway_http_request_latency_seconds",
    Histogram,
    "HTTP request latency",
    ["method", "route"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Errors answered by the exception handlers
error_counter = get_metric(
    "gateway_http_errors_total",
    Counter,
    "Total number of error responses by error kind",
    ["error_type"],  # gateway error kinds, validation, http
)
