"""
Enumerations and constants for the object storage gateway.
"""

from enum import Enum


class AddressMode(str, Enum):
    """How the gateway dials a discovered backend container."""

    HOSTNAME = "hostname"
    IP = "ip"


class ErrorKind(str, Enum):
    """Error taxonomy shared by discovery, routing, storage and the HTTP layer."""

    DISCOVERY_UNAVAILABLE = "discovery_unavailable"
    NO_BACKENDS_AVAILABLE = "no_backends_available"
    MALFORMED_BACKEND = "malformed_backend"
    OBJECT_NOT_FOUND = "object_not_found"
    BACKEND_OPERATION_FAILED = "backend_operation_failed"
    CANCELLED = "cancelled"


class ServiceEndpoint(str, Enum):
    """API endpoints exposed by the gateway."""

    OBJECT = "/object/{object_id}"
    OBJECTS = "/objects"
    LIVE = "/live"
    READY = "/ready"
    METRICS = "/metrics"


class ExecutorName(str, Enum):
    """Thread pools used for blocking SDK calls."""

    DISCOVERY = "discovery"
    STORAGE = "storage"


def status_code_for(kind: ErrorKind) -> int:
    """
    Map an error kind to the HTTP status the transport layer responds with.

    Args:
        kind: The error kind raised by the core

    Returns:
        int: HTTP status code
    """
    return _STATUS_BY_KIND.get(kind, 500)


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.DISCOVERY_UNAVAILABLE: 503,
    ErrorKind.NO_BACKENDS_AVAILABLE: 503,
    ErrorKind.MALFORMED_BACKEND: 500,
    ErrorKind.OBJECT_NOT_FOUND: 404,
    ErrorKind.BACKEND_OPERATION_FAILED: 500,
    ErrorKind.CANCELLED: 503,
}
