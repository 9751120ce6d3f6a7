"""
Gateway error types.

Every failure the core reports is a GatewayError subclass tagged with an
ErrorKind. Layers add context (object id, node index) to an exception as it
travels up without changing its class, so the HTTP layer can map the kind to
a status code.
"""

from __future__ import annotations

from .enums import ErrorKind


class GatewayError(Exception):
    """Base exception for gateway operations.

    Attributes:
        message: Human-readable error message.
        object_id: Object the failing request was routed for (if known).
        node_index: Backend the failing call was made against (if known).
    """

    kind: ErrorKind = ErrorKind.BACKEND_OPERATION_FAILED
    default_message = "Gateway error"

    def __init__(
        self,
        message: str | None = None,
        *,
        object_id: str | None = None,
        node_index: int | None = None,
    ) -> None:
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.object_id = object_id
        self.node_index = node_index

    def __str__(self) -> str:
        parts = [self.message]
        if self.object_id is not None:
            parts.append(f"object_id={self.object_id}")
        if self.node_index is not None:
            parts.append(f"node_index={self.node_index}")
        if self.__cause__ is not None:
            parts.append(f"cause={self.__cause__!r}")
        return " ".join(parts)

    def add_context(
        self,
        *,
        object_id: str | None = None,
        node_index: int | None = None,
    ) -> GatewayError:
        """Fill in context that is not already set and return self for re-raising."""
        if self.object_id is None and object_id is not None:
            self.object_id = object_id
        if self.node_index is None and node_index is not None:
            self.node_index = node_index
        return self


class DiscoveryUnavailableError(GatewayError):
    """Raised when the control plane cannot be reached or a list/inspect call fails."""

    kind = ErrorKind.DISCOVERY_UNAVAILABLE
    default_message = "Control plane unavailable"


class NoBackendsAvailableError(GatewayError):
    """Raised when routing is attempted while zero backends are running."""

    kind = ErrorKind.NO_BACKENDS_AVAILABLE
    default_message = "No storage backends available"


class MalformedBackendError(GatewayError):
    """Raised for one backend whose metadata cannot be turned into a descriptor.

    Discovery logs and skips these; they never reach the HTTP layer.
    """

    kind = ErrorKind.MALFORMED_BACKEND
    default_message = "Malformed backend"

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: str = "metadata",
        container_name: str | None = None,
        node_index: int | None = None,
    ) -> None:
        super().__init__(message, node_index=node_index)
        self.reason = reason
        self.container_name = container_name

    def __str__(self) -> str:
        text = super().__str__()
        if self.container_name:
            text = f"{text} container={self.container_name}"
        return text


class ObjectNotFoundError(GatewayError):
    """Raised when the selected backend confirms the object does not exist."""

    kind = ErrorKind.OBJECT_NOT_FOUND
    default_message = "Object not found"


class BackendOperationFailedError(GatewayError):
    """Raised when a backend call fails for any reason other than a missing object.

    The backend's exception is chained as __cause__.
    """

    kind = ErrorKind.BACKEND_OPERATION_FAILED
    default_message = "Backend operation failed"


class RequestCancelledError(GatewayError):
    """Raised when the request deadline passes before an operation completes.

    Attributes:
        partial: Keys gathered before the deadline by a listing; empty for
            every other operation.
    """

    kind = ErrorKind.CANCELLED
    default_message = "Request deadline exceeded"

    def __init__(
        self,
        message: str | None = None,
        *,
        partial: list[str] | None = None,
        object_id: str | None = None,
        node_index: int | None = None,
    ) -> None:
        super().__init__(message, object_id=object_id, node_index=node_index)
        self.partial: list[str] = list(partial) if partial else []
