import logging
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .services.gateway.metrics import latency_histogram, request_counter


logger = logging.getLogger(__name__)

_UNMATCHED_ROUTE = "unmatched"


def _route_template(scope: Scope) -> str:
    """Route path template ("/object/{object_id}") set by the router, if any."""
    route = scope.get("route")
    return getattr(route, "path", None) or _UNMATCHED_ROUTE


class RequestLoggingMiddleware:
    """
    Logs one line per HTTP request and records request metrics.

    Metrics are labelled by route template so object ids do not create new series.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_holder = [500]

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                status_holder[0] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed = time.perf_counter() - start
            method = scope["method"]
            route = _route_template(scope)
            status = status_holder[0]

            request_counter.labels(method=method, route=route, status=str(status)).inc()
            latency_histogram.labels(method=method, route=route).observe(elapsed)

            level = logging.WARNING if status >= 500 else logging.INFO
            logger.log(
                level,
                "%s %s -> %d (%.1fms)",
                method,
                scope["path"],
                status,
                elapsed * 1000,
            )
