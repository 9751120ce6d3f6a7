"""
Gateway service application.

Builds the FastAPI app that exposes the orchestrator over HTTP and maps the
gateway error taxonomy to status codes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import GatewaySettings, get_settings
from ..enums import status_code_for
from ..errors import GatewayError
from ..middleware import RequestLoggingMiddleware
from ..telemetry import instrument_fastapi_app
from ..utils.executors import ServiceExecutorFactory
from .gateway.api import router as gateway_router
from .gateway.metrics import error_counter
from .gateway.orchestrator import GatewayOrchestrator
from .gateway.schemas import ErrorResponse


logger = logging.getLogger(__name__)


def _error_response(
    message: str, status_code: int, headers: dict[str, str] | None = None
) -> ORJSONResponse:
    body = ErrorResponse(message=message, code=status_code)
    return ORJSONResponse(body.model_dump(), status_code=status_code, headers=headers)


async def _gateway_error_handler(request: Request, exc: GatewayError) -> ORJSONResponse:
    status_code = status_code_for(exc.kind)
    error_counter.labels(error_type=exc.kind.value).inc()
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s: %s", request.method, request.url.path, exc)
    return _error_response(exc.message, status_code)


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    error_counter.labels(error_type="validation").inc()
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    logger.info("%s %s rejected: %s", request.method, request.url.path, message)
    return _error_response(message, 400)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    error_counter.labels(error_type="http").inc()
    return _error_response(str(exc.detail), exc.status_code, headers=exc.headers)


def create_app(
    settings: GatewaySettings | None = None,
    orchestrator: GatewayOrchestrator | None = None,
) -> FastAPI:
    """
    Create the gateway FastAPI application.

    Args:
        settings: Gateway settings, defaults to get_settings()
        orchestrator: Prebuilt orchestrator; one backed by Docker discovery is
            created at startup when omitted

    Returns:
        FastAPI: The configured application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for startup and shutdown."""
        logger.info("Starting gateway service...")
        ServiceExecutorFactory.initialize(settings)
        if app.state.orchestrator is None:
            app.state.orchestrator = GatewayOrchestrator(settings=settings)
        logger.info("Gateway service started")

        yield

        logger.info("Stopping gateway service...")
        ServiceExecutorFactory.shutdown()
        logger.info("Gateway service stopped")

    app = FastAPI(
        title="Object Storage Gateway",
        description="Routes object requests to dynamically discovered storage backends",
        version=__version__,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(gateway_router)

    # Instrument with telemetry
    instrument_fastapi_app(app)

    return app
