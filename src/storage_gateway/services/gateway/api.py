"""
Gateway service API

Object upload, download and listing, plus the probe and metrics endpoints.
"""

import logging
import threading
import time
from typing import Annotated

from fastapi import APIRouter, Depends, File, Path, UploadFile
from fastapi.responses import ORJSONResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ...dependencies import get_orchestrator
from ...enums import ServiceEndpoint
from .orchestrator import GatewayOrchestrator
from .schemas import OBJECT_ID_PATTERN, MessageResponse, StatusResponse


class _MetricsCache:
    def __init__(self) -> None:
        self.content: bytes | None = None
        self.time = 0.0
        self.lock = threading.Lock()
        self.ttl = 0.5

    def get_content(self) -> bytes:
        now = time.monotonic()
        if self.content is not None and now - self.time < self.ttl:
            return self.content
        with self.lock:
            if self.content is not None and now - self.time < self.ttl:
                return self.content
            content = generate_latest()
            self.content = content
            self.time = now
            return content


_cache = _MetricsCache()

logger = logging.getLogger(__name__)

router = APIRouter()

ObjectId = Annotated[
    str, Path(pattern=OBJECT_ID_PATTERN, description="Object id, 1-32 of [A-Za-z0-9_]")
]
Orchestrator = Annotated[GatewayOrchestrator, Depends(get_orchestrator)]


@router.put(ServiceEndpoint.OBJECT.value, status_code=201)
async def put_object(
    object_id: ObjectId,
    file: Annotated[UploadFile, File(description="Object content")],
    orchestrator: Orchestrator,
) -> MessageResponse:
    """
    Upload an object, replacing any object stored under the same id.
    """
    try:
        node = await orchestrator.put(
            object_id, file.file, timeout=orchestrator.settings.request_timeout_seconds
        )
    finally:
        await file.close()

    logger.info("Uploaded object %s to backend %d", object_id, node.node_index)
    return MessageResponse(message="Object uploaded successfully")


@router.get(ServiceEndpoint.OBJECT.value, response_class=StreamingResponse)
async def get_object(object_id: ObjectId, orchestrator: Orchestrator) -> StreamingResponse:
    """
    Download an object.

    The body is streamed from the backend in chunks.
    """
    stored = await orchestrator.get(
        object_id, timeout=orchestrator.settings.request_timeout_seconds
    )
    headers = {}
    if stored.content_length is not None:
        headers["Content-Length"] = str(stored.content_length)
    return StreamingResponse(
        stored.iter_chunks(),
        media_type="application/octet-stream",
        headers=headers,
    )


@router.get(ServiceEndpoint.OBJECTS.value)
async def list_objects(orchestrator: Orchestrator) -> list[str]:
    """List the ids of all objects across every running backend."""
    return await orchestrator.list_all(timeout=orchestrator.settings.request_timeout_seconds)


@router.get(ServiceEndpoint.LIVE.value)
async def live() -> StatusResponse:
    """Liveness probe."""
    return StatusResponse(status="ok")


@router.get(ServiceEndpoint.READY.value, responses={503: {"model": StatusResponse}})
async def ready(orchestrator: Orchestrator) -> ORJSONResponse:
    """Readiness probe: the control plane must answer a ping."""
    if await orchestrator.is_ready(timeout=orchestrator.settings.docker_timeout_seconds):
        return ORJSONResponse({"status": "ready"})
    return ORJSONResponse({"status": "unavailable"}, status_code=503)


@router.get(ServiceEndpoint.METRICS.value, response_class=Response)
@router.head(ServiceEndpoint.METRICS.value, response_class=Response)
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=_cache.get_content(), media_type=CONTENT_TYPE_LATEST)
