"""
Orchestrator for object requests across the storage backends.

Every put/get runs discovery, routing and the storage call afresh; nothing is
remembered between requests. The request timeout becomes one absolute
deadline that every blocking step shares.
"""

import asyncio
from collections.abc import Callable
from functools import partial
import logging
from typing import IO

from opentelemetry import trace

from ...config import GatewaySettings, get_settings
from ...discovery import BackendDiscovery, BackendNode
from ...errors import GatewayError, NoBackendsAvailableError, RequestCancelledError
from ...routing import select_backend
from ...storage import BackendStorageClient, StoredObject
from ...telemetry import error_counter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

StorageClientFactory = Callable[[BackendNode], BackendStorageClient]


def _deadline(timeout: float | None) -> float | None:
    if timeout is None:
        return None
    return asyncio.get_running_loop().time() + timeout


class GatewayOrchestrator:
    """
    Routes object requests to the backend that owns the object id.
    """

    def __init__(
        self,
        discovery: BackendDiscovery | None = None,
        client_factory: StorageClientFactory | None = None,
        settings: GatewaySettings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.discovery = discovery or BackendDiscovery(settings=self.settings)
        self.client_factory: StorageClientFactory = client_factory or partial(
            BackendStorageClient, settings=self.settings
        )
        logger.info(
            "GatewayOrchestrator initialized with bucket=%s, request_timeout=%.1fs",
            self.settings.bucket_name,
            self.settings.request_timeout_seconds,
        )

    async def put(
        self,
        object_id: str,
        data: bytes | IO[bytes],
        timeout: float | None = None,
    ) -> BackendNode:
        """
        Store data under object_id on its backend.

        Returns:
            The backend the object was written to
        """
        deadline = _deadline(timeout)
        with tracer.start_as_current_span(
            "gateway.put", attributes={"gateway.object_id": object_id}
        ) as span:
            try:
                node = await self._route(object_id, deadline)
                span.set_attribute("gateway.node_index", node.node_index)
                await self.client_factory(node).put(object_id, data, deadline)
            except GatewayError as e:
                e.add_context(object_id=object_id)
                raise

        logger.info("Stored object %s on backend %d", object_id, node.node_index)
        return node

    async def get(self, object_id: str, timeout: float | None = None) -> StoredObject:
        """
        Open object_id on the backend that owns it.

        The caller closes the returned object (iter_chunks does so when done).
        """
        deadline = _deadline(timeout)
        with tracer.start_as_current_span(
            "gateway.get", attributes={"gateway.object_id": object_id}
        ) as span:
            try:
                node = await self._route(object_id, deadline)
                span.set_attribute("gateway.node_index", node.node_index)
                stored = await self.client_factory(node).get(object_id, deadline)
            except GatewayError as e:
                e.add_context(object_id=object_id)
                raise

        logger.debug("Opened object %s on backend %d", object_id, node.node_index)
        return stored

    async def list_all(self, timeout: float | None = None) -> list[str]:
        """
        List the object ids held by every running backend.

        Backends are listed concurrently. The first failure cancels the
        remaining listings and is raised once they have stopped; a deadline
        failure carries the ids collected so far in its partial attribute.

        Returns:
            Distinct object ids in discovery order of their backends
        """
        deadline = _deadline(timeout)
        with tracer.start_as_current_span("gateway.list_all") as span:
            nodes = await self.discovery.list_backends(deadline)
            span.set_attribute("gateway.backend_count", len(nodes))
            if not nodes:
                return []

            results: dict[int, list[str]] = {}
            lock = asyncio.Lock()
            failures: asyncio.Queue[GatewayError] = asyncio.Queue()

            async def list_node(position: int, node: BackendNode) -> None:
                try:
                    keys = await self.client_factory(node).list_all(deadline)
                except RequestCancelledError as e:
                    async with lock:
                        results[position] = list(e.partial)
                    failures.put_nowait(e)
                    raise
                except GatewayError as e:
                    failures.put_nowait(e)
                    raise
                async with lock:
                    results[position] = keys

            tasks = [
                asyncio.create_task(
                    list_node(position, node), name=f"list-backend-{node.node_index}"
                )
                for position, node in enumerate(nodes)
            ]
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

            collected = _merge(results)
            if not failures.empty():
                first = failures.get_nowait()
                if isinstance(first, RequestCancelledError):
                    first.partial = collected
                logger.error("Listing failed: %s", first)
                raise first
            for task in done:
                if not task.cancelled() and (exc := task.exception()) is not None:
                    raise exc

        logger.debug("Listed %d object(s) across %d backend(s)", len(collected), len(nodes))
        return collected

    async def is_ready(self, timeout: float | None = None) -> bool:
        """True if the control plane answers before the timeout."""
        return await self.discovery.ping(_deadline(timeout))

    async def _route(self, object_id: str, deadline: float | None) -> BackendNode:
        nodes = await self.discovery.list_backends(deadline)
        try:
            node = select_backend(object_id, nodes)
        except NoBackendsAvailableError:
            error_counter.labels(error_type=NoBackendsAvailableError.kind.value).inc()
            logger.warning("No backends available to route object %s", object_id)
            raise
        logger.debug(
            "Routed object %s to backend %d of %d", object_id, node.node_index, len(nodes)
        )
        return node


def _merge(results: dict[int, list[str]]) -> list[str]:
    """Concatenate per-backend listings in position order, dropping duplicates."""
    merged: dict[str, None] = {}
    for position in sorted(results):
        merged.update(dict.fromkeys(results[position]))
    return list(merged)
