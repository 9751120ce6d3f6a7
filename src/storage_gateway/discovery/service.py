"""
Backend discovery.

Turns the set of running storage containers into BackendNode descriptors.
Every call re-queries the control plane unless the optional snapshot cache is
enabled in settings.
"""

import asyncio
from collections.abc import Sequence
import logging
import re
import time

from opentelemetry import trace

from ..config import GatewaySettings, get_settings
from ..enums import AddressMode, ExecutorName
from ..errors import DiscoveryUnavailableError, MalformedBackendError, RequestCancelledError
from ..telemetry import (
    backends_discovered_gauge,
    discovery_duration_histogram,
    error_counter,
    malformed_backends_counter,
)
from ..utils.cache import LRUCache
from ..utils.executors import ServiceExecutorFactory
from .control_plane import ControlPlane, DockerControlPlane
from .models import BackendNode, ContainerInfo


logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_ORDINAL_PATTERN = re.compile(r"^([0-9]+)(?:-[0-9]+)?$")
_SNAPSHOT_KEY = "backends"


def parse_node_index(container_name: str, prefix: str) -> int:
    """
    Extract the backend ordinal from a container name.

    The ordinal is the number right after the recognition prefix; a compose
    project prefix before it and a replica suffix after it are ignored:
    "/deployment-amazin-object-storage-node-2-1" -> 2.

    Raises:
        MalformedBackendError: If no ordinal can be parsed
    """
    name = container_name.strip("/")
    _, found, remainder = name.partition(prefix)
    match = _ORDINAL_PATTERN.match(remainder) if found else None
    if match is None:
        raise MalformedBackendError(
            f"cannot parse backend ordinal from container name {container_name!r}",
            reason="name",
            container_name=container_name,
        )
    return int(match.group(1))


def extract_credentials(
    env: Sequence[str], access_key_var: str, secret_key_var: str
) -> tuple[str, str]:
    """
    Find the access and secret key in a container's "NAME=value" environment.

    Raises:
        MalformedBackendError: If either variable is absent or empty
    """
    access_prefix = f"{access_key_var}="
    secret_prefix = f"{secret_key_var}="
    access_key = secret_key = ""
    for entry in env:
        if entry.startswith(access_prefix):
            access_key = entry[len(access_prefix) :]
        elif entry.startswith(secret_prefix):
            secret_key = entry[len(secret_prefix) :]

    missing = [
        var
        for var, value in ((access_key_var, access_key), (secret_key_var, secret_key))
        if not value
    ]
    if missing:
        raise MalformedBackendError(
            f"missing credential variables: {', '.join(missing)}", reason="credentials"
        )
    return access_key, secret_key


class BackendDiscovery:
    """
    Lists the storage backends that are running right now.
    """

    def __init__(
        self,
        control_plane: ControlPlane | None = None,
        settings: GatewaySettings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.control_plane: ControlPlane = control_plane or DockerControlPlane(
            timeout_seconds=self.settings.docker_timeout_seconds
        )

        self._snapshot_cache: LRUCache[str, tuple[BackendNode, ...]] | None = None
        if self.settings.discovery_cache_enabled:
            self._snapshot_cache = LRUCache(
                capacity=1,
                ttl=self.settings.discovery_cache_ttl_seconds,
                name="discovery_snapshot",
            )

        logger.info(
            "BackendDiscovery initialized: prefix=%s, port=%d, address_mode=%s, cache_ttl=%.1fs",
            self.settings.backend_name_prefix,
            self.settings.backend_port,
            self.settings.backend_address_mode.value,
            self.settings.discovery_cache_ttl_seconds,
        )

    async def list_backends(self, deadline: float | None = None) -> list[BackendNode]:
        """
        Discover the running backends.

        Args:
            deadline: Absolute event-loop time by which discovery must finish

        Returns:
            Descriptors in control-plane order; empty when nothing is running

        Raises:
            DiscoveryUnavailableError: If the control plane cannot be queried
            RequestCancelledError: If the deadline passes first
        """
        if self._snapshot_cache is not None and (
            cached := self._snapshot_cache.get(_SNAPSHOT_KEY)
        ) is not None:
            return list(cached)

        start = time.perf_counter()
        with tracer.start_as_current_span("gateway.discovery"):
            try:
                async with asyncio.timeout_at(deadline):
                    nodes = await self._discover()
            except TimeoutError as e:
                error_counter.labels(error_type=RequestCancelledError.kind.value).inc()
                raise RequestCancelledError("Deadline exceeded during discovery") from e
            except DiscoveryUnavailableError:
                error_counter.labels(error_type=DiscoveryUnavailableError.kind.value).inc()
                logger.exception("Backend discovery failed")
                raise

        discovery_duration_histogram.observe(time.perf_counter() - start)
        backends_discovered_gauge.set(len(nodes))

        if self._snapshot_cache is not None:
            self._snapshot_cache.put(_SNAPSHOT_KEY, tuple(nodes))

        logger.debug(
            "Discovered %d backend(s): %s", len(nodes), [node.node_index for node in nodes]
        )
        return nodes

    async def ping(self, deadline: float | None = None) -> bool:
        """Return True if the control plane answers a ping before the deadline."""
        try:
            async with asyncio.timeout_at(deadline):
                await ServiceExecutorFactory.run_blocking(
                    ExecutorName.DISCOVERY, self.control_plane.ping
                )
        except TimeoutError:
            logger.warning("Control plane ping timed out")
            return False
        except DiscoveryUnavailableError as e:
            logger.warning("Control plane ping failed: %s", e)
            return False
        return True

    async def _discover(self) -> list[BackendNode]:
        prefix = self.settings.backend_name_prefix
        container_ids = await ServiceExecutorFactory.run_blocking(
            ExecutorName.DISCOVERY, self.control_plane.list_matching, prefix
        )
        logger.debug("Control plane reported %d matching container(s)", len(container_ids))

        infos = await asyncio.gather(
            *[
                ServiceExecutorFactory.run_blocking(
                    ExecutorName.DISCOVERY, self.control_plane.inspect, container_id
                )
                for container_id in container_ids
            ]
        )

        candidates: list[BackendNode] = []
        for info in infos:
            try:
                candidates.append(self.describe(info))
            except MalformedBackendError as e:
                self._skip(info.container_id, e)

        # Among containers claiming one ordinal the smallest container id wins,
        # whatever order the control plane listed them in.
        owners: dict[int, BackendNode] = {}
        for node in sorted(candidates, key=lambda n: n.container_id):
            owner = owners.get(node.node_index)
            if owner is None:
                owners[node.node_index] = node
                continue
            self._skip(
                node.container_id,
                MalformedBackendError(
                    f"duplicate backend ordinal {node.node_index}, "
                    f"already used by {owner.name}",
                    reason="duplicate",
                    container_name=node.name,
                    node_index=node.node_index,
                ),
            )

        nodes: list[BackendNode] = []
        for node in candidates:
            if owners[node.node_index] is not node:
                continue
            logger.info(
                "Found backend %d at %s (container %s)",
                node.node_index,
                node.endpoint,
                node.container_id[:12],
            )
            nodes.append(node)

        return nodes

    def _skip(self, container_id: str, error: MalformedBackendError) -> None:
        malformed_backends_counter.labels(reason=error.reason).inc()
        logger.warning("Skipping malformed backend %s: %s", container_id[:12], error)

    def describe(self, info: ContainerInfo) -> BackendNode:
        """
        Build a descriptor from inspected container metadata.

        Raises:
            MalformedBackendError: If the name, address or credentials are unusable
        """
        settings = self.settings
        try:
            node_index = parse_node_index(info.name, settings.backend_name_prefix)
            access_key, secret_key = extract_credentials(
                info.env, settings.backend_access_key_env, settings.backend_secret_key_env
            )
        except MalformedBackendError as e:
            e.container_name = e.container_name or info.name
            raise

        if settings.backend_address_mode is AddressMode.IP:
            address = info.ip_address
        else:
            address = info.hostname
        if not address:
            raise MalformedBackendError(
                f"container has no {settings.backend_address_mode.value}",
                reason="address",
                container_name=info.name,
                node_index=node_index,
            )

        return BackendNode(
            node_index=node_index,
            address=address,
            port=settings.backend_port,
            access_key=access_key,
            secret_key=secret_key,
            container_id=info.container_id,
            name=info.name.strip("/"),
        )
