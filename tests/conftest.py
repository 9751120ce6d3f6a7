"""
Shared fakes for the gateway tests.

FakeControlPlane stands in for the Docker engine, FakeDiscovery for backend
discovery and InMemoryStorageClient for a backend's S3 API.
"""

import asyncio
from collections.abc import Callable, Iterator
import io

import pytest

from storage_gateway.config import GatewaySettings
from storage_gateway.discovery import BackendNode, ContainerInfo
from storage_gateway.errors import (
    DiscoveryUnavailableError,
    GatewayError,
    ObjectNotFoundError,
    RequestCancelledError,
)
from storage_gateway.storage import StoredObject
from storage_gateway.utils.executors import ServiceExecutorFactory


PREFIX = "amazin-object-storage-node-"


def make_container(
    ordinal: int | str,
    *,
    access_key: str | None = "access",
    secret_key: str | None = "secret",
    hostname: str | None = None,
    ip_address: str = "",
    project: str = "deployment",
) -> ContainerInfo:
    """Container metadata shaped like a compose-managed storage node."""
    env = ["PATH=/usr/bin"]
    if access_key is not None:
        env.append(f"MINIO_ACCESS_KEY={access_key}")
    if secret_key is not None:
        env.append(f"MINIO_SECRET_KEY={secret_key}")
    return ContainerInfo(
        container_id=f"{project[:4]}{ordinal}".ljust(64, "0"),
        name=f"/{project}-{PREFIX}{ordinal}-1",
        hostname=hostname if hostname is not None else f"node{ordinal}",
        ip_address=ip_address,
        env=tuple(env),
    )


def make_node(node_index: int) -> BackendNode:
    return BackendNode(
        node_index=node_index,
        address=f"node{node_index}",
        port=9000,
        access_key="access",
        secret_key="secret",
    )


class FakeControlPlane:
    """In-memory ControlPlane."""

    def __init__(self, containers: list[ContainerInfo] | None = None) -> None:
        self.containers = {info.container_id: info for info in containers or []}
        self.list_calls = 0
        self.fail_list = False
        self.fail_inspect: set[str] = set()
        self.fail_ping = False

    def list_matching(self, name_fragment: str) -> list[str]:
        self.list_calls += 1
        if self.fail_list:
            raise DiscoveryUnavailableError("engine down")
        return [cid for cid, info in self.containers.items() if name_fragment in info.name]

    def inspect(self, container_id: str) -> ContainerInfo:
        if container_id in self.fail_inspect:
            raise DiscoveryUnavailableError(f"cannot inspect {container_id}")
        return self.containers[container_id]

    def ping(self) -> None:
        if self.fail_ping:
            raise DiscoveryUnavailableError("engine down")


class FakeDiscovery:
    """BackendDiscovery stand-in returning a fixed node list."""

    def __init__(self, nodes: list[BackendNode] | None = None) -> None:
        self.nodes = list(nodes or [])
        self.error: GatewayError | None = None
        self.ready = True
        self.calls = 0

    async def list_backends(self, deadline: float | None = None) -> list[BackendNode]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.nodes)

    async def ping(self, deadline: float | None = None) -> bool:
        return self.ready


class InMemoryBackends:
    """Object stores of every fake backend, keyed by node index."""

    def __init__(self) -> None:
        self.objects: dict[int, dict[str, bytes]] = {}
        self.failures: dict[int, GatewayError] = {}
        self.hanging: set[int] = set()
        self.cancelled: set[int] = set()

    def store(self, node_index: int) -> dict[str, bytes]:
        return self.objects.setdefault(node_index, {})

    def client_factory(self) -> Callable[[BackendNode], "InMemoryStorageClient"]:
        return lambda node: InMemoryStorageClient(node, self)


class InMemoryStorageClient:
    """BackendStorageClient stand-in backed by InMemoryBackends."""

    def __init__(self, node: BackendNode, backends: InMemoryBackends) -> None:
        self.node = node
        self.backends = backends

    async def _checkpoint(self, deadline: float | None) -> None:
        index = self.node.node_index
        if index in self.backends.failures:
            raise self.backends.failures[index]
        if index in self.backends.hanging:
            try:
                async with asyncio.timeout_at(deadline):
                    await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.backends.cancelled.add(index)
                raise
            except TimeoutError as e:
                raise RequestCancelledError(node_index=index) from e

    async def put(self, object_id: str, data: bytes | io.BufferedIOBase, deadline=None) -> None:
        await self._checkpoint(deadline)
        payload = data if isinstance(data, bytes) else data.read()
        self.backends.store(self.node.node_index)[object_id] = payload

    async def get(self, object_id: str, deadline=None) -> StoredObject:
        await self._checkpoint(deadline)
        store = self.backends.store(self.node.node_index)
        if object_id not in store:
            raise ObjectNotFoundError(node_index=self.node.node_index)
        data = store[object_id]
        return StoredObject(
            object_id, io.BytesIO(data), content_length=len(data), node_index=self.node.node_index
        )

    async def list_all(self, deadline=None) -> list[str]:
        await self._checkpoint(deadline)
        return list(self.backends.store(self.node.node_index))


@pytest.fixture
def settings() -> GatewaySettings:
    """Settings independent of the process environment."""
    return GatewaySettings(
        BACKEND_NAME_PREFIX=PREFIX,
        BUCKET_NAME="spacelift-storage",
        REQUEST_TIMEOUT_SECONDS=5.0,
        IO_WORKER_THREADS=4,
        ENABLE_TRACING=False,
    )


@pytest.fixture(autouse=True)
def _reset_executors() -> Iterator[None]:
    """Each test gets fresh executor pools."""
    yield
    ServiceExecutorFactory.shutdown()
    ServiceExecutorFactory._settings = None
