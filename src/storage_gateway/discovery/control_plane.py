"""
Read-only access to the container runtime that hosts the storage backends.

The gateway depends only on the narrow ControlPlane protocol; DockerControlPlane
implements it with the Docker SDK. All methods are blocking and are run in the
discovery thread pool by the caller.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Protocol

import docker
from docker.errors import DockerException, NotFound
from requests.exceptions import RequestException

from ..errors import DiscoveryUnavailableError
from .models import ContainerInfo


logger = logging.getLogger(__name__)


class ControlPlane(Protocol):
    """The control-plane surface used by discovery."""

    def list_matching(self, name_fragment: str) -> list[str]:
        """Return ids of running containers whose name contains name_fragment."""
        ...

    def inspect(self, container_id: str) -> ContainerInfo:
        """Return runtime metadata for one container."""
        ...

    def ping(self) -> None:
        """Raise DiscoveryUnavailableError if the control plane does not answer."""
        ...


class DockerControlPlane:
    """
    ControlPlane backed by the Docker engine API.

    The SDK client is created on first use from the standard DOCKER_HOST /
    DOCKER_TLS_VERIFY / DOCKER_CERT_PATH environment.
    """

    def __init__(self, timeout_seconds: float = 10.0, client: Any = None) -> None:
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._client_lock = Lock()

    @property
    def client(self) -> Any:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    try:
                        self._client = docker.from_env(timeout=self.timeout_seconds)
                    except (DockerException, RequestException) as e:
                        raise DiscoveryUnavailableError(
                            "Failed to connect to the Docker engine"
                        ) from e
                    logger.info("Connected to Docker engine")
        return self._client

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def list_matching(self, name_fragment: str) -> list[str]:
        try:
            containers = self.client.containers.list(
                all=False,
                filters={"name": name_fragment},
                sparse=True,
            )
        except (DockerException, RequestException) as e:
            raise DiscoveryUnavailableError("Failed to list containers") from e

        # The engine's name filter is a regex match; re-check for a literal fragment.
        matching = []
        for container in containers:
            names = container.attrs.get("Names") or [container.attrs.get("Name", "")]
            if any(name_fragment in name for name in names):
                matching.append(container.id)
        return matching

    def inspect(self, container_id: str) -> ContainerInfo:
        try:
            details: dict[str, Any] = self.client.api.inspect_container(container_id)
        except NotFound as e:
            # The container stopped between list and inspect.
            raise DiscoveryUnavailableError(
                f"Container {container_id} disappeared during discovery"
            ) from e
        except (DockerException, RequestException) as e:
            raise DiscoveryUnavailableError(f"Failed to inspect container {container_id}") from e

        config = details.get("Config") or {}
        network = details.get("NetworkSettings") or {}
        return ContainerInfo(
            container_id=details.get("Id", container_id),
            name=details.get("Name", ""),
            hostname=config.get("Hostname") or "",
            ip_address=_primary_ip_address(network),
            env=tuple(config.get("Env") or ()),
        )

    def ping(self) -> None:
        try:
            self.client.ping()
        except (DockerException, RequestException) as e:
            raise DiscoveryUnavailableError("Docker engine did not answer ping") from e


def _primary_ip_address(network: dict[str, Any]) -> str:
    """Container IP on the default bridge, else on the first attached network."""
    if network.get("IPAddress"):
        return str(network["IPAddress"])
    for attached in (network.get("Networks") or {}).values():
        if attached and attached.get("IPAddress"):
            return str(attached["IPAddress"])
    return ""
