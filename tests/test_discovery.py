"""
Tests for backend discovery.

Tests cover:
- Container name and credential parsing
- Skipping malformed backends while keeping the rest
- Control-plane failures and deadlines
- Address mode selection
- Optional snapshot cache
- Docker control plane adapter
"""

import asyncio
from unittest.mock import MagicMock, patch

from docker.errors import APIError, NotFound
from prometheus_client import REGISTRY
import pytest

from conftest import PREFIX, FakeControlPlane, make_container
from storage_gateway.config import GatewaySettings
from storage_gateway.discovery import (
    BackendDiscovery,
    ContainerInfo,
    DockerControlPlane,
    extract_credentials,
    parse_node_index,
)
from storage_gateway.enums import AddressMode
from storage_gateway.errors import (
    DiscoveryUnavailableError,
    MalformedBackendError,
    RequestCancelledError,
)
from storage_gateway.routing import backend_position, select_backend


def _malformed_count(reason: str) -> float:
    return (
        REGISTRY.get_sample_value("gateway_malformed_backends_total", {"reason": reason}) or 0.0
    )


class TestParseNodeIndex:
    """Tests for parse_node_index."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("/deployment-amazin-object-storage-node-2-1", 2),
            ("amazin-object-storage-node-0", 0),
            ("/amazin-object-storage-node-13", 13),
            ("/proj-amazin-object-storage-node-7-12", 7),
        ],
    )
    def test_parses_ordinal(self, name: str, expected: int) -> None:
        """Test that the ordinal follows the prefix and the replica suffix is dropped."""
        assert parse_node_index(name, PREFIX) == expected

    @pytest.mark.parametrize(
        "name",
        [
            "/deployment-amazin-object-storage-node-x-1",
            "/deployment-amazin-object-storage-node-",
            "/deployment-amazin-object-storage-node--1",
            "/deployment-amazin-object-storage-node-\u0663-1",
            "/something-else-2",
        ],
    )
    def test_rejects_unparsable_names(self, name: str) -> None:
        """Test that names without a non-negative ordinal are malformed."""
        with pytest.raises(MalformedBackendError) as exc_info:
            parse_node_index(name, PREFIX)
        assert exc_info.value.reason == "name"
        assert exc_info.value.container_name == name


class TestExtractCredentials:
    """Tests for extract_credentials."""

    def test_finds_both_keys(self) -> None:
        """Test extraction from NAME=value entries."""
        env = ["A=1", "MINIO_ACCESS_KEY=ak", "MINIO_SECRET_KEY=s=k"]
        assert extract_credentials(env, "MINIO_ACCESS_KEY", "MINIO_SECRET_KEY") == ("ak", "s=k")

    def test_prefix_must_match_whole_name(self) -> None:
        """Test that a longer variable name sharing the prefix is ignored."""
        env = ["MINIO_ACCESS_KEY_FILE=/x", "MINIO_SECRET_KEY=sk"]
        with pytest.raises(MalformedBackendError) as exc_info:
            extract_credentials(env, "MINIO_ACCESS_KEY", "MINIO_SECRET_KEY")
        assert exc_info.value.reason == "credentials"
        assert "MINIO_ACCESS_KEY" in str(exc_info.value)

    def test_missing_secret(self) -> None:
        """Test that a missing secret key is malformed."""
        with pytest.raises(MalformedBackendError):
            extract_credentials(["MINIO_ACCESS_KEY=ak"], "MINIO_ACCESS_KEY", "MINIO_SECRET_KEY")


class TestBackendDiscovery:
    """Tests for BackendDiscovery.list_backends."""

    @pytest.mark.asyncio
    async def test_lists_all_backends(self, settings: GatewaySettings) -> None:
        """Test that every well-formed container becomes a descriptor."""
        plane = FakeControlPlane([make_container(i) for i in range(3)])
        discovery = BackendDiscovery(plane, settings)

        nodes = await discovery.list_backends()

        assert sorted(n.node_index for n in nodes) == [0, 1, 2]
        node = next(n for n in nodes if n.node_index == 1)
        assert node.address == "node1"
        assert node.port == 9000
        assert node.access_key == "access"
        assert node.secret_key == "secret"
        assert node.endpoint == "node1:9000"

    @pytest.mark.asyncio
    async def test_zero_backends_is_empty(self, settings: GatewaySettings) -> None:
        """Test that nothing running is an empty list, not an error."""
        discovery = BackendDiscovery(FakeControlPlane(), settings)
        assert await discovery.list_backends() == []

    @pytest.mark.asyncio
    async def test_skips_backend_without_credentials(self, settings: GatewaySettings) -> None:
        """Test that one malformed backend out of three leaves two."""
        before = _malformed_count("credentials")
        plane = FakeControlPlane(
            [make_container(0), make_container(1, secret_key=None), make_container(2)]
        )
        discovery = BackendDiscovery(plane, settings)

        nodes = await discovery.list_backends()

        assert sorted(n.node_index for n in nodes) == [0, 2]
        assert _malformed_count("credentials") == before + 1

    @pytest.mark.asyncio
    async def test_skips_backend_with_bad_name(self, settings: GatewaySettings) -> None:
        """Test that an unparsable ordinal is skipped."""
        plane = FakeControlPlane([make_container(0), make_container("abc")])
        nodes = await BackendDiscovery(plane, settings).list_backends()
        assert [n.node_index for n in nodes] == [0]

    @pytest.mark.asyncio
    async def test_skips_duplicate_ordinal(self, settings: GatewaySettings) -> None:
        """Test that a second container claiming the same ordinal is skipped."""
        plane = FakeControlPlane(
            [make_container(1), make_container(1, project="other", hostname="dup")]
        )
        nodes = await BackendDiscovery(plane, settings).list_backends()
        assert len(nodes) == 1
        assert nodes[0].node_index == 1

    @pytest.mark.asyncio
    async def test_duplicate_ordinal_independent_of_list_order(
        self, settings: GatewaySettings
    ) -> None:
        """Test that the same container owns a shared ordinal in every listing order."""
        first = make_container(1, project="alpha", hostname="host-a")
        second = make_container(1, project="bravo", hostname="host-b")
        others = [make_container(0), make_container(2)]
        object_id = next(
            f"object_{i}" for i in range(1000) if backend_position(f"object_{i}", 3) == 1
        )

        forward = await BackendDiscovery(
            FakeControlPlane([*others, first, second]), settings
        ).list_backends()
        backward = await BackendDiscovery(
            FakeControlPlane([second, *others, first]), settings
        ).list_backends()

        assert select_backend(object_id, forward).address == "host-a"
        assert select_backend(object_id, backward).address == "host-a"
        assert sorted(n.node_index for n in backward) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_ignores_unrelated_containers(self, settings: GatewaySettings) -> None:
        """Test that only containers carrying the prefix are considered."""
        unrelated = ContainerInfo(
            container_id="z" * 64, name="/postgres-1", hostname="db", ip_address=""
        )
        plane = FakeControlPlane([make_container(0), unrelated])
        nodes = await BackendDiscovery(plane, settings).list_backends()
        assert [n.node_index for n in nodes] == [0]

    @pytest.mark.asyncio
    async def test_ip_address_mode(self, settings: GatewaySettings) -> None:
        """Test that IP mode dials the container IP."""
        settings = settings.model_copy(update={"backend_address_mode": AddressMode.IP})
        plane = FakeControlPlane(
            [make_container(0, ip_address="172.18.0.5"), make_container(1, ip_address="")]
        )
        nodes = await BackendDiscovery(plane, settings).list_backends()

        assert [n.address for n in nodes] == ["172.18.0.5"]

    @pytest.mark.asyncio
    async def test_list_failure_is_discovery_unavailable(self, settings: GatewaySettings) -> None:
        """Test that a control-plane list error surfaces unchanged."""
        plane = FakeControlPlane([make_container(0)])
        plane.fail_list = True
        with pytest.raises(DiscoveryUnavailableError):
            await BackendDiscovery(plane, settings).list_backends()

    @pytest.mark.asyncio
    async def test_inspect_failure_is_discovery_unavailable(
        self, settings: GatewaySettings
    ) -> None:
        """Test that a failed inspect fails the whole discovery pass."""
        container = make_container(0)
        plane = FakeControlPlane([container, make_container(1)])
        plane.fail_inspect.add(container.container_id)
        with pytest.raises(DiscoveryUnavailableError):
            await BackendDiscovery(plane, settings).list_backends()

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, settings: GatewaySettings) -> None:
        """Test that an expired deadline is reported as cancellation."""
        plane = FakeControlPlane([make_container(0)])
        deadline = asyncio.get_running_loop().time() - 1
        with pytest.raises(RequestCancelledError):
            await BackendDiscovery(plane, settings).list_backends(deadline)

    @pytest.mark.asyncio
    async def test_no_cache_by_default(self, settings: GatewaySettings) -> None:
        """Test that every call queries the control plane."""
        plane = FakeControlPlane([make_container(0)])
        discovery = BackendDiscovery(plane, settings)

        await discovery.list_backends()
        await discovery.list_backends()

        assert plane.list_calls == 2

    @pytest.mark.asyncio
    async def test_snapshot_cache(self, settings: GatewaySettings) -> None:
        """Test that a configured TTL reuses the last snapshot."""
        settings = settings.model_copy(update={"discovery_cache_ttl_seconds": 60.0})
        plane = FakeControlPlane([make_container(0)])
        discovery = BackendDiscovery(plane, settings)

        first = await discovery.list_backends()
        plane.containers.clear()
        second = await discovery.list_backends()

        assert plane.list_calls == 1
        assert first == second


class TestPing:
    """Tests for BackendDiscovery.ping."""

    @pytest.mark.asyncio
    async def test_ping_ok(self, settings: GatewaySettings) -> None:
        """Test a healthy control plane."""
        assert await BackendDiscovery(FakeControlPlane(), settings).ping() is True

    @pytest.mark.asyncio
    async def test_ping_failure(self, settings: GatewaySettings) -> None:
        """Test that an unreachable control plane reports not ready."""
        plane = FakeControlPlane()
        plane.fail_ping = True
        assert await BackendDiscovery(plane, settings).ping() is False


class TestDockerControlPlane:
    """Tests for the Docker SDK adapter."""

    def _container(self, container_id: str, name: str) -> MagicMock:
        container = MagicMock()
        container.id = container_id
        container.attrs = {"Id": container_id, "Names": [name]}
        return container

    def test_list_matching_filters_literally(self) -> None:
        """Test that only names containing the literal fragment are returned."""
        client = MagicMock()
        client.containers.list.return_value = [
            self._container("a", f"/deployment-{PREFIX}0-1"),
            self._container("b", "/amazin-object-storage-nodeX"),
        ]
        plane = DockerControlPlane(client=client)

        assert plane.list_matching(PREFIX) == ["a"]
        client.containers.list.assert_called_once_with(
            all=False, filters={"name": PREFIX}, sparse=True
        )

    def test_list_matching_api_error(self) -> None:
        """Test that SDK errors become DiscoveryUnavailableError."""
        client = MagicMock()
        client.containers.list.side_effect = APIError("boom")
        with pytest.raises(DiscoveryUnavailableError) as exc_info:
            DockerControlPlane(client=client).list_matching(PREFIX)
        assert isinstance(exc_info.value.__cause__, APIError)

    def test_inspect_maps_metadata(self) -> None:
        """Test mapping of inspect output."""
        client = MagicMock()
        client.api.inspect_container.return_value = {
            "Id": "abc",
            "Name": f"/deployment-{PREFIX}2-1",
            "Config": {"Hostname": "h2", "Env": ["MINIO_ACCESS_KEY=ak"]},
            "NetworkSettings": {
                "IPAddress": "",
                "Networks": {"deployment_default": {"IPAddress": "172.20.0.3"}},
            },
        }

        info = DockerControlPlane(client=client).inspect("abc")

        assert info.container_id == "abc"
        assert info.name == f"/deployment-{PREFIX}2-1"
        assert info.hostname == "h2"
        assert info.ip_address == "172.20.0.3"
        assert info.env == ("MINIO_ACCESS_KEY=ak",)

    def test_inspect_vanished_container(self) -> None:
        """Test that a container gone between list and inspect is a discovery error."""
        client = MagicMock()
        client.api.inspect_container.side_effect = NotFound("gone")
        with pytest.raises(DiscoveryUnavailableError):
            DockerControlPlane(client=client).inspect("abc")

    def test_client_keeps_fractional_timeout(self) -> None:
        """Test that sub-second timeouts reach the Docker client unchanged."""
        target = "storage_gateway.discovery.control_plane.docker.from_env"
        with patch(target) as mock_from_env:
            plane = DockerControlPlane(timeout_seconds=0.5)
            assert plane.client is mock_from_env.return_value

        mock_from_env.assert_called_once_with(timeout=0.5)

    def test_ping(self) -> None:
        """Test ping success and failure."""
        client = MagicMock()
        plane = DockerControlPlane(client=client)
        plane.ping()
        client.ping.side_effect = APIError("down")
        with pytest.raises(DiscoveryUnavailableError):
            plane.ping()
