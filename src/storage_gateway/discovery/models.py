"""
Value types produced by backend discovery.
"""

import msgspec


class ContainerInfo(msgspec.Struct, frozen=True):
    """Runtime metadata of one container, as reported by the control plane."""

    container_id: str
    name: str
    hostname: str
    ip_address: str
    env: tuple[str, ...] = ()


class BackendNode(msgspec.Struct, frozen=True):
    """
    Identity and connection parameters of one storage backend.

    Instances are recreated on every discovery pass and never mutated.
    """

    node_index: int
    address: str
    port: int
    access_key: str
    secret_key: str
    container_id: str = ""
    name: str = ""

    @property
    def endpoint(self) -> str:
        """host:port of the backend's S3 API."""
        return f"{self.address}:{self.port}"

    def __repr__(self) -> str:
        # Keep credentials out of logs.
        return (
            f"BackendNode(node_index={self.node_index}, endpoint={self.endpoint!r}, "
            f"name={self.name!r})"
        )
