"""
Discovery of the running storage backends.
"""

from .control_plane import ControlPlane, DockerControlPlane
from .models import BackendNode, ContainerInfo
from .service import BackendDiscovery, extract_credentials, parse_node_index


__all__ = [
    "BackendDiscovery",
    "BackendNode",
    "ContainerInfo",
    "ControlPlane",
    "DockerControlPlane",
    "extract_credentials",
    "parse_node_index",
]
