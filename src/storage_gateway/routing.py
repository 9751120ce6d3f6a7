"""
Deterministic object-to-backend routing.

An object id is hashed with 64-bit FNV-1a and the hash, modulo the number of
live backends, picks a position in the backend list ordered by node index.
Put and get both route through select_backend, so a read lands on the backend
the write went to as long as the set of backends is unchanged. Adding or
removing a backend remaps most ids; existing objects are not migrated.
"""

from collections.abc import Sequence

from .discovery.models import BackendNode
from .errors import NoBackendsAvailableError


FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK_64 = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a hash of data."""
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK_64
    return h


def backend_position(object_id: str, count: int) -> int:
    """
    Position (0..count-1) of the backend that owns object_id.

    Raises:
        NoBackendsAvailableError: If count is zero
    """
    if count <= 0:
        raise NoBackendsAvailableError(object_id=object_id)
    return fnv1a_64(object_id.encode("utf-8", "surrogatepass")) % count


def select_backend(object_id: str, nodes: Sequence[BackendNode]) -> BackendNode:
    """
    Pick the backend that stores object_id.

    The result depends only on object_id and the set of node indexes, not on
    the order the control plane listed them in.

    Raises:
        NoBackendsAvailableError: If nodes is empty
    """
    position = backend_position(object_id, len(nodes))
    ordered = sorted(nodes, key=lambda node: node.node_index)
    return ordered[position]
