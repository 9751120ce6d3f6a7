"""
Storage client for a single backend.
"""

from .client import BackendStorageClient, StoredObject, is_not_found


__all__ = ["BackendStorageClient", "StoredObject", "is_not_found"]
