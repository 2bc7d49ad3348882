"""Object store adapters for uploaded media."""

from media_lifecycle.storage.base import BaseObjectStore, StorageError
from media_lifecycle.storage.factory import get_object_store

__all__ = ["BaseObjectStore", "StorageError", "get_object_store"]
