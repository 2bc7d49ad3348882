"""Base object store interface."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

DESTROY_OK = "ok"
DESTROY_NOT_FOUND = "not_found"


class StoredObject(Dict[str, Any]):
    """Upload result dict with typed access."""

    @property
    def key(self) -> str:
        return self["key"]

    @property
    def url(self) -> str:
        return self["url"]

    @property
    def width(self) -> Optional[int]:
        return self.get("width")

    @property
    def height(self) -> Optional[int]:
        return self.get("height")

    @property
    def format(self) -> Optional[str]:
        return self.get("format")

    @property
    def size_bytes(self) -> int:
        return self["size_bytes"]

    @property
    def resource_id(self) -> Optional[str]:
        return self.get("resource_id")


class KeyInfo(Dict[str, Any]):
    """Listing entry for a stored key."""

    @property
    def key(self) -> str:
        return self["key"]

    @property
    def size_bytes(self) -> int:
        return self["size_bytes"]

    @property
    def modified_at(self) -> datetime:
        return self["modified_at"]


class BaseObjectStore(ABC):
    """Base class for remote blob stores.

    The ledger treats every store as an unreliable collaborator: any call may
    fail or hang, and callers wrap them in timeouts. Keys are the ledger's
    ``storage_key`` values; ``delivery_url`` must be derivable from the key
    alone so URLs can be rebuilt after a store migration.
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize store with configuration.

        Args:
            config: Provider-specific settings dict
        """
        self.config = config
        self.public_base_url = (config.get("public_base_url") or "").rstrip("/")

    @abstractmethod
    async def upload(self, content: bytes, key: str, tags: Optional[List[str]] = None) -> StoredObject:
        """Store bytes under ``key``.

        Re-uploading identical bytes to the same key must be harmless.

        Returns:
            StoredObject with key, url, width, height, format, size_bytes,
            resource_id

        Raises:
            StorageError: If upload fails
        """
        pass

    @abstractmethod
    async def destroy(self, key: str) -> str:
        """Delete the blob at ``key``.

        Returns:
            DESTROY_OK or DESTROY_NOT_FOUND

        Raises:
            StorageError: If deletion fails
        """
        pass

    @abstractmethod
    async def tag(self, key: str, label: str) -> None:
        """Attach ``label`` to the blob at ``key``."""
        pass

    @abstractmethod
    async def untag(self, key: str, label: str) -> None:
        """Remove ``label`` from the blob at ``key`` (no-op if absent)."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[KeyInfo]:
        """List stored keys under ``prefix``."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if the store is reachable."""
        pass

    @abstractmethod
    def default_url(self, key: str) -> str:
        """Provider URL for ``key`` when no public base URL is configured."""
        pass

    def delivery_url(self, key: str) -> str:
        """Resolvable URL for ``key``."""
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return self.default_url(key)


class StorageError(Exception):
    """Base exception for storage operations."""

    pass


class StorageConnectionError(StorageError):
    """Exception for connection errors."""

    pass


class StoragePermissionError(StorageError):
    """Exception for permission errors."""

    pass


class StorageTimeoutError(StorageError):
    """A store call did not finish within its deadline."""

    pass


async def with_timeout(awaitable, seconds: float, action: str = "store call"):
    """Await a store call, converting an overrun into StorageTimeoutError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise StorageTimeoutError(f"{action} timed out after {seconds}s")
