"""Local filesystem object store."""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from media_lifecycle.services.image_metadata import describe_content
from media_lifecycle.storage.base import (
    DESTROY_NOT_FOUND,
    DESTROY_OK,
    BaseObjectStore,
    KeyInfo,
    StorageError,
    StoredObject,
)

TAGS_DIR = ".tags"


class LocalObjectStore(BaseObjectStore):
    """Local filesystem object store.

    Blobs live at ``base_path/<key>``; tags are kept as a JSON list in
    ``base_path/.tags/<key>.json``.

    Configuration:
        base_path: Absolute path to storage directory
        public_base_url: Optional URL prefix the directory is served under

    Example:
        >>> store = LocalObjectStore({"base_path": "/data/media"})
        >>> stored = await store.upload(content, "assets/9f86d08...")
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.base_path = Path(config["base_path"])

        # Ensure base_path is absolute for security
        if not self.base_path.is_absolute():
            self.base_path = self.base_path.resolve()

    def _validate_path(self, key: str, root: Optional[Path] = None) -> Path:
        """Validate key resolves inside the store (prevent directory traversal).

        Raises:
            StorageError: If key tries to escape base_path
        """
        root = root or self.base_path
        full_path = (root / key).resolve()

        try:
            full_path.relative_to(self.base_path.resolve())
        except ValueError:
            raise StorageError(f"Key {key} attempts to escape base directory")

        return full_path

    def _tags_path(self, key: str) -> Path:
        return self._validate_path(f"{key}.json", root=self.base_path / TAGS_DIR)

    async def _read_tags(self, key: str) -> List[str]:
        path = self._tags_path(key)
        if not path.exists():
            return []
        async with aiofiles.open(path, "r") as f:
            return json.loads(await f.read())

    async def _write_tags(self, key: str, tags: List[str]) -> None:
        path = self._tags_path(key)
        if not tags:
            if path.exists():
                path.unlink()
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w") as f:
            await f.write(json.dumps(sorted(set(tags))))

    def default_url(self, key: str) -> str:
        return self._validate_path(key).as_uri()

    async def upload(self, content: bytes, key: str, tags: Optional[List[str]] = None) -> StoredObject:
        """Write bytes to ``base_path/<key>``."""
        full_path = self._validate_path(key)

        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(full_path, "wb") as f:
                await f.write(content)
            if tags:
                await self._write_tags(key, list(tags) + await self._read_tags(key))
        except OSError as e:
            raise StorageError(f"Failed to upload {key}: {e}")

        return StoredObject(
            {
                "key": key,
                "url": self.delivery_url(key),
                "resource_id": key,
                **describe_content(content),
            }
        )

    async def destroy(self, key: str) -> str:
        full_path = self._validate_path(key)

        if not full_path.exists():
            await self._write_tags(key, [])
            return DESTROY_NOT_FOUND

        try:
            full_path.unlink()
            await self._write_tags(key, [])
        except OSError as e:
            raise StorageError(f"Failed to destroy {key}: {e}")
        return DESTROY_OK

    async def tag(self, key: str, label: str) -> None:
        if not self._validate_path(key).exists():
            raise FileNotFoundError(f"File not found: {key}")
        tags = await self._read_tags(key)
        if label not in tags:
            await self._write_tags(key, tags + [label])

    async def untag(self, key: str, label: str) -> None:
        tags = await self._read_tags(key)
        if label in tags:
            await self._write_tags(key, [t for t in tags if t != label])

    async def get_tags(self, key: str) -> List[str]:
        return await self._read_tags(key)

    async def list_keys(self, prefix: str = "") -> List[KeyInfo]:
        search_path = self.base_path / prefix if prefix else self.base_path

        if not search_path.exists():
            return []

        keys = []
        for root, dirnames, filenames in os.walk(search_path):
            # Tag sidecars are not blobs
            dirnames[:] = [d for d in dirnames if d != TAGS_DIR]
            for filename in filenames:
                full_path = Path(root) / filename
                stat = full_path.stat()
                keys.append(
                    KeyInfo(
                        {
                            "key": full_path.relative_to(self.base_path).as_posix(),
                            "size_bytes": stat.st_size,
                            "modified_at": datetime.fromtimestamp(stat.st_mtime, timezone.utc).replace(tzinfo=None),
                        }
                    )
                )

        return keys

    async def test_connection(self) -> bool:
        try:
            return self.base_path.exists() and os.access(self.base_path, os.W_OK)
        except Exception:
            return False
