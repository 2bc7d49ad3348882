"""Shared test helpers."""

import asyncio
import io

from PIL import Image

from media_lifecycle.storage.base import StorageError
from media_lifecycle.storage.local_driver import LocalObjectStore


def run(coro):
    """Drive an async service call from a sync test."""
    return asyncio.run(coro)


def make_png(color=(255, 0, 0), size=(4, 3)) -> bytes:
    """Small PNG whose bytes differ per color/size."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class RecordingStore(LocalObjectStore):
    """Local store that records calls and can be told to fail."""

    def __init__(self, base_path):
        super().__init__({"base_path": str(base_path), "public_base_url": "https://cdn.test"})
        self.uploads = []
        self.destroys = []
        self.fail_upload = False
        self.fail_destroy = False

    async def upload(self, content, key, tags=None):
        if self.fail_upload:
            raise StorageError("upload refused")
        self.uploads.append(key)
        return await super().upload(content, key, tags)

    async def destroy(self, key):
        self.destroys.append(key)
        if self.fail_destroy:
            raise StorageError("destroy refused")
        return await super().destroy(key)

    def has_blob(self, key) -> bool:
        return (self.base_path / key).exists()
