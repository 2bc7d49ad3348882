"""Business logic services."""

from media_lifecycle.services.hashing import compute_content_hash, storage_key_for
from media_lifecycle.services.image_metadata import extract_image_metadata

__all__ = ["compute_content_hash", "storage_key_for", "extract_image_metadata"]
