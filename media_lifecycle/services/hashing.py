"""Content hashing and content-addressed storage keys."""

import hashlib

from media_lifecycle.config import settings


def compute_content_hash(content: bytes) -> str:
    """SHA-256 hex digest of the full byte buffer.

    Examples:
        >>> compute_content_hash(b"abc")
        'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'
    """
    return hashlib.sha256(content).hexdigest()


def storage_key_for(content_hash: str, prefix: str = None) -> str:
    """Remote key for a digest, so identical bytes always land at the same address."""
    prefix = settings.storage_key_prefix if prefix is None else prefix
    prefix = prefix.strip("/")
    return f"{prefix}/{content_hash}" if prefix else content_hash
