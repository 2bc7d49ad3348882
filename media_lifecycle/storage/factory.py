"""Object store factory."""

from typing import Optional

from media_lifecycle.config import Settings, settings as default_settings
from media_lifecycle.storage.base import BaseObjectStore, StorageError
from media_lifecycle.storage.local_driver import LocalObjectStore
from media_lifecycle.storage.s3_driver import S3ObjectStore

_store: Optional[BaseObjectStore] = None


def build_object_store(provider: str, base_path: str = "", credentials: Optional[dict] = None) -> BaseObjectStore:
    """Build a store from explicit configuration.

    Args:
        provider: Storage provider (local, s3)
        base_path: Directory for the local provider
        credentials: Provider settings (bucket, keys, endpoint, public_base_url)

    Raises:
        StorageError: If provider is unsupported or misconfigured

    Example:
        >>> store = build_object_store(provider="local", base_path="/tmp/media")
    """
    config = {"base_path": base_path}
    if credentials:
        config.update(credentials)

    provider = provider.lower()

    if provider == "local":
        return LocalObjectStore(config)

    elif provider == "s3":
        required_fields = ["aws_access_key_id", "aws_secret_access_key", "bucket_name"]
        missing = [f for f in required_fields if not config.get(f)]
        if missing:
            raise StorageError(f"Missing required S3 configuration: {missing}")
        return S3ObjectStore(config)

    else:
        raise StorageError(f"Unsupported storage provider: {provider}")


def object_store_from_settings(cfg: Settings = default_settings) -> BaseObjectStore:
    """Build the store described by application settings."""
    return build_object_store(
        provider=cfg.storage_provider,
        base_path=cfg.storage_base_path,
        credentials={
            "public_base_url": cfg.media_base_url,
            "bucket_name": cfg.s3_bucket_name,
            "region": cfg.s3_region,
            "endpoint_url": cfg.s3_endpoint_url,
            "aws_access_key_id": cfg.aws_access_key_id,
            "aws_secret_access_key": cfg.aws_secret_access_key,
        },
    )


def get_object_store() -> BaseObjectStore:
    """Process-wide store instance built from settings."""
    global _store
    if _store is None:
        _store = object_store_from_settings()
    return _store
