"""Asset service errors."""

from typing import Dict, List, Optional


class AssetServiceError(Exception):
    """Base exception for asset service errors."""
    pass


class AssetNotFoundError(AssetServiceError):
    """No ledger record matches the given id or storage key."""

    def __init__(self, ref):
        self.ref = ref
        super().__init__(f"Asset {ref} not found")


class AssetInUseError(AssetServiceError):
    """Deletion refused because owning entities still reference the asset."""

    def __init__(self, storage_key: str, used_by: List[Dict[str, str]]):
        self.storage_key = storage_key
        self.used_by = used_by
        owners = ", ".join(f"{u['entity_type']}:{u['entity_id']}" for u in used_by)
        super().__init__(f"Asset {storage_key} is in use by {owners}")


class AssetProtectedError(AssetServiceError):
    """Deletion of a permanent asset was requested without force."""

    def __init__(self, storage_key: str):
        self.storage_key = storage_key
        super().__init__(
            f"Asset {storage_key} is permanent and protected; "
            "use force=true to archive it"
        )


class AssetValidationError(AssetServiceError):
    """Input rejected at the engine boundary."""
    pass


class InvalidOwnerError(AssetValidationError):
    """Unknown owner kind or empty entity id."""
    pass


class RemoteUploadFailedError(AssetServiceError):
    """The object store rejected or timed out the upload. No record was created."""
    pass


class RemoteDeleteFailedError(AssetServiceError):
    """The object store could not destroy a blob. Logged, never fatal."""

    def __init__(self, storage_key: str, reason: Optional[str] = None):
        self.storage_key = storage_key
        self.reason = reason
        super().__init__(f"Remote delete failed for {storage_key}: {reason}")


class ConcurrentCreateRacedError(AssetServiceError):
    """Another upload inserted the same content first. Recovered by re-reading."""

    def __init__(self, content_hash: str):
        self.content_hash = content_hash
        super().__init__(f"Concurrent create for content {content_hash}")
