"""Asset schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from media_lifecycle.models.asset import AssetStatus
from media_lifecycle.models.asset_usage import OwnerKind


class UsageReference(BaseModel):
    """One owning entity attached to an asset."""

    entity_type: OwnerKind
    entity_id: str


class AssetResponse(BaseModel):
    """Schema for asset response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    storage_key: str
    delivery_url: str
    content_hash: str
    status: AssetStatus
    expires_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    origin_source: str
    origin_context: str
    intended_use: Optional[str] = None
    uploaded_by: str
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    size_bytes: Optional[int] = None
    resource_id: Optional[str] = None
    used_by: List[UsageReference] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class AssetUploadResponse(BaseModel):
    """Result of an upload, new or deduplicated."""

    asset_id: int
    storage_key: str
    delivery_url: str
    status: AssetStatus
    duplicate: bool
    message: str
    asset: AssetResponse


class AssetListResponse(BaseModel):
    """Response for listing assets."""

    items: List[AssetResponse] = Field(..., description="Assets in this page")
    total: int = Field(..., description="Total assets matching filters")
    page: int = Field(..., description="Current page")
    size: int = Field(..., description="Page size")
    pages: int = Field(..., description="Total pages")
    has_more: bool = Field(..., description="Whether a next page exists")


class PromoteRequest(BaseModel):
    """Promotion call from an owning entity's save hook."""

    storage_key: str = Field(..., min_length=1)
    entity_type: Optional[OwnerKind] = None
    entity_id: Optional[str] = Field(None, description="Omit for manual promotion without an owner")


class PromoteResponse(BaseModel):
    asset: AssetResponse
    promoted: bool = Field(..., description="Status changed to permanent by this call")
    attached: bool = Field(..., description="A new usage reference was added by this call")


class DetachRequest(BaseModel):
    """Owner no longer references an asset."""

    storage_key: str = Field(..., min_length=1)
    entity_type: OwnerKind
    entity_id: str = Field(..., min_length=1)


class EntityAssetsRequest(BaseModel):
    """Owner save hook payload.

    Either list the storage keys explicitly or pass the saved entity
    document and let the service find every key it references. Exactly one
    of the two is required; send ``storage_keys: []`` to mean "no images".
    """

    model_config = ConfigDict(extra="forbid")

    entity_type: OwnerKind
    entity_id: str = Field(..., min_length=1)
    storage_keys: Optional[List[str]] = None
    payload: Optional[Any] = None

    @model_validator(mode="after")
    def check_one_source(self) -> "EntityAssetsRequest":
        if (self.storage_keys is None) == (self.payload is None):
            raise ValueError("Provide exactly one of storage_keys or payload")
        return self


class EntityAssetsFailure(BaseModel):
    storage_key: str
    error: str


class EntityAssetsResponse(BaseModel):
    success: List[str] = Field(default_factory=list)
    failed: List[EntityAssetsFailure] = Field(default_factory=list)
    detached: List[str] = Field(default_factory=list)


class ReleaseEntityRequest(BaseModel):
    entity_type: OwnerKind
    entity_id: str = Field(..., min_length=1)


class DeleteResponse(BaseModel):
    """Outcome of a single delete request."""

    id: Optional[int] = None
    storage_key: str
    outcome: str = Field(..., description="deleted or archived")
    purge_after: Optional[datetime] = Field(None, description="When an archived asset will be purged")
    remote_deleted: bool = False
    message: str


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1, description="Asset ids or storage keys")
    force: bool = False


class BulkDeleteItem(BaseModel):
    ref: str
    outcome: str = Field(..., description="deleted, archived or failed")
    storage_key: Optional[str] = None
    purge_after: Optional[datetime] = None
    error: Optional[str] = None
    used_by: Optional[List[UsageReference]] = None


class BulkDeleteResponse(BaseModel):
    message: str
    deleted: int
    archived: int
    failed: int
    results: List[BulkDeleteItem]


class ReclaimRequest(BaseModel):
    dry_run: bool = Field(default=False, description="Only report what would be purged")


class ReclaimResponse(BaseModel):
    task_id: str = Field(..., description="Celery task ID")
    status: str = Field(..., description="Task status")
    message: str = Field(..., description="Human-readable message")


class ReclaimStatus(BaseModel):
    task_id: str
    status: str  # pending, started, success, failure
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ReconcileRequest(BaseModel):
    purge: bool = Field(default=False, description="Destroy untracked blobs instead of only reporting them")
    grace_hours: Optional[int] = Field(None, ge=0)


class ReconcileResponse(BaseModel):
    scanned: int
    untracked: List[str]
    purged: int
    failed: int
