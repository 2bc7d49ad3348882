"""Asset endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from media_lifecycle.api.deps import get_actor_id, get_clock, get_db, get_store
from media_lifecycle.clock import Clock
from media_lifecycle.config import settings
from media_lifecycle.models.asset import AssetStatus, OriginSource
from media_lifecycle.models.asset_usage import OwnerKind
from media_lifecycle.schemas.asset import (
    AssetListResponse,
    AssetResponse,
    AssetUploadResponse,
    BulkDeleteItem,
    BulkDeleteRequest,
    BulkDeleteResponse,
    DeleteResponse,
    DetachRequest,
    EntityAssetsRequest,
    EntityAssetsResponse,
    PromoteRequest,
    PromoteResponse,
    ReleaseEntityRequest,
)
from media_lifecycle.services.asset_service import bulk_delete_assets, delete_asset, get_asset, list_assets
from media_lifecycle.services.exceptions import (
    AssetInUseError,
    AssetNotFoundError,
    AssetProtectedError,
    AssetServiceError,
    AssetValidationError,
    RemoteUploadFailedError,
)
from media_lifecycle.services.image_metadata import ImageMetadataError, extract_image_metadata
from media_lifecycle.services.payload_keys import extract_storage_keys
from media_lifecycle.services.upload_service import upload_asset
from media_lifecycle.services.usage_service import (
    detach_asset,
    finalize_entity_assets,
    promote_asset,
    release_entity,
    sync_entity_assets,
)
from media_lifecycle.storage.base import BaseObjectStore

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_http(e: AssetServiceError) -> HTTPException:
    """Map a domain error to the HTTP error callers act on."""
    if isinstance(e, AssetNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, AssetInUseError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(e), "storage_key": e.storage_key, "used_by": e.used_by},
        )
    if isinstance(e, AssetProtectedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, AssetValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, RemoteUploadFailedError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/upload", response_model=AssetUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload(
    response: Response,
    file: UploadFile = File(..., description="Image file"),
    origin_source: OriginSource = Form(..., description="Subsystem creating the upload"),
    origin_context: str = Form(..., description="Context within that subsystem, e.g. product-form"),
    intended_use: Optional[OwnerKind] = Form(None, description="Expected owner kind (advisory)"),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    store: BaseObjectStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Upload an image.

    - Identical bytes already on record return the existing asset
      (200, duplicate=true) without touching the object store
    - New content is stored and recorded as temp (201); it expires unless an
      owning entity promotes it
    """
    content = await file.read()

    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_upload_bytes} bytes",
        )

    try:
        extract_image_metadata(content)
    except ImageMetadataError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid image file: {str(e)}")

    try:
        result = await upload_asset(
            db,
            store,
            content,
            origin_source=origin_source.value,
            origin_context=origin_context,
            uploaded_by=actor_id,
            intended_use=intended_use.value if intended_use else None,
            clock=clock,
        )
    except AssetServiceError as e:
        raise _to_http(e)
    except Exception as e:
        logger.error(f"Unexpected error in upload: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create asset: {str(e)}",
        )

    asset = result.asset
    if result.duplicate:
        response.status_code = status.HTTP_200_OK

    return AssetUploadResponse(
        asset_id=asset.id,
        storage_key=asset.storage_key,
        delivery_url=asset.delivery_url,
        status=asset.status,
        duplicate=result.duplicate,
        message="Asset already exists, reusing existing" if result.duplicate else "Asset uploaded successfully",
        asset=AssetResponse.model_validate(asset),
    )


@router.get("/", response_model=AssetListResponse)
def list_all(
    status_filter: Optional[AssetStatus] = Query(None, alias="status", description="Filter by status"),
    origin: Optional[OriginSource] = Query(None, description="Filter by origin source"),
    search: Optional[str] = Query(None, description="Filter by storage key (partial match)"),
    page: int = Query(1, description="Page number", ge=1),
    size: int = Query(20, description="Page size", ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List assets with pagination and filters."""
    assets, total = list_assets(
        db,
        status=status_filter.value if status_filter else None,
        origin=origin.value if origin else None,
        search=search,
        page=page,
        size=size,
    )
    pages = (total + size - 1) // size  # Ceiling division

    return AssetListResponse(
        items=[AssetResponse.model_validate(asset) for asset in assets],
        total=total,
        page=page,
        size=size,
        pages=pages,
        has_more=page < pages,
    )


@router.post("/promote", response_model=PromoteResponse)
async def promote(
    request: PromoteRequest,
    db: Session = Depends(get_db),
    store: BaseObjectStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Promote an asset to permanent, recording the owner if given."""
    try:
        result = await promote_asset(
            db,
            request.storage_key,
            entity_type=request.entity_type.value if request.entity_type else None,
            entity_id=request.entity_id,
            store=store,
            clock=clock,
        )
    except AssetServiceError as e:
        raise _to_http(e)

    return PromoteResponse(
        asset=AssetResponse.model_validate(result.asset),
        promoted=result.promoted,
        attached=result.attached,
    )


@router.post("/detach", response_model=AssetResponse)
def detach(
    request: DetachRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Remove one owner's reference. The asset's status does not change."""
    try:
        asset = detach_asset(db, request.storage_key, request.entity_type.value, request.entity_id, clock=clock)
    except AssetServiceError as e:
        raise _to_http(e)
    return AssetResponse.model_validate(asset)


def _requested_keys(request: EntityAssetsRequest):
    if request.storage_keys is not None:
        return request.storage_keys
    return extract_storage_keys(request.payload)


@router.post("/entities/finalize", response_model=EntityAssetsResponse)
async def finalize_entity(
    request: EntityAssetsRequest,
    db: Session = Depends(get_db),
    store: BaseObjectStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Promote every asset a saved entity references."""
    try:
        results = await finalize_entity_assets(
            db,
            request.entity_type.value,
            request.entity_id,
            _requested_keys(request),
            store=store,
            clock=clock,
        )
    except AssetServiceError as e:
        raise _to_http(e)
    return EntityAssetsResponse(**results)


@router.post("/entities/sync", response_model=EntityAssetsResponse)
async def sync_entity(
    request: EntityAssetsRequest,
    db: Session = Depends(get_db),
    store: BaseObjectStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Promote what a saved entity references and detach what it dropped."""
    try:
        results = await sync_entity_assets(
            db,
            request.entity_type.value,
            request.entity_id,
            _requested_keys(request),
            store=store,
            clock=clock,
        )
    except AssetServiceError as e:
        raise _to_http(e)
    return EntityAssetsResponse(**results)


@router.post("/entities/release", response_model=EntityAssetsResponse)
def release(request: ReleaseEntityRequest, db: Session = Depends(get_db)):
    """Detach a deleted entity from every asset it referenced."""
    try:
        keys = release_entity(db, request.entity_type.value, request.entity_id)
    except AssetServiceError as e:
        raise _to_http(e)
    return EntityAssetsResponse(detached=keys)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete(
    request: BulkDeleteRequest,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    store: BaseObjectStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Delete several assets; each succeeds or fails on its own."""
    logger.info(f"Processing bulk delete for {len(request.ids)} assets (force={request.force}, actor={actor_id})")
    results = await bulk_delete_assets(db, store, request.ids, force=request.force, clock=clock)

    counts = {"deleted": 0, "archived": 0, "failed": 0}
    for item in results:
        counts[item["outcome"]] += 1

    return BulkDeleteResponse(
        message=(
            f"Bulk deletion complete. Deleted: {counts['deleted']}, "
            f"Archived: {counts['archived']}, Failed: {counts['failed']}"
        ),
        results=[BulkDeleteItem(**item) for item in results],
        **counts,
    )


@router.get("/{asset_ref:path}", response_model=AssetResponse)
def get_one(asset_ref: str, db: Session = Depends(get_db)):
    """Get asset by id or storage key, including current owners."""
    try:
        asset = get_asset(db, asset_ref)
    except AssetServiceError as e:
        raise _to_http(e)
    return AssetResponse.model_validate(asset)


@router.delete("/{asset_ref:path}", response_model=DeleteResponse)
async def delete_one(
    asset_ref: str,
    force: bool = Query(False, description="Archive a permanent asset instead of refusing"),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    store: BaseObjectStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Delete a temp asset, or archive a permanent one when forced.

    Refusals:
    - 409 when owners still reference the asset (owners listed in the detail)
    - 403 when the asset is permanent and force is not set
    """
    logger.info(f"Delete requested for {asset_ref} by {actor_id} (force={force})")
    try:
        outcome = await delete_asset(db, store, asset_ref, force=force, clock=clock)
    except AssetServiceError as e:
        raise _to_http(e)
    return DeleteResponse(**outcome)
