"""Upload pipeline: hash, dedup, store, record."""

import logging
from datetime import timedelta
from typing import NamedTuple, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from media_lifecycle.clock import Clock, system_clock
from media_lifecycle.config import settings
from media_lifecycle.models.asset import Asset, AssetStatus, OriginSource
from media_lifecycle.models.asset_usage import OwnerKind
from media_lifecycle.services.exceptions import (
    AssetValidationError,
    ConcurrentCreateRacedError,
    RemoteUploadFailedError,
)
from media_lifecycle.services.hashing import compute_content_hash, storage_key_for
from media_lifecycle.storage.base import BaseObjectStore, StorageError, with_timeout

logger = logging.getLogger(__name__)
orphan_logger = logging.getLogger("media_lifecycle.orphans")

TEMP_UPLOAD_TAG = "temp-upload"


class UploadResult(NamedTuple):
    asset: Asset
    duplicate: bool


def find_asset_by_hash(db: Session, content_hash: str) -> Optional[Asset]:
    """Live asset holding exactly these bytes, if any."""
    return db.query(Asset).filter(Asset.content_hash == content_hash).first()


def validate_origin(origin_source: str, origin_context: str, intended_use: Optional[str]) -> None:
    """Reject unknown origin sources, blank contexts and unknown intended uses.

    Raises:
        AssetValidationError: If any field is invalid
    """
    if origin_source not in {s.value for s in OriginSource}:
        raise AssetValidationError(f"Unknown origin source: {origin_source!r}")
    if not origin_context or not origin_context.strip():
        raise AssetValidationError("Origin context is required")
    if intended_use is not None and intended_use not in {k.value for k in OwnerKind}:
        raise AssetValidationError(f"Unknown intended use: {intended_use!r}")


def _extend_temp_expiry(db: Session, asset: Asset, now) -> None:
    """Give a re-uploaded temp asset a full retention window again.

    Only moves expires_at forward, and only while the asset is still temp,
    so a concurrent promotion is never undone.
    """
    expires_at = now + timedelta(days=settings.temp_retention_days)
    result = db.execute(
        update(Asset)
        .where(
            Asset.id == asset.id,
            Asset.status == AssetStatus.TEMP.value,
            Asset.expires_at < expires_at,
        )
        .values(expires_at=expires_at, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(asset)
    if result.rowcount:
        logger.info(f"Extended expiry of temp asset {asset.storage_key} to {expires_at.isoformat()}")


def _insert_asset(db: Session, asset: Asset) -> Asset:
    """Insert a new ledger row.

    Raises:
        ConcurrentCreateRacedError: If another upload already recorded this content
    """
    db.add(asset)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConcurrentCreateRacedError(asset.content_hash)
    db.refresh(asset)
    return asset


async def _discard_untracked_blob(db: Session, store: BaseObjectStore, key: str, timeout: float) -> None:
    """Remove a blob whose ledger insert failed, or report it as orphaned.

    The blob is only destroyed once the ledger confirms nothing else tracks
    the same key; if the ledger cannot answer, the blob is left in place.
    """
    try:
        tracked = db.query(Asset.id).filter(Asset.storage_key == key).first() is not None
    except SQLAlchemyError as e:
        orphan_logger.error(f"Untracked blob {key}: ledger unavailable to verify ({e})")
        return

    if tracked:
        return

    try:
        await with_timeout(store.destroy(key), timeout, f"destroy {key}")
        logger.info(f"Rolled back upload of untracked blob {key}")
    except (StorageError, OSError) as e:
        orphan_logger.error(f"Untracked blob {key}: rollback delete failed ({e})")


async def upload_asset(
    db: Session,
    store: BaseObjectStore,
    content: bytes,
    origin_source: str,
    origin_context: str,
    uploaded_by: str,
    intended_use: Optional[str] = None,
    clock: Clock = system_clock,
    timeout: Optional[float] = None,
) -> UploadResult:
    """Upload content, collapsing identical bytes onto one asset.

    Steps:
    1. Hash the bytes
    2. Return the existing asset if the hash is already recorded (no remote I/O)
    3. Upload to the store under a hash-derived key
    4. Record a temp asset that expires after the retention window

    Args:
        db: Database session
        store: Object store
        content: Raw uploaded bytes
        origin_source: Subsystem creating the upload (product, category, cms, banner)
        origin_context: Free-form context within that subsystem (e.g. "product-form")
        uploaded_by: Actor identity, recorded for audit
        intended_use: Optional advisory owner kind
        clock: Time source
        timeout: Store call deadline in seconds

    Returns:
        UploadResult(asset, duplicate)

    Raises:
        AssetValidationError: If origin or intended use is invalid
        RemoteUploadFailedError: If the store upload fails; nothing is recorded

    Examples:
        >>> result = await upload_asset(db, store, png, "product", "product-form", "user-1")
        >>> result.asset.status, result.duplicate
        ('temp', False)
    """
    validate_origin(origin_source, origin_context, intended_use)
    timeout = settings.storage_timeout_seconds if timeout is None else timeout

    content_hash = compute_content_hash(content)

    existing = find_asset_by_hash(db, content_hash)
    if existing:
        logger.info(f"Asset with hash {content_hash} already exists as {existing.storage_key}, reusing")
        if existing.status == AssetStatus.TEMP.value:
            _extend_temp_expiry(db, existing, clock.now())
        return UploadResult(existing, True)

    key = storage_key_for(content_hash)

    try:
        stored = await with_timeout(
            store.upload(content, key, tags=[TEMP_UPLOAD_TAG]),
            timeout,
            f"upload {key}",
        )
    except (StorageError, OSError) as e:
        logger.error(f"Failed to upload {key} to object store: {e}")
        raise RemoteUploadFailedError(f"Failed to upload to object store: {e}") from e

    now = clock.now()
    asset = Asset(
        storage_key=stored.key,
        delivery_url=stored.url,
        content_hash=content_hash,
        status=AssetStatus.TEMP.value,
        expires_at=now + timedelta(days=settings.temp_retention_days),
        origin_source=origin_source,
        origin_context=origin_context.strip(),
        intended_use=intended_use,
        uploaded_by=uploaded_by,
        width=stored.width,
        height=stored.height,
        format=stored.format,
        size_bytes=stored.size_bytes,
        resource_id=stored.resource_id,
        created_at=now,
        updated_at=now,
    )

    try:
        asset = _insert_asset(db, asset)
    except ConcurrentCreateRacedError:
        # Same bytes, same key: the blob we just wrote is the one the winner tracks
        winner = find_asset_by_hash(db, content_hash)
        if winner is None:
            logger.error(f"Insert for {key} conflicted but no asset holds {content_hash}")
            await _discard_untracked_blob(db, store, key, timeout)
            raise
        logger.info(f"Concurrent upload of {content_hash} resolved to asset {winner.id}")
        return UploadResult(winner, True)
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Failed to record asset for {key}", exc_info=True)
        await _discard_untracked_blob(db, store, key, timeout)
        raise

    logger.info(f"New asset uploaded: {asset.storage_key} (id={asset.id})")
    return UploadResult(asset, False)
