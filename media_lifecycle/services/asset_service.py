"""Asset lookup, listing and deletion."""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from media_lifecycle.clock import Clock, system_clock
from media_lifecycle.config import settings
from media_lifecycle.models.asset import Asset, AssetStatus
from media_lifecycle.models.asset_usage import AssetUsage
from media_lifecycle.services.exceptions import (
    AssetInUseError,
    AssetNotFoundError,
    AssetProtectedError,
    AssetServiceError,
    RemoteDeleteFailedError,
)
from media_lifecycle.storage.base import DESTROY_NOT_FOUND, BaseObjectStore, StorageError, with_timeout

logger = logging.getLogger(__name__)

OUTCOME_DELETED = "deleted"
OUTCOME_ARCHIVED = "archived"
OUTCOME_FAILED = "failed"


def _ref_filter(ref):
    """Match a numeric id or a storage key."""
    ref = str(ref).strip()
    if ref.isdigit():
        return (Asset.id == int(ref)) | (Asset.storage_key == ref)
    return Asset.storage_key == ref


def get_asset(db: Session, ref) -> Asset:
    """Get asset by id or storage key.

    Raises:
        AssetNotFoundError: If no record matches
    """
    asset = db.query(Asset).filter(_ref_filter(ref)).first()
    if not asset:
        raise AssetNotFoundError(ref)
    return asset


def get_asset_by_key(db: Session, storage_key: str) -> Asset:
    asset = db.query(Asset).filter(Asset.storage_key == storage_key).first()
    if not asset:
        raise AssetNotFoundError(storage_key)
    return asset


def current_usages(db: Session, asset_id: int) -> List[Dict[str, str]]:
    """Usage references as currently stored, bypassing any loaded relationship."""
    rows = (
        db.query(AssetUsage.entity_type, AssetUsage.entity_id)
        .filter(AssetUsage.asset_id == asset_id)
        .order_by(AssetUsage.id)
        .all()
    )
    return [{"entity_type": t, "entity_id": i} for t, i in rows]


def list_assets(
    db: Session,
    status: Optional[str] = None,
    origin: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    size: int = 20,
) -> Tuple[List[Asset], int]:
    """List assets newest first.

    Args:
        db: Database session
        status: Filter by lifecycle status
        origin: Filter by origin source
        search: Case-insensitive substring of the storage key
        page: 1-based page number
        size: Page size

    Returns:
        Tuple of (assets on this page, total matching)
    """
    query = db.query(Asset)

    if status:
        query = query.filter(Asset.status == status)
    if origin:
        query = query.filter(Asset.origin_source == origin)
    if search:
        query = query.filter(Asset.storage_key.ilike(f"%{search}%"))

    total = query.count()
    assets = query.order_by(Asset.id.desc()).offset((page - 1) * size).limit(size).all()
    return assets, total


def _lock_asset(db: Session, ref) -> Asset:
    """Re-read an asset under a row lock so concurrent promotion waits for us."""
    asset = db.query(Asset).filter(_ref_filter(ref)).populate_existing().with_for_update().first()
    if not asset:
        db.rollback()
        raise AssetNotFoundError(ref)
    return asset


async def destroy_blob(store: BaseObjectStore, key: str, timeout: Optional[float] = None) -> bool:
    """Best-effort blob removal.

    Failures are logged as RemoteDeleteFailedError and reported as False;
    the ledger stays authoritative and the next sweep or reconciliation
    picks up anything left behind.
    """
    timeout = settings.storage_timeout_seconds if timeout is None else timeout
    try:
        result = await with_timeout(store.destroy(key), timeout, f"destroy {key}")
    except (StorageError, OSError) as e:
        logger.warning(str(RemoteDeleteFailedError(key, str(e))))
        return False

    if result == DESTROY_NOT_FOUND:
        logger.info(f"Blob {key} was already absent from the object store")
    return True


async def delete_asset(
    db: Session,
    store: BaseObjectStore,
    ref,
    force: bool = False,
    clock: Clock = system_clock,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Delete or archive an asset.

    - In use (any status): refused with AssetInUseError listing the owners.
    - temp: blob destroyed (best effort) and record removed.
    - permanent without force: refused with AssetProtectedError.
    - permanent with force: archived; the scheduler purges it after the
      retention window.
    - archived: left as is; the pending purge date is reported.

    Returns:
        Dict with outcome ("deleted" or "archived"), storage_key, purge_after,
        remote_deleted and a human-readable message

    Raises:
        AssetNotFoundError, AssetInUseError, AssetProtectedError
    """
    asset = _lock_asset(db, ref)
    key = asset.storage_key
    retention = timedelta(days=settings.archive_retention_days)

    used_by = current_usages(db, asset.id)
    if used_by:
        db.rollback()
        raise AssetInUseError(key, used_by)

    if asset.status == AssetStatus.TEMP.value:
        remote_deleted = await destroy_blob(store, key, timeout)
        asset_id = asset.id
        db.delete(asset)
        db.commit()
        logger.info(f"Deleted temp asset {key} (id={asset_id}, remote_deleted={remote_deleted})")
        return {
            "id": asset_id,
            "storage_key": key,
            "outcome": OUTCOME_DELETED,
            "purge_after": None,
            "remote_deleted": remote_deleted,
            "message": "Asset deleted",
        }

    if asset.status == AssetStatus.PERMANENT.value:
        if not force:
            db.rollback()
            raise AssetProtectedError(key)

        now = clock.now()
        asset.status = AssetStatus.ARCHIVED.value
        asset.archived_at = now
        asset.expires_at = None
        asset.updated_at = now
        db.query(AssetUsage).filter(AssetUsage.asset_id == asset.id).delete(synchronize_session=False)
        db.commit()
        purge_after = now + retention
        logger.info(f"Asset archived (soft delete): {key}, purge after {purge_after.isoformat()}")
        return {
            "id": asset.id,
            "storage_key": key,
            "outcome": OUTCOME_ARCHIVED,
            "purge_after": purge_after,
            "remote_deleted": False,
            "message": (
                f"Asset archived; it will be permanently removed after {purge_after.isoformat()} "
                "unless it is attached again"
            ),
        }

    # Already archived; only the scheduler purges
    purge_after = asset.archived_at + retention
    db.rollback()
    return {
        "id": asset.id,
        "storage_key": key,
        "outcome": OUTCOME_ARCHIVED,
        "purge_after": purge_after,
        "remote_deleted": False,
        "message": f"Asset already archived; it will be permanently removed after {purge_after.isoformat()}",
    }


async def bulk_delete_assets(
    db: Session,
    store: BaseObjectStore,
    refs: List[str],
    force: bool = False,
    clock: Clock = system_clock,
    timeout: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """Apply delete_asset to each ref independently.

    Returns:
        One dict per ref with outcome deleted, archived or failed; failed
        items carry an error message and, when in use, the owners
    """
    results = []

    for ref in refs:
        try:
            outcome = await delete_asset(db, store, ref, force=force, clock=clock, timeout=timeout)
            results.append({"ref": ref, **outcome})
        except AssetInUseError as e:
            results.append(
                {"ref": ref, "storage_key": e.storage_key, "outcome": OUTCOME_FAILED, "error": str(e), "used_by": e.used_by}
            )
        except AssetServiceError as e:
            results.append({"ref": ref, "outcome": OUTCOME_FAILED, "error": str(e)})
        except Exception as e:
            db.rollback()
            logger.error(f"Error deleting {ref}: {e}", exc_info=True)
            results.append({"ref": ref, "outcome": OUTCOME_FAILED, "error": str(e)})

    deleted = sum(1 for r in results if r["outcome"] == OUTCOME_DELETED)
    archived = sum(1 for r in results if r["outcome"] == OUTCOME_ARCHIVED)
    logger.info(
        f"Bulk deletion complete. Deleted: {deleted}, Archived: {archived}, "
        f"Failed: {len(results) - deleted - archived}"
    )
    return results
