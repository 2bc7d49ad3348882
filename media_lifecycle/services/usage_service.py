"""Promotion and usage tracking, called from owning entities' save hooks."""

import logging
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from media_lifecycle.clock import Clock, system_clock
from media_lifecycle.config import settings
from media_lifecycle.models.asset import Asset, AssetStatus
from media_lifecycle.models.asset_usage import AssetUsage, OwnerKind
from media_lifecycle.services.asset_service import get_asset_by_key
from media_lifecycle.services.exceptions import (
    AssetNotFoundError,
    AssetServiceError,
    InvalidOwnerError,
)
from media_lifecycle.services.upload_service import TEMP_UPLOAD_TAG
from media_lifecycle.storage.base import BaseObjectStore, StorageError, with_timeout

logger = logging.getLogger(__name__)


class PromotionResult(NamedTuple):
    asset: Asset
    promoted: bool  # status changed to permanent by this call
    attached: bool  # a new usage reference was added by this call


def validate_owner(entity_type: Optional[str], entity_id: Optional[str], require_id: bool = True) -> Tuple[Optional[str], Optional[str]]:
    """Normalise an (entity_type, entity_id) pair from the caller.

    Raises:
        InvalidOwnerError: If the owner kind is unknown or the id is blank
    """
    if entity_type is None and entity_id is None and not require_id:
        return None, None

    if entity_type not in {k.value for k in OwnerKind}:
        raise InvalidOwnerError(f"Unknown entity type: {entity_type!r}")

    entity_id = str(entity_id).strip() if entity_id is not None else None
    if not entity_id:
        if require_id:
            raise InvalidOwnerError("Entity id is required")
        entity_id = None
    return entity_type, entity_id


def _insert_usage(db: Session, asset_id: int, entity_type: str, entity_id: str, now) -> bool:
    """Add one usage row as a single add-to-set statement.

    Returns:
        True if a new row was inserted, False if the pair was already present
    """
    values = {"asset_id": asset_id, "entity_type": entity_type, "entity_id": entity_id, "created_at": now}
    dialect = db.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        stmt = (
            insert(AssetUsage)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["asset_id", "entity_type", "entity_id"])
        )
        return db.execute(stmt).rowcount == 1

    # Other dialects: rely on the unique constraint inside a savepoint
    try:
        with db.begin_nested():
            db.add(AssetUsage(**values))
        return True
    except IntegrityError:
        return False


def _lock_asset_id(db: Session, storage_key: str) -> Optional[int]:
    """Row-lock the asset for the rest of the transaction and return its id."""
    return db.execute(
        select(Asset.id).where(Asset.storage_key == storage_key).with_for_update()
    ).scalar()


async def _clear_temp_tag(store: Optional[BaseObjectStore], key: str, timeout: float) -> None:
    if store is None:
        return
    try:
        await with_timeout(store.untag(key, TEMP_UPLOAD_TAG), timeout, f"untag {key}")
    except (StorageError, OSError) as e:
        logger.warning(f"Failed to remove {TEMP_UPLOAD_TAG} tag from {key}: {e}")


async def promote_asset(
    db: Session,
    storage_key: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    store: Optional[BaseObjectStore] = None,
    clock: Clock = system_clock,
    timeout: Optional[float] = None,
) -> PromotionResult:
    """Mark an asset permanent and record who uses it.

    The status change is one conditional UPDATE (temp or archived to
    permanent; archived assets re-attached before their purge are restored).
    The usage reference is one insert-if-absent, so repeating the call for
    the same owner is a no-op. Without a concrete entity id the asset is
    promoted with no owner recorded.

    Args:
        db: Database session
        storage_key: Key the owning entity references
        entity_type: Owner kind (product, category, cms), optional
        entity_id: Owner id, optional
        store: Object store used to drop the temp-upload tag (best effort)
        clock: Time source
        timeout: Store call deadline in seconds

    Returns:
        PromotionResult(asset, promoted, attached)

    Raises:
        InvalidOwnerError: If the owner kind is unknown
        AssetNotFoundError: If no asset has this storage key
    """
    entity_type, entity_id = validate_owner(entity_type, entity_id, require_id=False)
    timeout = settings.storage_timeout_seconds if timeout is None else timeout
    now = clock.now()

    # Held until commit: a concurrent forced delete either finishes first
    # (and the asset is restored below) or waits and sees the new owner
    asset_id = _lock_asset_id(db, storage_key)
    if asset_id is None:
        db.rollback()
        raise AssetNotFoundError(storage_key)

    result = db.execute(
        update(Asset)
        .where(
            Asset.id == asset_id,
            Asset.status.in_([AssetStatus.TEMP.value, AssetStatus.ARCHIVED.value]),
        )
        .values(
            status=AssetStatus.PERMANENT.value,
            expires_at=None,
            archived_at=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    promoted = result.rowcount == 1

    attached = False
    if entity_id is not None:
        attached = _insert_usage(db, asset_id, entity_type, entity_id, now)
        if attached:
            db.execute(
                update(Asset)
                .where(Asset.id == asset_id)
                .values(updated_at=now)
                .execution_options(synchronize_session=False)
            )

    db.commit()

    if promoted:
        await _clear_temp_tag(store, storage_key, timeout)
        owner = f"{entity_type}:{entity_id}" if entity_id else "no owner"
        logger.info(f"Asset promoted: {storage_key} -> permanent, used by {owner}")
    elif attached:
        logger.info(f"Asset {storage_key} now also used by {entity_type}:{entity_id}")

    asset = get_asset_by_key(db, storage_key)
    db.refresh(asset)
    return PromotionResult(asset, promoted, attached)


def detach_asset(db: Session, storage_key: str, entity_type: str, entity_id: str, clock: Clock = system_clock) -> Asset:
    """Remove one owner from an asset's usage references.

    Status is never changed: a permanent asset left with no owners stays
    permanent until someone explicitly deletes it.

    Raises:
        InvalidOwnerError: If the owner is invalid
        AssetNotFoundError: If no asset has this storage key
    """
    entity_type, entity_id = validate_owner(entity_type, entity_id)

    asset_id = db.execute(select(Asset.id).where(Asset.storage_key == storage_key)).scalar()
    if asset_id is None:
        raise AssetNotFoundError(storage_key)

    result = db.execute(
        delete(AssetUsage)
        .where(
            AssetUsage.asset_id == asset_id,
            AssetUsage.entity_type == entity_type,
            AssetUsage.entity_id == entity_id,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        db.execute(
            update(Asset)
            .where(Asset.id == asset_id)
            .values(updated_at=clock.now())
            .execution_options(synchronize_session=False)
        )
    db.commit()

    if result.rowcount:
        logger.info(f"Detached {entity_type}:{entity_id} from {storage_key}")

    asset = get_asset_by_key(db, storage_key)
    db.refresh(asset)
    return asset


def release_entity(db: Session, entity_type: str, entity_id: str) -> List[str]:
    """Detach an owner from every asset it references (owner deleted).

    Returns:
        Storage keys the owner was detached from
    """
    entity_type, entity_id = validate_owner(entity_type, entity_id)

    keys = [
        key
        for (key,) in db.query(Asset.storage_key)
        .join(AssetUsage, AssetUsage.asset_id == Asset.id)
        .filter(AssetUsage.entity_type == entity_type, AssetUsage.entity_id == entity_id)
        .all()
    ]

    db.execute(
        delete(AssetUsage)
        .where(AssetUsage.entity_type == entity_type, AssetUsage.entity_id == entity_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    logger.info(f"Released {entity_type}:{entity_id} from {len(keys)} assets")
    return keys


async def finalize_entity_assets(
    db: Session,
    entity_type: str,
    entity_id: str,
    storage_keys: Iterable[str],
    store: Optional[BaseObjectStore] = None,
    clock: Clock = system_clock,
    timeout: Optional[float] = None,
) -> Dict[str, List[Any]]:
    """Promote every key an owner references after it was saved.

    Each key is handled independently; one failure never stops the rest.

    Returns:
        Dict with "success" (keys) and "failed" ({storage_key, error})
    """
    entity_type, entity_id = validate_owner(entity_type, entity_id)
    results = {"success": [], "failed": []}

    for key in storage_keys:
        try:
            await promote_asset(db, key, entity_type, entity_id, store=store, clock=clock, timeout=timeout)
            results["success"].append(key)
        except AssetServiceError as e:
            results["failed"].append({"storage_key": key, "error": str(e)})
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to finalize {key} for {entity_type}:{entity_id}: {e}", exc_info=True)
            results["failed"].append({"storage_key": key, "error": str(e)})

    return results


async def sync_entity_assets(
    db: Session,
    entity_type: str,
    entity_id: str,
    storage_keys: Iterable[str],
    store: Optional[BaseObjectStore] = None,
    clock: Clock = system_clock,
    timeout: Optional[float] = None,
) -> Dict[str, List[Any]]:
    """Make an owner's usage references match exactly ``storage_keys``.

    Keys still referenced are promoted; assets the owner no longer references
    (image replaced or removed) are detached. Detached assets keep their status.

    Returns:
        Dict with "success", "failed" and "detached"
    """
    entity_type, entity_id = validate_owner(entity_type, entity_id)
    keys = list(dict.fromkeys(storage_keys))

    results = await finalize_entity_assets(
        db, entity_type, entity_id, keys, store=store, clock=clock, timeout=timeout
    )

    stale = (
        db.query(Asset.storage_key)
        .join(AssetUsage, AssetUsage.asset_id == Asset.id)
        .filter(AssetUsage.entity_type == entity_type, AssetUsage.entity_id == entity_id)
    )
    if keys:
        stale = stale.filter(Asset.storage_key.notin_(keys))

    results["detached"] = []
    for (key,) in stale.all():
        detach_asset(db, key, entity_type, entity_id, clock=clock)
        results["detached"].append(key)

    return results
