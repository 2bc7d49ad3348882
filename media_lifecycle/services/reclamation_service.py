"""Scheduled reclamation of expired temp and aged-out archived assets."""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from media_lifecycle.clock import Clock, system_clock
from media_lifecycle.config import settings
from media_lifecycle.models.asset import Asset, AssetStatus
from media_lifecycle.models.asset_usage import AssetUsage
from media_lifecycle.services.asset_service import destroy_blob
from media_lifecycle.storage.base import BaseObjectStore, StorageError, with_timeout

logger = logging.getLogger(__name__)

SWEEP_TEMP = "temp"
SWEEP_ARCHIVED = "archived"

PURGED = "purged"
SKIPPED = "skipped"
GONE = "gone"


def _unused():
    return ~exists().where(AssetUsage.asset_id == Asset.id)


def _eligible_filter(sweep: str, now: datetime):
    if sweep == SWEEP_TEMP:
        return (
            Asset.status == AssetStatus.TEMP.value,
            Asset.expires_at.isnot(None),
            Asset.expires_at < now,
            _unused(),
        )
    cutoff = now - timedelta(days=settings.archive_retention_days)
    return (
        Asset.status == AssetStatus.ARCHIVED.value,
        Asset.archived_at.isnot(None),
        Asset.archived_at < cutoff,
        _unused(),
    )


def select_candidates(db: Session, sweep: str, now: datetime, limit: int) -> List[Asset]:
    """Snapshot of assets a sweep would purge, oldest first.

    The snapshot is only a candidate list; purge_candidate re-checks each one.
    """
    order = Asset.expires_at if sweep == SWEEP_TEMP else Asset.archived_at
    return (
        db.query(Asset)
        .filter(*_eligible_filter(sweep, now))
        .order_by(order.asc(), Asset.id.asc())
        .limit(limit)
        .all()
    )


async def purge_candidate(
    db: Session,
    store: BaseObjectStore,
    asset_id: int,
    sweep: str,
    now: datetime,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Purge one candidate if it is still eligible right now.

    The record is re-read under a row lock and the eligibility rules are
    evaluated again, so an asset promoted or re-attached after candidate
    selection is left alone. The blob is destroyed best effort; the record
    is deleted whether or not that succeeds.

    Returns:
        Dict with result ("purged", "skipped" or "gone"), storage_key and
        remote_deleted
    """
    asset = (
        db.query(Asset)
        .filter(Asset.id == asset_id, *_eligible_filter(sweep, now))
        .populate_existing()
        .with_for_update()
        .first()
    )

    if asset is None:
        still_there = db.query(Asset.storage_key).filter(Asset.id == asset_id).scalar()
        db.rollback()
        if still_there:
            logger.info(f"Skipping {still_there}: no longer eligible for the {sweep} sweep")
            return {"result": SKIPPED, "storage_key": still_there, "remote_deleted": False}
        return {"result": GONE, "storage_key": None, "remote_deleted": False}

    key = asset.storage_key
    remote_deleted = await destroy_blob(store, key, timeout)

    db.delete(asset)
    db.commit()
    logger.info(f"Purged {sweep} asset {key} (remote_deleted={remote_deleted})")
    return {"result": PURGED, "storage_key": key, "remote_deleted": remote_deleted}


async def run_reclamation(
    db: Session,
    store: BaseObjectStore,
    clock: Clock = system_clock,
    dry_run: bool = False,
    should_stop: Optional[Callable[[], bool]] = None,
    heartbeat: Optional[Callable[[], bool]] = None,
    temp_batch_size: Optional[int] = None,
    archive_batch_size: Optional[int] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Run both reclamation sweeps once.

    1. Expired temp sweep: temp, expires_at in the past, no owners.
    2. Archived retention sweep: archived longer than the retention window.

    Each sweep is capped at its batch size. A failure on one item is recorded
    and the run moves on. ``should_stop`` is polled between items so a
    shutting-down worker can stop cleanly; items already handled stay handled.

    Args:
        db: Database session
        store: Object store
        clock: Time source
        dry_run: Only report candidates
        should_stop: Returns True when the run should stop early
        heartbeat: Called before each item to keep the run lock alive;
            returns False once the lock is lost, which ends the run
        temp_batch_size: Cap for the temp sweep (default from settings)
        archive_batch_size: Cap for the archived sweep (default from settings)
        timeout: Store call deadline in seconds

    Returns:
        Summary dict:
            - temp_found / archived_found: candidates per sweep
            - purged, skipped, failed: item counts
            - remote_failures: purged items whose blob could not be destroyed
            - assets: per-item details
            - errors: first ten error messages
            - stopped: True if should_stop or a lost lock ended the run early
            - lock_lost: True if the heartbeat reported the run lock gone

    Examples:
        >>> await run_reclamation(db, store)
        {'temp_found': 3, 'archived_found': 1, 'purged': 4, ...}
    """
    now = clock.now()
    batches = {
        SWEEP_TEMP: temp_batch_size or settings.temp_sweep_batch_size,
        SWEEP_ARCHIVED: archive_batch_size or settings.archive_sweep_batch_size,
    }

    results: Dict[str, Any] = {
        "started_at": now.isoformat(),
        "dry_run": dry_run,
        "temp_found": 0,
        "archived_found": 0,
        "purged": 0,
        "skipped": 0,
        "failed": 0,
        "remote_failures": 0,
        "stopped": False,
        "lock_lost": False,
        "assets": [],
        "errors": [],
    }

    candidates = {}
    for sweep, limit in batches.items():
        found = select_candidates(db, sweep, now, limit)
        candidates[sweep] = [(a.id, a.storage_key) for a in found]
        results[f"{sweep}_found"] = len(found)
        if dry_run:
            results["assets"].extend(
                {
                    "storage_key": a.storage_key,
                    "sweep": sweep,
                    "expires_at": a.expires_at.isoformat() if a.expires_at else None,
                    "archived_at": a.archived_at.isoformat() if a.archived_at else None,
                }
                for a in found
            )
    db.rollback()

    total = results["temp_found"] + results["archived_found"]
    if total == 0:
        logger.info("No assets to reclaim")
        return results

    logger.info(
        f"Found {total} assets to reclaim "
        f"({results['temp_found']} temp, {results['archived_found']} archived)"
    )

    if dry_run:
        return results

    errors: List[str] = []
    for sweep, items in candidates.items():
        for asset_id, key in items:
            if should_stop and should_stop():
                logger.warning("Reclamation stopped before finishing the batch")
                results["stopped"] = True
                break

            if heartbeat and not heartbeat():
                logger.error("Reclamation run lock lost, stopping before another run overlaps")
                results["stopped"] = True
                results["lock_lost"] = True
                break

            try:
                outcome = await purge_candidate(db, store, asset_id, sweep, now, timeout)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to purge {key}: {e}", exc_info=True)
                results["failed"] += 1
                errors.append(f"{key}: {e}")
                continue

            if outcome["result"] == PURGED:
                results["purged"] += 1
                if not outcome["remote_deleted"]:
                    results["remote_failures"] += 1
                results["assets"].append(
                    {"storage_key": key, "sweep": sweep, "remote_deleted": outcome["remote_deleted"]}
                )
            else:
                results["skipped"] += 1

        if results["stopped"]:
            break

    results["errors"] = errors[:10]
    logger.info(
        f"Reclamation complete: {results['purged']} purged, {results['skipped']} skipped, "
        f"{results['failed']} failed, {results['remote_failures']} blobs left for retry"
    )
    return results


async def run_reclamation_exclusive(lock, **kwargs) -> Dict[str, Any]:
    """Run reclamation only if ``lock`` can be taken without waiting.

    ``lock`` needs ``acquire(blocking=False)`` and ``release()``, as provided
    by a Redis lock or a threading lock.
    """
    if not lock.acquire(blocking=False):
        logger.warning("Another reclamation run is active, skipping")
        return {"skipped_run": True, "reason": "another reclamation run is active"}

    try:
        return await run_reclamation(**kwargs)
    finally:
        lock.release()


async def find_untracked_blobs(
    db: Session,
    store: BaseObjectStore,
    clock: Clock = system_clock,
    purge: bool = False,
    grace_hours: Optional[int] = None,
    prefix: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Compare store keys with the ledger and report blobs nothing tracks.

    Only keys older than the grace period are considered, so uploads whose
    record is still being written are not flagged. With ``purge`` set, each
    untracked key is checked against the ledger once more and destroyed.

    Returns:
        Dict with scanned, untracked (keys), purged, failed
    """
    grace = timedelta(hours=settings.reconcile_grace_hours if grace_hours is None else grace_hours)
    prefix = settings.storage_key_prefix if prefix is None else prefix
    timeout = settings.storage_timeout_seconds if timeout is None else timeout
    cutoff = clock.now() - grace

    try:
        listed = await with_timeout(store.list_keys(prefix), timeout, f"list {prefix}")
    except (StorageError, OSError) as e:
        logger.error(f"Failed to list object store keys: {e}")
        raise

    old_keys = [info.key for info in listed if info.modified_at < cutoff]
    tracked = set()
    for start in range(0, len(old_keys), 500):
        chunk = old_keys[start : start + 500]
        tracked.update(k for (k,) in db.query(Asset.storage_key).filter(Asset.storage_key.in_(chunk)).all())

    untracked = [k for k in old_keys if k not in tracked]
    results = {"scanned": len(listed), "untracked": untracked, "purged": 0, "failed": 0}

    if untracked:
        logger.warning(f"Found {len(untracked)} untracked blobs under {prefix!r}")

    if purge:
        for key in untracked:
            if db.query(Asset.id).filter(Asset.storage_key == key).first() is not None:
                continue
            if await destroy_blob(store, key, timeout):
                results["purged"] += 1
            else:
                results["failed"] += 1
        db.rollback()

    return results
