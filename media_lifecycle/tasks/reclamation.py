"""Asset reclamation tasks."""

import asyncio
import logging
import threading
from typing import Any, Dict

import redis
from celery.signals import worker_ready, worker_shutting_down
from redis.exceptions import LockError

from media_lifecycle.celery_app import celery_app
from media_lifecycle.config import settings
from media_lifecycle.database import SessionLocal
from media_lifecycle.services.reclamation_service import find_untracked_blobs, run_reclamation_exclusive
from media_lifecycle.storage.factory import get_object_store

logger = logging.getLogger(__name__)

LOCK_NAME = "media_lifecycle:reclamation"

# Set when the worker begins a warm shutdown; polled between purge items
_shutdown = threading.Event()


@worker_shutting_down.connect
def _on_worker_shutting_down(**kwargs):
    _shutdown.set()


@worker_ready.connect
def _schedule_startup_run(sender=None, **kwargs):
    """Run once shortly after start so a missed schedule does not wait a day."""
    reclaim_assets.apply_async(countdown=settings.reclamation_startup_delay_seconds)
    logger.info(f"Startup reclamation queued in {settings.reclamation_startup_delay_seconds}s")


class RunLock:
    """Redis lock for reclamation runs that can be kept alive item by item.

    The lock expires on its own if a worker dies mid-run. A healthy run calls
    ``heartbeat`` between items to reset the expiry, so a long run never
    outlives its lock.
    """

    def __init__(self, lock):
        self._lock = lock

    def acquire(self, blocking: bool = False) -> bool:
        return self._lock.acquire(blocking=blocking)

    def heartbeat(self) -> bool:
        try:
            self._lock.reacquire()
        except LockError as e:
            logger.error(f"Lost reclamation lock: {e}")
            return False
        return True

    def release(self) -> None:
        try:
            self._lock.release()
        except LockError as e:
            logger.warning(f"Reclamation lock already released or expired: {e}")


def get_run_lock() -> RunLock:
    """Cross-process lock allowing a single active reclamation run."""
    client = redis.from_url(settings.redis_url)
    return RunLock(client.lock(LOCK_NAME, timeout=settings.reclamation_lock_timeout_seconds))


@celery_app.task(name="media_lifecycle.tasks.reclamation.reclaim_assets")
def reclaim_assets(dry_run: bool = False) -> Dict[str, Any]:
    """Purge expired temp assets and archived assets past retention.

    Skips (and says so) when another run holds the lock.

    Returns:
        Summary dict from run_reclamation
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting asset reclamation (dry_run={dry_run})")
        run_lock = get_run_lock()
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(
                run_reclamation_exclusive(
                    run_lock,
                    db=db,
                    store=get_object_store(),
                    dry_run=dry_run,
                    should_stop=_shutdown.is_set,
                    heartbeat=run_lock.heartbeat,
                )
            )
        finally:
            loop.close()
    finally:
        db.close()


@celery_app.task(name="media_lifecycle.tasks.reclamation.reconcile_store")
def reconcile_store(purge: bool = False) -> Dict[str, Any]:
    """Report blobs in the object store with no asset record."""
    db = SessionLocal()
    try:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            result = loop.run_until_complete(find_untracked_blobs(db, get_object_store(), purge=purge))
        finally:
            loop.close()
        logger.info(f"Reconciliation complete: {len(result['untracked'])} untracked, {result['purged']} purged")
        return result
    finally:
        db.close()
