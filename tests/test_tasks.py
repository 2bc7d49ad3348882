"""Tests for the Celery reclamation tasks and schedule."""

import logging
from datetime import timedelta

from redis.exceptions import LockNotOwnedError
from sqlalchemy.orm import sessionmaker

from media_lifecycle.celery_app import celery_app
from media_lifecycle.clock import Clock, FrozenClock
from media_lifecycle.models.asset import Asset
from media_lifecycle.services.upload_service import upload_asset
from media_lifecycle.tasks import reclamation
from media_lifecycle.tasks.reclamation import RunLock
from tests.helpers import make_png, run


class FakeRedisLock:
    """Stands in for a redis-py Lock; can be told it has expired."""

    def __init__(self, held=False, expired=False, expire_after_beats=None):
        self.held = held
        self.expired = expired
        self.expire_after_beats = expire_after_beats
        self.beats = 0

    def acquire(self, blocking=True):
        if self.held:
            return False
        self.held = True
        return True

    def reacquire(self):
        self.beats += 1
        if self.expire_after_beats is not None and self.beats > self.expire_after_beats:
            self.expired = True
        if self.expired:
            raise LockNotOwnedError("Cannot reacquire a lock that's no longer owned")
        return True

    def release(self):
        if self.expired:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        self.held = False


def _patch_worker(monkeypatch, test_engine, store, lock):
    monkeypatch.setattr(reclamation, "SessionLocal", sessionmaker(bind=test_engine))
    monkeypatch.setattr(reclamation, "get_object_store", lambda: store)
    monkeypatch.setattr(reclamation, "get_run_lock", lambda: RunLock(lock))


def _expired_temp_assets(test_db, store, count):
    # The task reads wall-clock time, so back-date the uploads
    clock = FrozenClock(Clock().now() - timedelta(days=10))
    for i in range(count):
        run(upload_asset(test_db, store, make_png(color=(i, 99, 99)), "product", "product-form", "user-1", clock=clock))


def test_daily_schedule_registered():
    entry = celery_app.conf.beat_schedule["reclaim-assets-daily"]
    assert entry["task"] == "media_lifecycle.tasks.reclamation.reclaim_assets"


def test_worker_registers_only_lifecycle_tasks():
    registered = {name for name in celery_app.tasks if name.startswith("media_lifecycle.")}
    assert registered == {
        "media_lifecycle.tasks.reclamation.reclaim_assets",
        "media_lifecycle.tasks.reclamation.reconcile_store",
    }


def test_reclaim_task_runs(monkeypatch, test_engine, store):
    _patch_worker(monkeypatch, test_engine, store, FakeRedisLock())

    result = reclamation.reclaim_assets(dry_run=True)

    assert result["dry_run"] is True
    assert result["purged"] == 0


def test_reclaim_task_skips_when_locked(monkeypatch, test_engine, store):
    _patch_worker(monkeypatch, test_engine, store, FakeRedisLock(held=True))

    result = reclamation.reclaim_assets()

    assert result["skipped_run"] is True


def test_reclaim_task_refreshes_lock_per_item(monkeypatch, test_engine, test_db, store):
    lock = FakeRedisLock()
    _expired_temp_assets(test_db, store, 3)
    _patch_worker(monkeypatch, test_engine, store, lock)

    result = reclamation.reclaim_assets()

    assert result["purged"] == 3
    assert lock.beats == 3
    assert lock.held is False


def test_reclaim_task_stops_when_lock_expires(monkeypatch, test_engine, test_db, store):
    lock = FakeRedisLock(expire_after_beats=1)
    _expired_temp_assets(test_db, store, 3)
    _patch_worker(monkeypatch, test_engine, store, lock)

    result = reclamation.reclaim_assets()

    assert result["purged"] == 1
    assert result["stopped"] is True
    assert result["lock_lost"] is True
    assert test_db.query(Asset).count() == 2


def test_expired_lock_release_keeps_summary(monkeypatch, test_engine, store, caplog):
    lock = FakeRedisLock()
    _patch_worker(monkeypatch, test_engine, store, lock)
    original_release = lock.release

    def expire_then_release():
        lock.expired = True
        original_release()

    lock.release = expire_then_release

    with caplog.at_level(logging.WARNING, logger="media_lifecycle.tasks.reclamation"):
        result = reclamation.reclaim_assets()

    assert result["purged"] == 0
    assert any("already released or expired" in r.getMessage() for r in caplog.records)


def test_reconcile_task(monkeypatch, test_engine, store):
    _patch_worker(monkeypatch, test_engine, store, FakeRedisLock())

    result = reclamation.reconcile_store()

    assert result == {"scanned": 0, "untracked": [], "purged": 0, "failed": 0}
