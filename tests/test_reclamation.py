"""Tests for scheduled reclamation and store reconciliation."""

import threading
from datetime import timedelta

from media_lifecycle.clock import FrozenClock
from media_lifecycle.models.asset import Asset
from media_lifecycle.services.asset_service import delete_asset
from media_lifecycle.services.reclamation_service import (
    SKIPPED,
    SWEEP_TEMP,
    find_untracked_blobs,
    purge_candidate,
    run_reclamation,
    run_reclamation_exclusive,
    select_candidates,
)
from media_lifecycle.services.upload_service import upload_asset
from media_lifecycle.services.usage_service import promote_asset
from tests.helpers import make_png, run


def _new_asset(db, store, clock, color=(255, 0, 0)):
    return run(upload_asset(db, store, make_png(color=color), "product", "product-form", "user-1", clock=clock)).asset


def _archived_asset(db, store, clock, color=(0, 0, 255)):
    asset = _new_asset(db, store, clock, color)
    run(promote_asset(db, asset.storage_key, clock=clock))
    run(delete_asset(db, store, asset.id, force=True, clock=clock))
    return asset


class TestTempSweep:
    """Tests for the expired temp sweep."""

    def test_expired_temp_purged(self, test_db, store, clock):
        asset = _new_asset(test_db, store, clock)
        key = asset.storage_key
        clock.advance(days=8)

        summary = run(run_reclamation(test_db, store, clock=clock))

        assert summary["temp_found"] == 1
        assert summary["purged"] == 1
        assert store.destroys == [key]
        assert not store.has_blob(key)
        assert test_db.query(Asset).count() == 0

    def test_unexpired_temp_kept(self, test_db, store, clock):
        _new_asset(test_db, store, clock)
        clock.advance(days=6)

        summary = run(run_reclamation(test_db, store, clock=clock))

        assert summary["purged"] == 0
        assert test_db.query(Asset).count() == 1

    def test_promoted_asset_never_purged(self, test_db, store, clock):
        asset = _new_asset(test_db, store, clock)
        run(promote_asset(test_db, asset.storage_key, "product", "p1", clock=clock))
        clock.advance(days=365)

        summary = run(run_reclamation(test_db, store, clock=clock))

        assert summary["purged"] == 0
        assert store.destroys == []

    def test_remote_failure_still_removes_record(self, test_db, store, clock):
        _new_asset(test_db, store, clock)
        store.fail_destroy = True
        clock.advance(days=8)

        summary = run(run_reclamation(test_db, store, clock=clock))

        assert summary["purged"] == 1
        assert summary["remote_failures"] == 1
        assert test_db.query(Asset).count() == 0

    def test_batch_size_caps_run(self, test_db, store, clock):
        for i in range(3):
            _new_asset(test_db, store, clock, color=(i, 10, 10))
        clock.advance(days=8)

        summary = run(run_reclamation(test_db, store, clock=clock, temp_batch_size=2))

        assert summary["purged"] == 2
        assert test_db.query(Asset).count() == 1


class TestArchivedSweep:
    """Tests for the archived retention sweep."""

    def test_archived_purged_after_retention(self, test_db, store, clock):
        asset = _archived_asset(test_db, store, clock)
        key = asset.storage_key
        clock.advance(days=7, minutes=1)

        summary = run(run_reclamation(test_db, store, clock=clock))

        assert summary["archived_found"] == 1
        assert summary["purged"] == 1
        assert store.destroys == [key]

    def test_archived_within_retention_kept(self, test_db, store, clock):
        _archived_asset(test_db, store, clock)
        clock.advance(days=6)

        summary = run(run_reclamation(test_db, store, clock=clock))

        assert summary["archived_found"] == 0
        assert test_db.query(Asset).count() == 1


class TestRunControl:
    """Tests for dry runs, early stop, races and exclusivity."""

    def test_dry_run_changes_nothing(self, test_db, store, clock):
        asset = _new_asset(test_db, store, clock)
        clock.advance(days=8)

        summary = run(run_reclamation(test_db, store, clock=clock, dry_run=True))

        assert summary["dry_run"] is True
        assert summary["temp_found"] == 1
        assert summary["purged"] == 0
        assert [a["storage_key"] for a in summary["assets"]] == [asset.storage_key]
        assert store.destroys == []
        assert test_db.query(Asset).count() == 1

    def test_should_stop_ends_run(self, test_db, store, clock):
        for i in range(2):
            _new_asset(test_db, store, clock, color=(i, 20, 20))
        clock.advance(days=8)

        summary = run(run_reclamation(test_db, store, clock=clock, should_stop=lambda: True))

        assert summary["stopped"] is True
        assert summary["purged"] == 0
        assert test_db.query(Asset).count() == 2

    def test_promotion_after_selection_wins(self, test_db, store, clock):
        asset = _new_asset(test_db, store, clock)
        clock.advance(days=8)
        candidates = select_candidates(test_db, SWEEP_TEMP, clock.now(), 10)
        assert [c.id for c in candidates] == [asset.id]

        run(promote_asset(test_db, asset.storage_key, "product", "p1", clock=clock))
        outcome = run(purge_candidate(test_db, store, asset.id, SWEEP_TEMP, clock.now()))

        assert outcome["result"] == SKIPPED
        assert store.destroys == []
        assert test_db.query(Asset).count() == 1

    def test_lost_lock_ends_run(self, test_db, store, clock):
        for i in range(3):
            _new_asset(test_db, store, clock, color=(i, 30, 30))
        clock.advance(days=8)
        beats = []

        def heartbeat():
            beats.append(1)
            return len(beats) <= 2

        summary = run(run_reclamation(test_db, store, clock=clock, heartbeat=heartbeat))

        assert summary["purged"] == 2
        assert summary["lock_lost"] is True
        assert summary["stopped"] is True
        assert test_db.query(Asset).count() == 1

    def test_exclusive_run_skipped_when_locked(self, test_db, store, clock):
        lock = threading.Lock()
        lock.acquire()
        try:
            summary = run(run_reclamation_exclusive(lock, db=test_db, store=store, clock=clock))
        finally:
            lock.release()

        assert summary["skipped_run"] is True

    def test_exclusive_run_releases_lock(self, test_db, store, clock):
        lock = threading.Lock()

        summary = run(run_reclamation_exclusive(lock, db=test_db, store=store, clock=clock))

        assert summary["purged"] == 0
        assert lock.acquire(blocking=False)


class TestUntrackedBlobs:
    """Tests for find_untracked_blobs."""

    def test_reports_and_purges_untracked(self, test_db, store, clock):
        tracked = _new_asset(test_db, store, clock)
        stray_key = "assets/" + "e" * 64
        run(store.upload(b"stray", stray_key))
        # Blob mtimes are real time, so look from a day past real now
        later = FrozenClock()
        later.advance(hours=25)

        report = run(find_untracked_blobs(test_db, store, clock=later))
        assert report["untracked"] == [stray_key]
        assert report["scanned"] == 2
        assert store.has_blob(stray_key)

        purged = run(find_untracked_blobs(test_db, store, clock=later, purge=True))
        assert purged["purged"] == 1
        assert not store.has_blob(stray_key)
        assert store.has_blob(tracked.storage_key)

    def test_recent_blobs_ignored(self, test_db, store, clock):
        run(store.upload(b"fresh", "assets/" + "d" * 64))

        report = run(find_untracked_blobs(test_db, store, clock=FrozenClock()))

        assert report["untracked"] == []
