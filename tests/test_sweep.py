"""
Tests for ParamGuard Retention Sweep
"""

import time
from datetime import timedelta

import pytest

from paramguard.archive.exceptions import StorageError
from paramguard.archive.lifecycle import LifecycleEngine
from paramguard.archive.models import RecordKind, RecordState
from paramguard.archive.sweep import (
    PeriodicSweeper,
    SweepAction,
    SweepCoordinator,
)


def archived_record(engine, name):
    record_id = engine.create(name, "dev", RecordKind.ENV_VAR, "value")
    engine.archive(record_id)
    return record_id


@pytest.fixture
def coordinator(engine):
    return SweepCoordinator(engine)


class TestSweep:
    """Tests for one-shot sweeps."""

    def test_reports_without_auto_remove(self, engine, coordinator, clock):
        old = archived_record(engine, "OLD")
        clock.advance(timedelta(days=31))
        fresh = archived_record(engine, "FRESH")

        report = coordinator.sweep()

        assert report.pending_ids == [old]
        assert report.purged_ids == []
        assert report.retained_count == 1
        assert engine.get(old).state == RecordState.ARCHIVED
        assert engine.get(fresh).state == RecordState.ARCHIVED

    def test_purges_with_auto_remove(self, engine, coordinator, clock):
        engine.set_retention_settings(auto_remove=True)
        old = archived_record(engine, "OLD")
        clock.advance(timedelta(days=30))

        report = coordinator.sweep()

        assert report.purged_ids == [old]
        assert engine.get_state(old) == RecordState.DELETED

    def test_dry_run_never_purges(self, engine, coordinator, clock):
        engine.set_retention_settings(auto_remove=True)
        old = archived_record(engine, "OLD")
        clock.advance(timedelta(days=30))

        report = coordinator.sweep(dry_run=True)

        assert report.dry_run is True
        assert report.pending_ids == [old]
        assert engine.get(old).state == RecordState.ARCHIVED

    def test_sweep_is_idempotent(self, engine, coordinator, clock):
        engine.set_retention_settings(auto_remove=True)
        ids = [archived_record(engine, name) for name in ("A", "B")]
        clock.advance(timedelta(days=45))

        first = coordinator.sweep()
        second = coordinator.sweep()

        assert sorted(first.purged_ids) == sorted(ids)
        assert second.purged_ids == []
        assert second.outcomes == []

    def test_active_records_untouched(self, engine, coordinator, clock):
        engine.set_retention_settings(timedelta(0), auto_remove=True)
        active = engine.create("LIVE", "dev", RecordKind.ENV_VAR, "1")
        clock.advance(timedelta(days=365))

        coordinator.sweep()

        assert engine.get(active).state == RecordState.ACTIVE

    def test_failure_does_not_abort_sweep(self, engine, coordinator, clock, monkeypatch):
        engine.set_retention_settings(auto_remove=True)
        bad = archived_record(engine, "BAD")
        good = archived_record(engine, "GOOD")
        clock.advance(timedelta(days=30))

        original_purge = engine.purge

        disk_error = OSError("no space left on device")
        storage_error = StorageError("disk full", operation="put", original_error=disk_error)

        def flaky_purge(record_id, force=False):
            if record_id == bad:
                raise storage_error
            return original_purge(record_id, force=force)

        monkeypatch.setattr(engine, "purge", flaky_purge)
        report = coordinator.sweep()

        assert report.failed_ids == [bad]
        assert report.purged_ids == [good]
        failed = [o for o in report.outcomes if o.action == SweepAction.FAILED][0]
        assert failed.error == "StorageError"
        assert failed.exception is storage_error
        assert failed.exception.operation == "put"
        assert failed.exception.original_error is disk_error

    def test_report_to_dict(self, engine, coordinator, clock):
        archived_record(engine, "OLD")
        clock.advance(timedelta(days=30))
        data = coordinator.sweep().to_dict()
        assert data["pending"] == 1
        assert data["outcomes"][0]["action"] == "PENDING_CONFIRMATION"
        assert data["completed_at"] is not None


class TestPurgeConfirmed:
    """Manual confirmation of pending purges."""

    def test_confirm_pending(self, engine, coordinator, clock):
        old = archived_record(engine, "OLD")
        clock.advance(timedelta(days=30))
        pending = coordinator.sweep().pending_ids

        report = coordinator.purge_confirmed(pending)

        assert report.purged_ids == [old]
        assert engine.get_state(old) == RecordState.DELETED

    def test_confirm_respects_retention(self, engine, coordinator):
        fresh = archived_record(engine, "FRESH")
        report = coordinator.purge_confirmed([fresh])
        assert report.failed_ids == [fresh]
        assert report.outcomes[0].error == "RetentionNotExpiredError"


class TestPeriodicSweeper:
    """Tests for the background sweeper."""

    def test_start_and_stop(self, memory_store, cipher, clock):
        engine = LifecycleEngine(memory_store, cipher, clock=clock)
        engine.set_retention_settings(timedelta(0), auto_remove=True)
        record_id = archived_record(engine, "OLD")

        sweeper = PeriodicSweeper(SweepCoordinator(engine), interval=0.05)
        sweeper.start()
        try:
            deadline = time.time() + 5
            while sweeper.last_report is None and time.time() < deadline:
                time.sleep(0.01)
        finally:
            sweeper.stop()

        assert sweeper.is_running is False
        assert engine.get_state(record_id) == RecordState.DELETED

    def test_start_twice_is_noop(self, coordinator):
        sweeper = PeriodicSweeper(coordinator, interval=60)
        sweeper.start()
        thread = sweeper._thread
        sweeper.start()
        assert sweeper._thread is thread
        sweeper.stop()

    def test_loop_survives_unexpected_error(self, coordinator, monkeypatch):
        calls = []

        def broken_sweep(dry_run=False):
            calls.append(dry_run)
            raise KeyError("record_id")

        monkeypatch.setattr(coordinator, "sweep", broken_sweep)
        sweeper = PeriodicSweeper(coordinator, interval=0.02)
        sweeper.start()
        try:
            deadline = time.time() + 5
            while len(calls) < 3 and time.time() < deadline:
                time.sleep(0.01)
            assert len(calls) >= 3
            assert sweeper._thread.is_alive()
        finally:
            sweeper.stop()
