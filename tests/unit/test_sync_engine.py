# =============================================================================
# tests/unit/test_sync_engine.py
# Unit Tests for ReconciliationEngine
# =============================================================================

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from pos_core.errors import InvalidCredentials, LocalStorageError, ServerUnavailable
from pos_core.offline import ReconciliationEngine, ServiceHealthMonitor, User


class TestSync:
    """Test a single reconciliation pass"""

    def test_first_sync_pulls_remote_users(self, engine, store, directory, clock):
        result = engine.sync()

        assert result.synced is True
        assert result.counts.succeeded == 4
        assert result.counts.failed == 0
        assert result.sync_time == clock.now
        assert store.get_by_id("demo-cashier-2") is not None
        assert engine.session_store.load_cursor().last_sync_at == clock.now

    def test_throttled_within_an_hour(self, engine, directory, clock):
        """A second automatic pass within the hour makes no network call"""
        engine.sync()
        clock.advance(minutes=30)

        result = engine.sync()

        assert result.synced is False
        assert result.reason == "recently synced"
        assert directory.call_count("list_users") == 1

    def test_runs_again_after_an_hour(self, engine, directory, clock):
        engine.sync()
        clock.advance(minutes=61)

        assert engine.sync().synced is True
        assert directory.call_count("list_users") == 2

    def test_forced_sync_bypasses_throttle(self, engine, directory, clock):
        engine.sync()
        clock.advance(seconds=5)

        result = engine.forced_sync()

        assert result.synced is True
        assert directory.call_count("list_users") == 2

    def test_empty_remote_is_no_data(self, engine, directory):
        directory.users.clear()

        result = engine.sync()

        assert result.synced is False
        assert result.reason == "no data"
        assert engine.session_store.load_cursor().last_sync_at is None

    def test_partial_failure_is_reported_not_raised(self, engine, directory, store):
        broken = User(id="broken-1", name="No Email", email="")
        directory.users[broken.id] = broken

        result = engine.sync()

        assert result.synced is True
        assert result.counts.succeeded == 4
        assert result.counts.failed == 1
        assert result.counts.total == 5
        assert result.errors[0]["user"] == "broken-1"
        assert result.has_failures

    def test_all_records_failing_leaves_cursor(self, engine, directory):
        directory.users.clear()
        directory.users["x"] = User(id="x", name="", email="x@techcorp.com")

        result = engine.sync()

        assert result.synced is False
        assert result.reason == "all records failed"
        assert result.counts.failed == 1
        assert engine.session_store.load_cursor().last_sync_at is None

    def test_remote_wins_over_local_edits(self, engine, directory, store):
        directory.users["demo-manager-1"].name = "Store Manager"
        store.set_active("demo-manager-1", False)

        engine.sync()

        manager = store.get_by_id("demo-manager-1")
        assert manager.name == "Store Manager"
        assert manager.is_active is True

    def test_listing_failure_propagates(self, engine, directory):
        directory.online = False

        with pytest.raises(ServerUnavailable):
            engine.sync()

    def test_storage_failure_propagates(self, engine, store):
        store.bulk_upsert = MagicMock(side_effect=LocalStorageError("disk full", operation="bulk_upsert"))

        with pytest.raises(LocalStorageError):
            engine.sync()
        assert not engine.is_syncing

    def test_rejected_token_notifies_callbacks(self, engine, store, directory):
        store.set_setting("auth_token", "jwt_abc")
        callback = MagicMock()
        engine.register_auth_failure_callback(callback)
        directory.fail_next("list_users", InvalidCredentials("Invalid or expired token", source="remote"))

        with pytest.raises(InvalidCredentials):
            engine.sync()

        callback.assert_called_once_with("jwt_abc")
        assert engine.session_store.load_cursor().last_sync_at is None

    def test_sends_stored_token(self, engine, session_store, store, directory):
        store.set_setting("auth_token", "jwt_abc")
        directory.list_users = MagicMock(return_value=[])

        engine.sync()

        directory.list_users.assert_called_once_with(token="jwt_abc")


class TestConcurrency:
    """Test the in-flight guard"""

    def test_concurrent_sync_is_rejected(self, store, directory, session_store, clock):
        entered = threading.Event()
        release = threading.Event()
        original = directory.list_users

        def slow_list_users(**kwargs):
            entered.set()
            release.wait(timeout=5)
            return original(**kwargs)

        directory.list_users = slow_list_users
        engine = ReconciliationEngine(store, directory, session_store, clock=clock)
        try:
            future = engine.sync_in_background(force=True)
            assert entered.wait(timeout=5)

            busy = engine.forced_sync()
            release.set()
            first = future.result(timeout=5)
        finally:
            release.set()
            engine.shutdown()

        assert busy.synced is False
        assert busy.reason == "sync in progress"
        assert first.synced is True


class TestBackground:
    """Test background passes and recovery"""

    def test_background_failure_is_captured(self, engine, directory):
        directory.online = False

        future = engine.sync_in_background(force=True)

        assert isinstance(future.exception(timeout=5), ServerUnavailable)

    def test_recovery_schedules_sync(self, engine, monitor, directory):
        monitor.force_offline()

        monitor.report_success()
        engine.shutdown(wait=True)

        assert directory.call_count("list_users") == 1

    def test_startup_health_check_does_not_sync(self, store, directory, session_store, clock):
        """Leaving unknown is not a recovery"""
        monitor = ServiceHealthMonitor(directory)
        engine = ReconciliationEngine(store, directory, session_store, monitor=monitor, clock=clock)

        monitor.report_success()
        engine.shutdown(wait=True)

        assert directory.call_count("list_users") == 0

    def test_recovery_skipped_while_pass_queued(self, engine, monitor, directory):
        release = threading.Event()
        original = directory.list_users

        def slow_list_users(**kwargs):
            release.wait(timeout=5)
            return original(**kwargs)

        directory.list_users = slow_list_users
        monitor.force_offline()
        future = engine.sync_in_background(force=True)

        monitor.report_success()
        release.set()
        future.result(timeout=5)
        engine.shutdown(wait=True)

        assert engine.last_result.synced is True
        assert not engine.has_pending
        assert directory.call_count("list_users") == 1

    def test_status(self, engine, monitor):
        engine.sync()
        monitor.force_offline()

        status = engine.get_sync_status()

        assert status["last_sync"] is not None
        assert status["is_offline"] is True
        assert status["last_result"]["synced"] is True
        assert status["local"]["users"] == 4

    def test_custom_interval(self, store, directory, session_store, clock):
        engine = ReconciliationEngine(store, directory, session_store, interval=timedelta(minutes=5), clock=clock)
        engine.sync()
        clock.advance(minutes=6)

        assert engine.sync().synced is True
