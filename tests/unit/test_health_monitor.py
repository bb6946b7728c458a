# =============================================================================
# tests/unit/test_health_monitor.py
# Unit Tests for ServiceHealthMonitor
# =============================================================================

import threading
from unittest.mock import MagicMock

import pytest

from pos_core.errors import InvalidCredentials, ServerUnavailable
from pos_core.offline import ConnectionStatus, HealthReport, ServiceHealthMonitor


def unavailable():
    return ServerUnavailable("Server returned 503", status_code=503)


class TestCheckHealth:
    """Test explicit health checks"""

    def test_healthy_response(self, directory, retry_policy):
        monitor = ServiceHealthMonitor(directory, retry_policy=retry_policy)

        report = monitor.check_health()

        assert report.is_healthy
        assert monitor.is_online

    def test_503_three_times_backs_off_linearly(self, directory, retry_policy, sleeps):
        """Three 503s: delays of 2s then 4s, then ServerUnavailable"""
        directory.fail_next("health_check", unavailable(), times=3)
        monitor = ServiceHealthMonitor(directory, retry_policy=retry_policy)

        with pytest.raises(ServerUnavailable):
            monitor.check_health(max_retries=3)

        assert sleeps == [2.0, 4.0]
        assert directory.call_count("health_check") == 3
        assert monitor.is_offline

    def test_recovers_within_budget(self, directory, retry_policy, sleeps):
        directory.fail_next("health_check", unavailable(), times=2)
        monitor = ServiceHealthMonitor(directory, retry_policy=retry_policy)

        monitor.check_health(max_retries=3)

        assert sleeps == [2.0, 4.0]
        assert monitor.is_online

    def test_database_disconnected_is_unhealthy(self, directory, retry_policy, sleeps):
        directory.database_connected = False
        monitor = ServiceHealthMonitor(directory, retry_policy=retry_policy)

        with pytest.raises(ServerUnavailable):
            monitor.check_health(max_retries=2)

        assert sleeps == [2.0]
        assert monitor.state.last_report.database_connected is False

    def test_zero_budget_is_rejected(self, directory, retry_policy):
        """An explicit budget of zero is not replaced by the default"""
        monitor = ServiceHealthMonitor(directory, retry_policy=retry_policy)

        with pytest.raises(ValueError):
            monitor.check_health(max_retries=0)

        assert directory.call_count("health_check") == 0

    def test_non_retryable_error_still_degrades(self, directory, retry_policy, sleeps):
        directory.fail_next("health_check", InvalidCredentials())
        monitor = ServiceHealthMonitor(directory, retry_policy=retry_policy)
        monitor.report_success()

        with pytest.raises(InvalidCredentials):
            monitor.check_health()

        assert sleeps == []
        assert monitor.is_offline


class TestModeTransitions:
    """Test degradation, recovery and hysteresis"""

    def test_success_while_offline_recovers(self, monitor):
        monitor.force_offline()
        monitor.report_success()

        assert monitor.status == ConnectionStatus.ONLINE
        assert monitor.state.consecutive_failures == 0

    def test_failure_while_online_degrades(self, monitor):
        monitor.report_failure(unavailable())

        assert monitor.status == ConnectionStatus.OFFLINE
        assert "503" in monitor.state.error_message

    def test_failure_threshold(self, directory):
        monitor = ServiceHealthMonitor(directory, failure_threshold=3)
        monitor.report_success()

        monitor.report_failure(unavailable())
        monitor.report_failure(unavailable())
        assert monitor.is_online

        monitor.report_failure(unavailable())
        assert monitor.is_offline

    def test_unknown_degrades_on_first_failure(self, directory):
        monitor = ServiceHealthMonitor(directory, failure_threshold=3)

        monitor.report_failure(unavailable())

        assert monitor.is_offline

    def test_refresh_swallows_failures(self, directory, monitor):
        directory.online = False

        state = monitor.refresh()

        assert state.status == ConnectionStatus.OFFLINE
        assert directory.call_count("health_check") == 1

    def test_rejects_invalid_threshold(self, directory):
        with pytest.raises(ValueError):
            ServiceHealthMonitor(directory, failure_threshold=0)


class TestCallbacks:
    """Test status change notifications"""

    def test_called_only_on_transitions(self, monitor):
        callback = MagicMock()
        monitor.register_callback(callback)

        monitor.report_success()
        monitor.report_failure(unavailable())
        monitor.report_failure(unavailable())
        monitor.report_success()

        statuses = [call.args[0].status for call in callback.call_args_list]
        assert len(statuses) == 2

    def test_failing_callback_does_not_break_monitor(self, monitor):
        monitor.register_callback(MagicMock(side_effect=RuntimeError("boom")))

        monitor.report_failure(unavailable())

        assert monitor.is_offline

    def test_unregister(self, monitor):
        callback = MagicMock()
        monitor.register_callback(callback)
        monitor.unregister_callback(callback)

        monitor.force_offline()

        callback.assert_not_called()


class TestBackgroundMonitoring:
    """Test the monitoring thread"""

    def test_start_and_stop(self, directory):
        checked = threading.Event()
        directory.health_check = MagicMock(side_effect=lambda: checked.set() or HealthReport("healthy", True))
        monitor = ServiceHealthMonitor(directory, interval_online=0.01, interval_offline=0.01)

        monitor.start_monitoring()
        try:
            assert monitor.is_monitoring
            assert checked.wait(timeout=5)
        finally:
            monitor.stop_monitoring()

        assert not monitor.is_monitoring

    def test_status_display(self, monitor):
        display = monitor.get_status_display()

        assert display["status"] == "online"
        assert display["is_online"] is True
        assert display["monitoring"] is False
