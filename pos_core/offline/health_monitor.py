# =============================================================================
# pos_core/offline/health_monitor.py
# Remote Service Health Detection and Online/Offline Mode
# =============================================================================
"""
ServiceHealthMonitor - Maintains the process-wide "are we online" flag.

Features:
- Explicit health checks with linear backoff retry
- Passive refresh that never raises
- Outcome hints from callers (a login that reached the server, a timeout)
- Event callbacks on mode transitions
- Optional background monitoring thread
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pos_core.errors import PosCoreError, ServerUnavailable
from pos_core.logging import get_logger
from pos_core.offline.models import HealthReport, format_timestamp, utc_now
from pos_core.offline.retry import RetryPolicy, linear_backoff

if TYPE_CHECKING:
    from pos_core.remote.base_directory import RemoteDirectory

logger = get_logger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Remote reachable and healthy
    OFFLINE = "offline"         # Remote unreachable or degraded
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None
    last_report: Optional[HealthReport] = None


class ServiceHealthMonitor:
    """
    Tracks whether the remote directory is usable.

    A failure in online mode degrades to offline once `failure_threshold`
    consecutive failures have been seen; any success recovers immediately.

    Usage:
        monitor = ServiceHealthMonitor(directory)
        monitor.refresh()
        if monitor.is_online:
            # Verify sessions remotely
        else:
            # Trust local state
    """

    def __init__(
        self,
        directory: RemoteDirectory,
        retry_policy: Optional[RetryPolicy] = None,
        failure_threshold: int = 1,
        interval_online: float = 30.0,
        interval_offline: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        self.directory = directory
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, backoff=linear_backoff(2.0))
        self.failure_threshold = failure_threshold
        self.interval_online = interval_online
        self.interval_offline = interval_offline
        self._clock = clock

        self._state = ConnectionState()
        self._state_lock = threading.Lock()
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status == ConnectionStatus.OFFLINE

    # =========================================================================
    # HEALTH CHECKS
    # =========================================================================

    def _probe(self) -> HealthReport:
        report = self.directory.health_check()
        with self._state_lock:
            self._state.last_report = report
        if not report.is_healthy:
            raise ServerUnavailable(
                f"Service degraded (status={report.status}, database_connected={report.database_connected})",
                status_code=503,
                endpoint="health",
            )
        return report

    def check_health(self, max_retries: Optional[int] = None) -> HealthReport:
        """
        Probe the remote, retrying degraded responses with linear backoff.

        Args:
            max_retries: Attempt budget; defaults to the retry policy's

        Returns:
            The healthy HealthReport

        Raises:
            ServerUnavailable: still unavailable after the last attempt
            ValueError: max_retries below 1
        """
        policy = self.retry_policy.with_attempts(max_retries) if max_retries is not None else self.retry_policy
        try:
            report = policy.run(self._probe, description="Health check")
        except PosCoreError as e:
            self.report_failure(e)
            raise

        self.report_success()
        return report

    def refresh(self) -> ConnectionState:
        """Single passive probe. Failures only change the mode."""
        try:
            self.check_health(max_retries=1)
        except PosCoreError as e:
            logger.debug(f"Passive health check failed: {e}")
        return self._state

    def force_check(self) -> ConnectionState:
        """Force an immediate connection check."""
        return self.refresh()

    # =========================================================================
    # MODE TRANSITIONS
    # =========================================================================

    def report_success(self) -> None:
        """The remote answered; recover to online mode."""
        now = self._clock()
        with self._state_lock:
            old_status = self._state.status
            self._state.status = ConnectionStatus.ONLINE
            self._state.last_check = now
            self._state.last_online = now
            self._state.consecutive_failures = 0
            self._state.error_message = None

        if old_status != ConnectionStatus.ONLINE:
            logger.info(f"Connection status changed: {old_status.value} -> online")
            self._notify_callbacks()

    def report_failure(self, error: Optional[Exception] = None) -> None:
        """The remote could not be used; degrade once the threshold is reached."""
        with self._state_lock:
            old_status = self._state.status
            self._state.last_check = self._clock()
            self._state.consecutive_failures += 1
            self._state.error_message = str(error) if error else None

            # Unknown has no evidence of being online, so it degrades at once
            if old_status == ConnectionStatus.UNKNOWN or (
                old_status == ConnectionStatus.ONLINE
                and self._state.consecutive_failures >= self.failure_threshold
            ):
                self._state.status = ConnectionStatus.OFFLINE

            new_status = self._state.status
            failures = self._state.consecutive_failures

        if new_status != old_status:
            logger.warning(f"Connection status changed: {old_status.value} -> offline ({error})")
            self._notify_callbacks()
        else:
            logger.debug(f"Health failure {failures}/{self.failure_threshold} while {new_status.value}")

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        with self._state_lock:
            old_status = self._state.status
            self._state.status = ConnectionStatus.OFFLINE
        if old_status != ConnectionStatus.OFFLINE:
            self._notify_callbacks()
        logger.info("Forced offline mode")

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """
        Register a callback for connection status changes.

        Args:
            callback: Function called with ConnectionState when status changes
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    # =========================================================================
    # BACKGROUND MONITORING
    # =========================================================================

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ServiceHealthMonitor",
        )
        self._monitor_thread.start()
        logger.debug("Health monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
            self._monitor_thread = None
        logger.debug("Health monitoring stopped")

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_thread is not None and self._monitor_thread.is_alive()

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            interval = self.interval_online if self.is_online else self.interval_offline

            if self._stop_monitoring.wait(timeout=interval):
                break

            self.refresh()

    def get_status_display(self) -> Dict[str, Any]:
        """Get status information for display."""
        state = self._state
        report = state.last_report
        return {
            "status": state.status.value,
            "is_online": self.is_online,
            "database_connected": report.database_connected if report else None,
            "last_check": format_timestamp(state.last_check),
            "last_online": format_timestamp(state.last_online),
            "failures": state.consecutive_failures,
            "error": state.error_message,
            "monitoring": self.is_monitoring,
        }
