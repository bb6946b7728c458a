# =============================================================================
# pos_core/offline/sync_engine.py
# One-way User Reconciliation from the Remote Directory
# =============================================================================
"""
ReconciliationEngine - Pulls the authoritative user list into the LocalStore.

Features:
- Hourly throttle on automatic passes, bypassed by forced passes
- One pass in flight at a time; concurrent requests are rejected, never queued
- Per-record failures reported as counts plus a truncated error list
- Background passes on a single worker thread
- Automatic pass when the health monitor recovers from offline mode
- Auth failure hooks when the server rejects the stored token
"""

from __future__ import annotations
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pos_core.errors import InvalidCredentials
from pos_core.logging import get_logger
from pos_core.offline.health_monitor import ConnectionState, ConnectionStatus, ServiceHealthMonitor
from pos_core.offline.local_store import LocalStore
from pos_core.offline.models import SyncCounts, SyncCursor, SyncResult, format_timestamp, utc_now
from pos_core.offline.session_store import SessionStore

if TYPE_CHECKING:
    from pos_core.remote.base_directory import RemoteDirectory

logger = get_logger(__name__)


REASON_RECENTLY_SYNCED = "recently synced"
REASON_NO_DATA = "no data"
REASON_IN_PROGRESS = "sync in progress"
REASON_ALL_FAILED = "all records failed"


class ReconciliationEngine:
    """
    Remote wins: every pass overwrites local rows with the remote copy.

    Usage:
        engine = ReconciliationEngine(store, directory, session_store)
        result = engine.sync()              # throttled
        result = engine.forced_sync()       # always runs
        future = engine.sync_in_background(force=True)
    """

    SYNC_INTERVAL = timedelta(hours=1)

    def __init__(
        self,
        store: LocalStore,
        directory: RemoteDirectory,
        session_store: SessionStore,
        monitor: Optional[ServiceHealthMonitor] = None,
        interval: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.directory = directory
        self.session_store = session_store
        self.monitor = monitor
        self.interval = self.SYNC_INTERVAL if interval is None else interval
        self._clock = clock

        self._in_flight = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._pending = 0
        self._auth_failure_callbacks: List[Callable[[Optional[str]], None]] = []
        self.last_result: Optional[SyncResult] = None

        self._last_status = monitor.status if monitor is not None else None
        if monitor is not None:
            monitor.register_callback(self._on_connection_change)

    @property
    def is_syncing(self) -> bool:
        return self._in_flight.locked()

    # =========================================================================
    # SYNC
    # =========================================================================

    def sync(self, force: bool = False) -> SyncResult:
        """
        Run one reconciliation pass.

        Args:
            force: Ignore the throttle

        Returns:
            SyncResult; "not synced" outcomes carry a reason instead of raising

        Raises:
            ServerUnavailable / InvalidCredentials / RemoteError: listing failed
            LocalStorageError: the batch was rolled back
        """
        if not self._in_flight.acquire(blocking=False):
            logger.info("Sync requested while another pass is running, skipping")
            return SyncResult(synced=False, reason=REASON_IN_PROGRESS)

        try:
            result = self._perform_sync(force)
        finally:
            self._in_flight.release()

        self.last_result = result
        return result

    def forced_sync(self) -> SyncResult:
        """Sync regardless of when the last pass ran."""
        return self.sync(force=True)

    def _perform_sync(self, force: bool) -> SyncResult:
        now = self._clock()
        cursor = self.session_store.load_cursor()

        if not force and cursor.is_fresh(now, self.interval):
            logger.info(f"Skipping sync, last sync at {format_timestamp(cursor.last_sync_at)}")
            return SyncResult(synced=False, reason=REASON_RECENTLY_SYNCED)

        logger.info(f"Starting {'forced ' if force else ''}user sync...")
        token = self.session_store.get_token()
        try:
            users = self.directory.list_users(token=token)
        except InvalidCredentials:
            logger.warning("Server rejected the stored token during sync")
            self._notify_auth_failure(token)
            raise

        if not users:
            logger.info("No users received from remote")
            return SyncResult(synced=False, reason=REASON_NO_DATA)

        outcome = self.store.bulk_upsert(users)
        counts = SyncCounts(succeeded=outcome.synced, failed=outcome.failed, total=outcome.total)

        if outcome.synced == 0:
            logger.warning(f"Sync failed for all {outcome.total} users")
            return SyncResult(synced=False, reason=REASON_ALL_FAILED, counts=counts, errors=outcome.errors)

        self.session_store.save_cursor(SyncCursor(last_sync_at=now))
        if outcome.failed:
            logger.warning(f"Sync completed with failures: {outcome.synced} synced, {outcome.failed} failed")
        else:
            logger.info(f"Sync completed: {outcome.synced} users")

        return SyncResult(synced=True, counts=counts, errors=outcome.errors, sync_time=now)

    # =========================================================================
    # BACKGROUND
    # =========================================================================

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ReconciliationEngine")
            return self._executor

    def sync_in_background(self, force: bool = False) -> Future:
        """
        Schedule a pass on the worker thread.

        The outcome, including any exception, is logged when the pass ends;
        callers may also inspect the returned Future.
        """
        with self._executor_lock:
            self._pending += 1
        future = self._get_executor().submit(self.sync, force)
        future.add_done_callback(self._log_background_result)
        return future

    @property
    def has_pending(self) -> bool:
        """A background pass is queued or running."""
        with self._executor_lock:
            return self._pending > 0

    def _log_background_result(self, future: Future) -> None:
        with self._executor_lock:
            self._pending -= 1

        if future.cancelled():
            logger.debug("Background sync cancelled")
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Background sync failed: {error}")
            return
        result = future.result()
        if result.synced:
            logger.info(f"Background sync finished: {result.counts.succeeded}/{result.counts.total} users")
        else:
            logger.debug(f"Background sync skipped: {result.reason}")

    def _on_connection_change(self, state: ConnectionState) -> None:
        """Catch up after the remote becomes reachable again."""
        previous, self._last_status = self._last_status, state.status
        # Leaving unknown is the startup health check, not a recovery
        if state.status != ConnectionStatus.ONLINE or previous != ConnectionStatus.OFFLINE:
            return
        if self.has_pending:
            logger.debug("Connection restored, a sync is already queued")
            return
        logger.info("Connection restored, scheduling sync")
        self.sync_in_background(force=False)

    # =========================================================================
    # AUTH FAILURES
    # =========================================================================

    def register_auth_failure_callback(self, callback: Callable[[Optional[str]], None]) -> None:
        """
        Register a callback for a listing rejected with InvalidCredentials.

        Args:
            callback: Function called with the token the pass was sent with
        """
        if callback not in self._auth_failure_callbacks:
            self._auth_failure_callbacks.append(callback)

    def _notify_auth_failure(self, token: Optional[str]) -> None:
        for callback in list(self._auth_failure_callbacks):
            try:
                callback(token)
            except Exception as e:
                logger.error(f"Error in auth failure callback: {e}")

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_sync_status(self) -> Dict[str, Any]:
        """Get sync information for display."""
        cursor = self.session_store.load_cursor()
        last = self.last_result
        return {
            "last_sync": format_timestamp(cursor.last_sync_at),
            "is_syncing": self.is_syncing,
            "is_offline": bool(self.monitor and self.monitor.is_offline),
            "last_result": {
                "synced": last.synced,
                "reason": last.reason,
                "failed": last.counts.failed if last.counts else 0,
            } if last else None,
            "local": self.store.get_stats(),
        }

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker thread, letting an in-flight pass finish when `wait`."""
        if self.monitor is not None:
            self.monitor.unregister_callback(self._on_connection_change)
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
        logger.debug("Reconciliation engine stopped")
