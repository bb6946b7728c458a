# =============================================================================
# pos_core/context.py
# Application Context - builds and wires every service once
# =============================================================================
"""
AppContext owns the process-wide instances: one LocalStore (and so one
database handle), one remote directory, one health monitor, one
reconciliation engine and one credential broker.

Usage:
    with AppContext.create() as ctx:
        session = ctx.broker.login(email, password)

    # or, explicitly
    ctx = AppContext.create(load_settings("config/pos_core.toml"))
    ctx.start()
    ...
    ctx.shutdown()
"""

from __future__ import annotations
import time
from datetime import timedelta
from typing import Callable, Optional

from pos_core.auth import CredentialBroker
from pos_core.config import Settings, load_settings
from pos_core.errors import PosCoreError
from pos_core.logging import get_logger
from pos_core.offline import (
    LocalStore,
    ReconciliationEngine,
    RetryPolicy,
    ServiceHealthMonitor,
    Session,
    SessionStore,
    linear_backoff,
)
from pos_core.remote import RemoteDirectory, create_directory
from pos_core.services import UserAdminService

logger = get_logger(__name__)


class AppContext:
    """Constructor-injected graph of the offline core services."""

    def __init__(
        self,
        settings: Settings,
        store: LocalStore,
        directory: RemoteDirectory,
        session_store: SessionStore,
        monitor: ServiceHealthMonitor,
        engine: ReconciliationEngine,
        broker: CredentialBroker,
    ):
        self.settings = settings
        self.store = store
        self.directory = directory
        self.session_store = session_store
        self.monitor = monitor
        self.engine = engine
        self.broker = broker
        self.users = UserAdminService(store, lambda: broker.current_session)
        self._started = False

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        directory: Optional[RemoteDirectory] = None,
        store: Optional[LocalStore] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> AppContext:
        """
        Build the service graph from settings.

        Args:
            settings: Defaults to load_settings()
            directory: Overrides the configured remote provider
            store: Overrides the configured database
            sleep: Used between health check retries
        """
        settings = settings or load_settings()

        store = store or LocalStore(settings.database_path, seed_demo_users=settings.seed_demo_users)
        directory = directory or create_directory(settings)
        session_store = SessionStore(store)

        retry_policy = RetryPolicy(
            max_attempts=settings.health_max_retries,
            backoff=linear_backoff(settings.health_backoff_seconds),
            sleep=sleep,
        )
        monitor = ServiceHealthMonitor(
            directory,
            retry_policy=retry_policy,
            failure_threshold=settings.failure_threshold,
            interval_online=settings.monitor_interval_online,
            interval_offline=settings.monitor_interval_offline,
        )
        engine = ReconciliationEngine(
            store,
            directory,
            session_store,
            monitor=monitor,
            interval=timedelta(seconds=settings.sync_interval_seconds),
        )
        broker = CredentialBroker(store, directory, session_store, engine, monitor)

        return cls(settings, store, directory, session_store, monitor, engine, broker)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> Optional[Session]:
        """
        Initialize storage, probe the remote, then restore any stored session.

        Returns:
            The restored session, or None
        """
        self.store.initialize()

        try:
            self.monitor.check_health()
        except PosCoreError as e:
            logger.warning(f"Remote unavailable at startup, running offline: {e}")

        if self.settings.start_monitoring:
            self.monitor.start_monitoring()

        self._started = True
        session = self.broker.restore_session()
        logger.info(
            f"POS core started. Online: {self.monitor.is_online}, "
            f"session: {session.user.email if session else 'none'}"
        )
        return session

    def shutdown(self) -> None:
        """Stop monitoring, let a running sync finish, release resources."""
        self.monitor.stop_monitoring()
        self.engine.shutdown(wait=True)
        self.directory.close()
        self.store.close()
        self._started = False
        logger.info("POS core stopped")

    @property
    def is_started(self) -> bool:
        return self._started

    def __enter__(self) -> AppContext:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
