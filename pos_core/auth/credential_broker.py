"""
Credential Broker
Single entry point for establishing, restoring and ending a session

Login state machine:

    TRY_REMOTE --success--> persist session --> forced background sync
        |
        +--InvalidCredentials--> FAILED (no fallback, the server has spoken)
        |
        +--ServerUnavailable--> TRY_LOCAL --match--> persist session (local)
                                    |
                                    +--no match--> FAILED
"""

import threading
import time
from concurrent.futures import Future
from typing import Any, Dict, Optional

from pos_core.errors import (
    InvalidCredentials,
    OperationInProgressError,
    RemoteError,
    ServerUnavailable,
    error_boundary,
)
from pos_core.logging import get_logger
from pos_core.offline.health_monitor import ServiceHealthMonitor
from pos_core.offline.local_store import LocalStore
from pos_core.offline.models import RegistrationResult, Session, SessionSource, User
from pos_core.offline.session_store import SessionStore
from pos_core.offline.sync_engine import ReconciliationEngine
from pos_core.remote.base_directory import Registration, RemoteDirectory

from .validation import validate_login, validate_registration

logger = get_logger(__name__)


OFFLINE_TOKEN_PREFIX = "offline_token_"


class CredentialBroker:
    """
    Chooses between the remote directory and the local store for every
    authentication step.

    Usage:
        broker = CredentialBroker(store, directory, session_store, engine, monitor)
        session = broker.login("admin@techcorp.com", "password123")
        if session.is_offline:
            # Signed in against the local copy
    """

    def __init__(
        self,
        store: LocalStore,
        directory: RemoteDirectory,
        session_store: SessionStore,
        engine: ReconciliationEngine,
        monitor: ServiceHealthMonitor,
    ):
        self.store = store
        self.directory = directory
        self.session_store = session_store
        self.engine = engine
        self.monitor = monitor

        self._current: Optional[Session] = None
        self._login_lock = threading.Lock()
        self.last_background_sync: Optional[Future] = None

        engine.register_auth_failure_callback(self._on_token_rejected)

    @property
    def current_session(self) -> Optional[Session]:
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    # =========================================================================
    # LOGIN
    # =========================================================================

    def login(self, email: str, secret: str) -> Session:
        """
        Authenticate online, falling back to the local store on connectivity
        failures only.

        Returns:
            The persisted Session

        Raises:
            ValidationError: malformed input, before any I/O
            InvalidCredentials: rejected by the server, or no local match
            OperationInProgressError: another login is running
        """
        validate_login(email, secret)

        if not self._login_lock.acquire(blocking=False):
            raise OperationInProgressError("A login is already in progress", operation="login")
        try:
            return self._login(email.strip().lower(), secret)
        finally:
            self._login_lock.release()

    def _login(self, email: str, secret: str) -> Session:
        logger.info(f"Attempting login for: {email}")
        try:
            remote = self.directory.login(email, secret)
        except InvalidCredentials:
            self.monitor.report_success()
            logger.warning(f"Login rejected by server for: {email}")
            raise
        except ServerUnavailable as e:
            self.monitor.report_failure(e)
            logger.warning(f"Online login failed, trying offline: {e}")
            return self._login_locally(email, secret)

        session = Session(token=remote.token, user=remote.user, source=SessionSource.REMOTE)
        self._establish(session)

        # Queued first so a recovery transition does not add a second pass
        self.last_background_sync = self.engine.sync_in_background(force=True)
        self.monitor.report_success()
        logger.info(f"Login successful - {session.user.name} ({session.user.role.value}), source: {remote.source}")
        return session

    def _login_locally(self, email: str, secret: str) -> Session:
        user = self.store.authenticate(email, secret)
        if user is None:
            raise InvalidCredentials(
                "No account found with these credentials. Please check your email and password.",
                source="local",
            )

        session = Session(
            token=f"{OFFLINE_TOKEN_PREFIX}{int(time.time() * 1000)}",
            user=user,
            source=SessionSource.LOCAL,
        )
        self._establish(session)
        logger.info(f"Offline login successful - {user.name} ({user.role.value})")
        return session

    def _establish(self, session: Session) -> None:
        # Persist before returning so a crash cannot lose the session silently
        self.session_store.save(session)
        self._current = session

    # =========================================================================
    # SESSION RESTORE / LOGOUT
    # =========================================================================

    def restore_session(self) -> Optional[Session]:
        """
        Load the persisted session on startup.

        Remote sessions are re-verified while online; a rejected token clears
        the session. Offline, or for sessions that were established locally,
        the stored session is trusted as-is.
        """
        session = self.session_store.load()
        if session is None:
            logger.debug("No stored session")
            return None

        if not session.is_offline and self.monitor.is_online:
            try:
                session.user = self.directory.fetch_profile(session.token)
            except InvalidCredentials as e:
                logger.info(f"Stored session rejected by server, clearing: {e}")
                self._drop_session()
                return None
            except ServerUnavailable as e:
                self.monitor.report_failure(e)
                logger.warning(f"Could not verify stored session, keeping it: {e}")
            except RemoteError as e:
                logger.warning(f"Unexpected response verifying session, keeping it: {e}")
            else:
                self.session_store.save(session)

        self._current = session
        logger.info(f"Session restored for {session.user.email} ({session.source.value})")

        if self.monitor.is_online:
            self.last_background_sync = self.engine.sync_in_background(force=False)
        return session

    def logout(self) -> None:
        """Clear the local session first, then tell the server."""
        session = self._current or self.session_store.load()
        self._drop_session()

        if session is not None and not session.is_offline:
            self._notify_logout(session.token)
        logger.info("Logged out")

    @error_boundary(default_return=False)
    def _notify_logout(self, token: str) -> bool:
        self.directory.logout(token)
        return True

    def _drop_session(self) -> None:
        self._current = None
        self.session_store.clear()

    def _on_token_rejected(self, token: Optional[str]) -> None:
        """A sync pass was refused with this token; end the matching session."""
        session = self._current
        # Local tokens were never issued by the server
        if session is None or session.is_offline or session.token != token:
            return
        logger.warning(f"Session for {session.user.email} rejected by server, signing out")
        self._drop_session()

    # =========================================================================
    # REGISTRATION / PROFILE
    # =========================================================================

    def register(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        role: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Create an account on the server. Requires connectivity; nothing is
        queued and the user is not signed in.

        Raises:
            ValidationError: missing fields or malformed email
            ServerUnavailable: offline, or the server could not be reached
            ConflictError: the email is taken
        """
        validate_registration(name, email, password)

        if self.monitor.is_offline:
            raise ServerUnavailable(
                "Registration is not available in offline mode. "
                "Please check your internet connection and try again."
            )

        registration = Registration(
            name=name.strip(),
            email=email.strip().lower(),
            password=password,
            phone=phone,
            role=role,
        )
        try:
            result = self.directory.register(registration)
        except ServerUnavailable as e:
            self.monitor.report_failure(e)
            raise ServerUnavailable(
                "Registration requires server connection. Please try again when the server is available.",
                status_code=e.status_code,
                endpoint="auth/register",
            )

        self.monitor.report_success()
        logger.info(f"Registration successful - {result.user.email}")
        return result

    def get_profile(self) -> Optional[User]:
        """
        Current user's profile: from the server when possible, else the
        local copy.

        Raises:
            InvalidCredentials: the server rejected the token; the session
                has been cleared
        """
        session = self._current
        if session is None:
            return None

        if session.is_offline or not self.monitor.is_online:
            return self.store.get_by_id(session.user.id) or session.user

        try:
            user = self.directory.fetch_profile(session.token)
        except InvalidCredentials:
            logger.info(f"Session for {session.user.email} rejected by server, clearing")
            self._drop_session()
            raise
        except ServerUnavailable as e:
            self.monitor.report_failure(e)
            return self.store.get_by_id(session.user.id) or session.user

        session.user = user
        self.session_store.save(session)
        return user

    def get_auth_status(self) -> Dict[str, Any]:
        """Get authentication information for display."""
        session = self._current
        return {
            "is_authenticated": session is not None,
            "user": session.user.to_public_dict() if session else None,
            "source": session.source.value if session else None,
            "is_offline_session": bool(session and session.is_offline),
            "is_online": self.monitor.is_online,
            "has_token": bool(self.session_store.get_token()),
        }
