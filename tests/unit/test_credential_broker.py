# =============================================================================
# tests/unit/test_credential_broker.py
# Unit Tests for CredentialBroker
# =============================================================================

import threading
from unittest.mock import MagicMock

import pytest

from pos_core.errors import (
    ConflictError,
    InvalidCredentials,
    OperationInProgressError,
    RemoteError,
    ServerUnavailable,
    ValidationError,
)
from pos_core.offline import Session, SessionSource, User
from pos_core.auth import OFFLINE_TOKEN_PREFIX


class TestLoginValidation:
    """Input is rejected before any I/O"""

    @pytest.mark.parametrize("email,secret", [
        ("", "password123"),
        ("admin@techcorp.com", ""),
        ("not-an-email", "password123"),
        ("admin@techcorp", "password123"),
        ("ad min@techcorp.com", "password123"),
    ])
    def test_invalid_input(self, broker, directory, email, secret):
        with pytest.raises(ValidationError):
            broker.login(email, secret)

        assert directory.calls == []


class TestOnlineLogin:
    """Test the remote path"""

    def test_success_persists_remote_session(self, broker, session_store):
        session = broker.login("admin@techcorp.com", "password123")

        assert session.source == SessionSource.REMOTE
        assert session.token.startswith("mock_demo-admin-1_")
        assert session_store.load().token == session.token
        assert broker.is_authenticated

    def test_success_triggers_forced_sync(self, broker, store, engine, clock):
        engine.sync()
        clock.advance(minutes=1)

        broker.login("admin@techcorp.com", "password123")
        result = broker.last_background_sync.result(timeout=5)

        assert result.synced is True
        assert store.get_by_id("demo-cashier-2") is not None

    def test_background_sync_failure_does_not_fail_login(self, broker, directory):
        directory.fail_next("list_users", ServerUnavailable("down"))

        session = broker.login("admin@techcorp.com", "password123")

        assert isinstance(broker.last_background_sync.exception(timeout=5), ServerUnavailable)
        assert session.source == SessionSource.REMOTE

    def test_401_does_not_fall_back(self, broker, directory, store):
        """A reachable server rejecting credentials is authoritative"""
        directory.fail_next("login", InvalidCredentials(source="remote"))

        with pytest.raises(InvalidCredentials):
            broker.login("admin@techcorp.com", "password123")

        assert store.get_by_id("demo-admin-1").last_login_at is None
        assert not broker.is_authenticated

    def test_other_remote_errors_do_not_fall_back(self, broker, directory):
        directory.fail_next("login", RemoteError("teapot", status_code=418))

        with pytest.raises(RemoteError):
            broker.login("admin@techcorp.com", "password123")

    def test_concurrent_login_is_rejected(self, broker, directory):
        entered = threading.Event()
        release = threading.Event()
        original = directory.login

        def slow_login(email, secret):
            entered.set()
            release.wait(timeout=5)
            return original(email, secret)

        directory.login = slow_login
        worker = threading.Thread(target=broker.login, args=("admin@techcorp.com", "password123"))
        worker.start()
        try:
            assert entered.wait(timeout=5)
            with pytest.raises(OperationInProgressError):
                broker.login("manager@techcorp.com", "password123")
        finally:
            release.set()
            worker.join(timeout=5)


class TestOfflineFallback:
    """Test the local path"""

    @pytest.mark.parametrize("error", [
        ServerUnavailable("Request to auth/login timed out"),
        ServerUnavailable("Server error (500)", status_code=500),
        ServerUnavailable("Network Error"),
    ])
    def test_connectivity_failure_falls_back(self, broker, directory, monitor, error):
        directory.fail_next("login", error)

        session = broker.login("admin@techcorp.com", "password123")

        assert session.source == SessionSource.LOCAL
        assert session.token.startswith(OFFLINE_TOKEN_PREFIX)
        assert session.user.id == "demo-admin-1"
        assert monitor.is_offline

    def test_fallback_without_match(self, broker, directory):
        directory.online = False

        with pytest.raises(InvalidCredentials) as exc:
            broker.login("admin@techcorp.com", "wrong")

        assert exc.value.details["source"] == "local"
        assert not broker.is_authenticated

    def test_offline_login_does_not_sync(self, broker, directory):
        directory.online = False

        broker.login("cashier@techcorp.com", "password123")

        assert broker.last_background_sync is None
        assert directory.call_count("list_users") == 0


class TestRestoreSession:
    """Test startup session restore"""

    def _store_session(self, session_store, source, token="mock_token"):
        user = User(id="demo-admin-1", name="Demo Admin", email="admin@techcorp.com", role="super_admin")
        session_store.save(Session(token=token, user=user, source=source))

    def test_nothing_stored(self, broker):
        assert broker.restore_session() is None

    def test_valid_remote_session_is_reverified(self, broker, directory):
        token = directory.login("admin@techcorp.com", "password123").token
        directory.calls.clear()
        self._store_session(broker.session_store, SessionSource.REMOTE, token)

        session = broker.restore_session()

        assert session is not None
        assert directory.call_count("fetch_profile") == 1
        broker.last_background_sync.result(timeout=5)

    def test_rejected_token_clears_session(self, broker, session_store):
        self._store_session(session_store, SessionSource.REMOTE, "revoked")

        assert broker.restore_session() is None
        assert session_store.load() is None

    def test_offline_trusts_stored_session(self, broker, session_store, directory, monitor):
        self._store_session(session_store, SessionSource.REMOTE, "revoked")
        monitor.force_offline()

        session = broker.restore_session()

        assert session.token == "revoked"
        assert directory.call_count("fetch_profile") == 0

    def test_local_session_is_never_upgraded(self, broker, session_store, directory):
        self._store_session(session_store, SessionSource.LOCAL, "offline_token_1")

        session = broker.restore_session()

        assert session.source == SessionSource.LOCAL
        assert directory.call_count("fetch_profile") == 0

    def test_unreachable_keeps_session(self, broker, session_store, directory, monitor):
        self._store_session(session_store, SessionSource.REMOTE, "mock_token")
        directory.fail_next("fetch_profile", ServerUnavailable("timed out"))

        session = broker.restore_session()

        assert session is not None
        assert monitor.is_offline


class TestTokenRejection:
    """A token the server stops accepting ends the session"""

    def expired(self):
        return InvalidCredentials("Invalid or expired token", source="remote")

    def test_profile_rejection_clears_session(self, broker, session_store, directory):
        broker.login("admin@techcorp.com", "password123")
        broker.last_background_sync.result(timeout=5)
        directory.fail_next("fetch_profile", self.expired())

        with pytest.raises(InvalidCredentials):
            broker.get_profile()

        assert session_store.load() is None
        assert not broker.is_authenticated

    def test_sync_rejection_clears_session(self, broker, engine, session_store, directory):
        broker.login("admin@techcorp.com", "password123")
        broker.last_background_sync.result(timeout=5)
        directory.fail_next("list_users", self.expired())

        future = engine.sync_in_background(force=True)

        assert isinstance(future.exception(timeout=5), InvalidCredentials)
        assert session_store.load() is None
        assert not broker.is_authenticated

    def test_rejection_during_login_sync(self, broker, session_store, directory):
        directory.fail_next("list_users", self.expired())

        broker.login("admin@techcorp.com", "password123")

        assert isinstance(broker.last_background_sync.exception(timeout=5), InvalidCredentials)
        assert session_store.load() is None
        assert not broker.is_authenticated

    def test_local_session_survives_rejected_sync(self, broker, engine, session_store, directory):
        directory.online = False
        broker.login("admin@techcorp.com", "password123")
        directory.online = True
        directory.fail_next("list_users", self.expired())

        with pytest.raises(InvalidCredentials):
            engine.forced_sync()

        assert broker.is_authenticated
        assert session_store.load() is not None


class TestSyncScheduling:
    """Login schedules exactly one pass"""

    def test_login_after_outage_syncs_once(self, broker, engine, monitor, directory):
        monitor.force_offline()

        broker.login("admin@techcorp.com", "password123")
        broker.last_background_sync.result(timeout=5)
        engine.shutdown(wait=True)

        assert monitor.is_online
        assert directory.call_count("list_users") == 1


class TestLogout:
    """Test logout ordering"""

    def test_clears_before_notifying(self, broker, session_store, directory):
        broker.login("admin@techcorp.com", "password123")
        broker.last_background_sync.result(timeout=5)

        stored_during_notify = []
        directory.logout = MagicMock(side_effect=lambda token: stored_during_notify.append(session_store.load()))

        broker.logout()

        directory.logout.assert_called_once()
        assert stored_during_notify == [None]
        assert not broker.is_authenticated

    def test_notification_failure_is_swallowed(self, broker, session_store, directory):
        broker.login("admin@techcorp.com", "password123")
        broker.last_background_sync.result(timeout=5)
        directory.fail_next("logout", ServerUnavailable("down"))

        broker.logout()

        assert session_store.load() is None

    def test_local_session_skips_server(self, broker, directory):
        directory.online = False
        broker.login("admin@techcorp.com", "password123")
        directory.online = True

        broker.logout()

        assert directory.call_count("logout") == 0


class TestRegister:
    """Test account creation"""

    def test_success_does_not_sign_in(self, broker, directory):
        result = broker.register("New Hire", "hire@techcorp.com", "welcome1", phone="+1-555-0199")

        assert result.user.email == "hire@techcorp.com"
        assert result.message == "Account created successfully! Please sign in to continue."
        assert not broker.is_authenticated

    def test_missing_fields(self, broker, directory):
        with pytest.raises(ValidationError):
            broker.register("", "hire@techcorp.com", "welcome1")
        assert directory.calls == []

    def test_refused_when_offline(self, broker, directory, monitor):
        monitor.force_offline()

        with pytest.raises(ServerUnavailable) as exc:
            broker.register("New Hire", "hire@techcorp.com", "welcome1")

        assert "offline mode" in exc.value.message
        assert directory.call_count("register") == 0

    def test_connectivity_failure(self, broker, directory):
        directory.fail_next("register", ServerUnavailable("timed out"))

        with pytest.raises(ServerUnavailable) as exc:
            broker.register("New Hire", "hire@techcorp.com", "welcome1")

        assert "requires server connection" in exc.value.message

    def test_duplicate_email(self, broker):
        with pytest.raises(ConflictError):
            broker.register("Another Admin", "admin@techcorp.com", "welcome1")


class TestProfileAndStatus:
    """Test profile reads and status display"""

    def test_profile_when_signed_out(self, broker):
        assert broker.get_profile() is None

    def test_remote_profile(self, broker, directory):
        broker.login("manager@techcorp.com", "password123")
        broker.last_background_sync.result(timeout=5)
        directory.users["demo-manager-1"].name = "Floor Manager"

        assert broker.get_profile().name == "Floor Manager"
        assert broker.session_store.load().user.name == "Floor Manager"

    def test_local_profile_when_offline(self, broker, directory):
        directory.online = False
        broker.login("manager@techcorp.com", "password123")

        profile = broker.get_profile()

        assert profile.id == "demo-manager-1"
        assert directory.call_count("fetch_profile") == 0

    def test_auth_status(self, broker, directory):
        directory.online = False
        broker.login("cashier@techcorp.com", "password123")

        status = broker.get_auth_status()

        assert status["is_authenticated"] is True
        assert status["source"] == "local"
        assert status["is_offline_session"] is True
        assert status["is_online"] is False
        assert "credential_secret" not in status["user"]
