# =============================================================================
# pos_core/offline/session_store.py
# Persisted session and sync cursor
# =============================================================================

from __future__ import annotations
from typing import Optional

from pos_core.errors import LocalStorageError
from pos_core.logging import get_logger
from pos_core.offline.local_store import LocalStore
from pos_core.offline.models import Session, SyncCursor, format_timestamp, parse_timestamp

logger = get_logger(__name__)


class SessionStore:
    """
    Key/value persistence for the single device session and the sync cursor.

    The token and the user JSON live under fixed keys; the last sync time
    under a separate one.
    """

    AUTH_TOKEN_KEY = "auth_token"
    AUTH_USER_KEY = "auth_user"
    AUTH_META_KEY = "auth_session"
    LAST_SYNC_KEY = "last_supabase_sync"

    def __init__(self, store: LocalStore):
        self._store = store

    def save(self, session: Session) -> None:
        """Persist the session, replacing any previous one."""
        data = session.to_dict()
        self._store.set_settings({
            self.AUTH_TOKEN_KEY: session.token,
            self.AUTH_USER_KEY: data["user"],
            self.AUTH_META_KEY: {
                "source": data["source"],
                "established_at": data["established_at"],
            },
        })
        logger.debug(f"Session stored for {session.user.email} ({session.source.value})")

    def load(self) -> Optional[Session]:
        """Read the persisted session; unreadable data is discarded."""
        token = self._store.get_setting(self.AUTH_TOKEN_KEY)
        user = self._store.get_setting(self.AUTH_USER_KEY)
        if not token or not user:
            return None

        meta = self._store.get_setting(self.AUTH_META_KEY) or {}
        try:
            return Session.from_dict({
                "token": token,
                "user": user,
                "source": meta.get("source", "remote"),
                "established_at": meta.get("established_at"),
            })
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Discarding unreadable stored session: {e}")
            self.clear()
            return None

    def clear(self) -> None:
        self._store.delete_settings(self.AUTH_TOKEN_KEY, self.AUTH_USER_KEY, self.AUTH_META_KEY)
        logger.debug("Stored session cleared")

    def get_token(self) -> Optional[str]:
        """Stored token, or None. Never raises."""
        try:
            return self._store.get_setting(self.AUTH_TOKEN_KEY)
        except LocalStorageError as e:
            logger.error(f"Failed to read stored token: {e}")
            return None

    # =========================================================================
    # SYNC CURSOR
    # =========================================================================

    def load_cursor(self) -> SyncCursor:
        return SyncCursor(last_sync_at=parse_timestamp(self._store.get_setting(self.LAST_SYNC_KEY)))

    def save_cursor(self, cursor: SyncCursor) -> None:
        self._store.set_setting(self.LAST_SYNC_KEY, format_timestamp(cursor.last_sync_at))
