# =============================================================================
# pos_core/offline/local_store.py
# Local SQLite User Store for Offline Operations
# =============================================================================
"""
LocalStore - SQLite copy of the user directory; the source of truth offline.

Features:
- Idempotent schema creation and demo seeding
- Upsert keyed by user id (remote wins)
- Batched upserts in a single transaction with per-record failure accounting
- Key/value settings table for session and sync bookkeeping
- One shared connection per process, serialized by a lock
"""

from __future__ import annotations
import hmac
import json
import secrets
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import bcrypt

from pos_core.errors import LocalStorageError, ValidationError
from pos_core.logging import get_logger
from pos_core.offline.models import (
    BulkUpsertResult,
    Role,
    User,
    format_timestamp,
    utc_now,
)

logger = get_logger(__name__)


BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def verify_secret(secret: str, stored: str) -> bool:
    """
    Check a submitted secret against a stored credential.

    Stored values may be bcrypt hashes or, for the demo seed, plaintext.
    """
    if not secret or not stored:
        return False
    if stored.startswith(BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(secret.encode(), stored.encode())
        except ValueError:
            logger.warning("Stored credential is not a valid bcrypt hash")
            return False
    return hmac.compare_digest(secret.encode(), stored.encode())


def hash_secret(secret: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(secret.encode(), bcrypt.gensalt()).decode()


def _unusable_secret() -> str:
    # Never equal to a submitted password and never a bcrypt hash
    return "!" + secrets.token_hex(16)


class LocalStore:
    """
    Local SQLite database holding the reconciled `users` table.

    All writes to `users` go through this class so the id-upsert and unique
    email invariants hold.
    """

    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "pos_users.db"

    # Number of per-record errors kept in a bulk upsert result
    MAX_REPORTED_ERRORS = 5

    SCHEMA = {
        "users": """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL COLLATE NOCASE UNIQUE,
                credential_secret TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'cashier',
                phone TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                last_login_at TEXT,
                created_at TEXT DEFAULT (datetime('now')),
                updated_at TEXT DEFAULT (datetime('now'))
            )
        """,
        "idx_users_email": """
            CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT (datetime('now'))
            )
        """,
    }

    DEMO_USERS = [
        {
            "id": "demo-admin-1",
            "name": "Demo Admin",
            "email": "admin@techcorp.com",
            "credential_secret": "password123",
            "role": Role.SUPER_ADMIN,
            "phone": "+1-555-0100",
        },
        {
            "id": "demo-manager-1",
            "name": "Demo Manager",
            "email": "manager@techcorp.com",
            "credential_secret": "password123",
            "role": Role.MANAGER,
            "phone": "+1-555-0101",
        },
        {
            "id": "demo-cashier-1",
            "name": "Demo Cashier",
            "email": "cashier@techcorp.com",
            "credential_secret": "password123",
            "role": Role.CASHIER,
            "phone": "+1-555-0102",
        },
    ]

    _UPSERT_SQL = """
        INSERT INTO users (
            id, name, email, credential_secret, role, phone,
            is_active, last_login_at, created_at, updated_at
        )
        VALUES (
            :id, :name, :email, :credential_secret, :role, :phone,
            :is_active, :last_login_at, :created_at, :updated_at
        )
        ON CONFLICT(id) DO UPDATE SET
            name = excluded.name,
            email = excluded.email,
            credential_secret = excluded.credential_secret,
            role = excluded.role,
            phone = excluded.phone,
            is_active = excluded.is_active,
            last_login_at = excluded.last_login_at,
            created_at = excluded.created_at,
            updated_at = excluded.updated_at
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None, seed_demo_users: bool = True):
        """
        Args:
            db_path: Path to the SQLite file, or ":memory:"
            seed_demo_users: Seed the demo accounts into an empty table
        """
        self.db_path = db_path or self.DEFAULT_DB_PATH
        self.seed_demo_users = seed_demo_users
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _get_connection(self) -> sqlite3.Connection:
        """Open the shared connection on first use."""
        if self._connection is None:
            if str(self.db_path) != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            except sqlite3.Error as e:
                raise LocalStorageError(f"Cannot open local database: {e}", operation="connect")
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _query(self, sql: str, params: Union[List, Mapping, None] = None) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self._get_connection().execute(sql, params or []).fetchall()
            except sqlite3.Error as e:
                raise LocalStorageError(f"Local query failed: {e}", operation="query")

    # =========================================================================
    # SCHEMA & SEED
    # =========================================================================

    def initialize(self) -> None:
        """Create the schema and seed demo users. Safe to call repeatedly."""
        with self._lock:
            try:
                with self.transaction() as conn:
                    for name, statement in self.SCHEMA.items():
                        conn.execute(statement)
                        logger.debug(f"Created/verified: {name}")
            except sqlite3.Error as e:
                raise LocalStorageError(f"Schema creation failed: {e}", operation="initialize")

            if self.seed_demo_users:
                self._seed_demo_users()

            self._initialized = True
        logger.info(f"Local store initialized at: {self.db_path}")

    def _seed_demo_users(self) -> int:
        """Insert the demo accounts if the users table is empty."""
        if self._query("SELECT id FROM users LIMIT 1"):
            logger.debug("Users already exist, skipping seed")
            return 0

        now = utc_now()
        with self.transaction() as conn:
            for demo in self.DEMO_USERS:
                user = User(**demo, is_active=True, created_at=now, updated_at=now)
                conn.execute(self._UPSERT_SQL, user.to_row())

        logger.info(f"Seeded {len(self.DEMO_USERS)} demo users")
        return len(self.DEMO_USERS)

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    def authenticate(self, email: str, secret: str) -> Optional[User]:
        """
        Match an active user by email (case-insensitive) and secret.

        Returns:
            The user with `last_login_at` updated, or None when nothing matches
        """
        rows = self._query(
            "SELECT * FROM users WHERE email = ? AND is_active = 1",
            [(email or "").strip().lower()],
        )
        if not rows:
            return None

        user = User.from_row(rows[0])
        if not verify_secret(secret or "", user.credential_secret):
            return None

        user.last_login_at = utc_now()
        try:
            with self.transaction() as conn:
                conn.execute(
                    "UPDATE users SET last_login_at = ? WHERE id = ?",
                    [format_timestamp(user.last_login_at), user.id],
                )
        except sqlite3.Error as e:
            raise LocalStorageError(f"Could not record login: {e}", operation="authenticate")

        return user

    # =========================================================================
    # WRITES
    # =========================================================================

    def _prepare(self, conn: sqlite3.Connection, user: User) -> Dict[str, Any]:
        """Validate and fill defaults for one upsert."""
        user.validate()
        now = utc_now()
        row = user.to_row()

        if not row["credential_secret"]:
            existing = conn.execute(
                "SELECT credential_secret FROM users WHERE id = ?", [user.id]
            ).fetchone()
            row["credential_secret"] = existing["credential_secret"] if existing else _unusable_secret()
        row["created_at"] = row["created_at"] or format_timestamp(now)
        row["updated_at"] = row["updated_at"] or format_timestamp(now)
        return row

    def upsert(self, user: User) -> User:
        """
        Insert or overwrite the user with this id.

        Raises:
            ValidationError: id, email or name is empty
            LocalStorageError: the database rejected the write
        """
        try:
            with self.transaction() as conn:
                row = self._prepare(conn, user)
                conn.execute(self._UPSERT_SQL, row)
        except sqlite3.IntegrityError as e:
            raise ValidationError(
                f"Email {user.email} already belongs to another user",
                field="email",
                details={"user": user.email, "cause": str(e)},
            )
        except sqlite3.Error as e:
            raise LocalStorageError(f"Upsert failed: {e}", operation="upsert")

        logger.debug(f"Upserted user: {user.email}")
        return User.from_row(row)

    def bulk_upsert(self, users: Iterable[User]) -> BulkUpsertResult:
        """
        Upsert many users in one transaction.

        A bad record is counted and skipped; the batch continues. Any other
        database failure rolls back the whole batch and propagates.
        """
        users = list(users)
        result = BulkUpsertResult(total=len(users))
        if not users:
            logger.info("No users to upsert")
            return result

        logger.info(f"Upserting {len(users)} users...")
        try:
            with self.transaction() as conn:
                for user in users:
                    try:
                        conn.execute(self._UPSERT_SQL, self._prepare(conn, user))
                        result.synced += 1
                    except (ValidationError, sqlite3.IntegrityError) as e:
                        result.failed += 1
                        message = e.message if isinstance(e, ValidationError) else str(e)
                        if len(result.errors) < self.MAX_REPORTED_ERRORS:
                            result.errors.append({
                                "user": user.email or user.id or "<unknown>",
                                "error": message,
                            })
                        logger.warning(f"Failed to upsert user {user.email or user.id}: {message}")
        except sqlite3.Error as e:
            logger.error(f"Bulk upsert rolled back: {e}")
            raise LocalStorageError(f"Bulk upsert failed: {e}", operation="bulk_upsert")

        logger.info(f"Bulk upsert complete: {result.synced} synced, {result.failed} failed")
        return result

    def set_active(self, user_id: str, is_active: bool) -> Optional[User]:
        """Activate or deactivate a user. Returns None if the id is unknown."""
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "UPDATE users SET is_active = ?, updated_at = ? WHERE id = ?",
                    [1 if is_active else 0, format_timestamp(utc_now()), user_id],
                )
        except sqlite3.Error as e:
            raise LocalStorageError(f"Could not update user: {e}", operation="set_active")

        if cursor.rowcount == 0:
            return None
        logger.info(f"User {user_id} {'activated' if is_active else 'deactivated'}")
        return self.get_by_id(user_id)

    def clear_all_users(self) -> int:
        """Delete every user row. Maintenance and tests only."""
        with self.transaction() as conn:
            count = conn.execute("DELETE FROM users").rowcount
        logger.info(f"Cleared {count} users")
        return count

    # =========================================================================
    # READS
    # =========================================================================

    def get_all(self) -> List[User]:
        rows = self._query("SELECT * FROM users ORDER BY created_at DESC, id")
        return [User.from_row(row) for row in rows]

    def get_by_id(self, user_id: str) -> Optional[User]:
        rows = self._query("SELECT * FROM users WHERE id = ?", [user_id])
        return User.from_row(rows[0]) if rows else None

    def get_by_email(self, email: str) -> Optional[User]:
        rows = self._query("SELECT * FROM users WHERE email = ?", [(email or "").strip().lower()])
        return User.from_row(rows[0]) if rows else None

    def search(self, term: str) -> List[User]:
        """Case-insensitive substring match on name, email and phone."""
        pattern = f"%{(term or '').strip().lower()}%"
        rows = self._query(
            """
            SELECT * FROM users
            WHERE lower(name) LIKE ? OR lower(email) LIKE ? OR lower(coalesce(phone, '')) LIKE ?
            ORDER BY name
            """,
            [pattern, pattern, pattern],
        )
        return [User.from_row(row) for row in rows]

    def get_stats(self) -> Dict[str, Any]:
        """User counts for status displays."""
        total = self._query("SELECT COUNT(*) AS count FROM users")[0]["count"]
        active = self._query("SELECT COUNT(*) AS count FROM users WHERE is_active = 1")[0]["count"]
        by_role = {role.value: 0 for role in Role}
        for row in self._query("SELECT role, COUNT(*) AS count FROM users GROUP BY role"):
            by_role[row["role"]] = row["count"]
        return {
            "users": total,
            "active_users": active,
            "by_role": by_role,
            "last_updated": format_timestamp(utc_now()),
        }

    def check_health(self) -> Dict[str, Any]:
        """Probe the database; reports problems instead of raising."""
        try:
            version = self._query("SELECT sqlite_version() AS version")[0]["version"]
            count = self._query("SELECT COUNT(*) AS count FROM users")[0]["count"]
            return {"healthy": True, "version": version, "user_count": count}
        except LocalStorageError as e:
            logger.error(f"Local database health check failed: {e}")
            return {"healthy": False, "error": e.message}

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        result = self._query("SELECT value FROM app_settings WHERE key = ?", [key])
        if result:
            try:
                return json.loads(result[0]["value"])
            except (TypeError, json.JSONDecodeError):
                return result[0]["value"]
        return default

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        self.set_settings({key: value})

    def set_settings(self, values: Mapping[str, Any]) -> None:
        """Set several app settings atomically."""
        now = format_timestamp(utc_now())
        try:
            with self.transaction() as conn:
                for key, value in values.items():
                    value_str = json.dumps(value)
                    conn.execute(
                        """
                        INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                        VALUES (?, ?, ?)
                        """,
                        [key, value_str, now],
                    )
        except sqlite3.Error as e:
            raise LocalStorageError(f"Could not save settings: {e}", operation="set_settings")

    def delete_settings(self, *keys: str) -> None:
        """Remove app settings."""
        try:
            with self.transaction() as conn:
                conn.executemany("DELETE FROM app_settings WHERE key = ?", [[key] for key in keys])
        except sqlite3.Error as e:
            raise LocalStorageError(f"Could not delete settings: {e}", operation="delete_settings")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                self._initialized = False
        logger.debug("Local store closed")
