"""
Supabase Directory
Reads the `users` table directly with the Supabase client
"""
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, ClientOptions, create_client

from pos_core.errors import (
    ConfigurationError,
    ConflictError,
    InvalidCredentials,
    RemoteError,
    ServerUnavailable,
    ValidationError,
)
from pos_core.logging import get_logger
from pos_core.offline.local_store import hash_secret, verify_secret
from pos_core.offline.models import (
    HealthReport,
    RegistrationResult,
    RemoteLogin,
    Role,
    User,
    UserFilters,
    format_timestamp,
    utc_now,
)

from .base_directory import DirectoryConfig, Registration, RemoteDirectory

logger = get_logger(__name__)


TOKEN_PREFIX = "sb_"
UNIQUE_VIOLATION = "23505"


class SupabaseDirectory(RemoteDirectory):
    """
    Remote directory that queries Supabase without the middleware.

    Tokens issued here are opaque `sb_<user id>_<ms>` strings; the user id is
    recovered from them by fetch_profile.
    """

    TABLE = "users"
    BATCH_SIZE = 1000

    def __init__(self, config: DirectoryConfig, client: Optional[Client] = None):
        super().__init__(config)
        if client is None:
            if not (config.base_url and config.api_key):
                raise ConfigurationError(
                    "Supabase directory requires a project url and key",
                    config_key="supabase",
                )
            self.client = self._connect(config.request_timeout)
            self.health_client = self._connect(config.health_timeout)
        else:
            self.client = self.health_client = client

    def _connect(self, timeout: float) -> Client:
        options = ClientOptions(postgrest_client_timeout=timeout)
        return create_client(self.config.base_url, self.config.api_key, options=options)

    def _execute(self, operation: str, build: Callable[[], Any]) -> List[Dict[str, Any]]:
        """Run a query and map transport and PostgREST failures."""
        try:
            response = build().execute()
        except httpx.TimeoutException as e:
            raise ServerUnavailable(f"Supabase {operation} timed out", endpoint=operation, details={"cause": str(e)})
        except httpx.HTTPError as e:
            raise ServerUnavailable(f"Cannot reach Supabase: {e}", endpoint=operation)
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise ConflictError(endpoint=operation)
            raise RemoteError(f"Supabase {operation} failed: {e.message}", endpoint=operation)
        return response.data or []

    def _table(self, client: Optional[Client] = None):
        return (client or self.client).table(self.TABLE)

    def _issue_token(self, user: User) -> str:
        return f"{TOKEN_PREFIX}{user.id}_{int(time.time() * 1000)}"

    # =========================================================================
    # DIRECTORY OPERATIONS
    # =========================================================================

    def login(self, email: str, secret: str) -> RemoteLogin:
        rows = self._execute(
            "login",
            lambda: self._table().select("*").eq("email", email.strip().lower()).eq("is_active", True).limit(1),
        )
        if not rows:
            raise InvalidCredentials(source="remote")

        user = User.from_remote(rows[0])
        if not verify_secret(secret.strip(), user.credential_secret):
            raise InvalidCredentials(source="remote")

        user.last_login_at = utc_now()
        self._execute(
            "login",
            lambda: self._table().update({"last_login": format_timestamp(user.last_login_at)}).eq("id", user.id),
        )

        logger.info(f"Supabase login for {user.email}")
        return RemoteLogin(user=user, token=self._issue_token(user), source="supabase")

    def fetch_profile(self, token: str) -> User:
        if not token or not token.startswith(TOKEN_PREFIX) or "_" not in token[len(TOKEN_PREFIX):]:
            raise InvalidCredentials("Invalid or expired token", source="remote")

        user_id = token[len(TOKEN_PREFIX):].rsplit("_", 1)[0]
        rows = self._execute(
            "fetch_profile",
            lambda: self._table().select("*").eq("id", user_id).eq("is_active", True).limit(1),
        )
        if not rows:
            raise InvalidCredentials("User for this session no longer exists", source="remote")
        return User.from_remote(rows[0])

    def list_users(self, token: Optional[str] = None, filters: Optional[UserFilters] = None) -> List[User]:
        """Fetch all matching users, paging past the 1000 row response cap."""
        filters = filters or UserFilters()
        rows: List[Dict[str, Any]] = []
        offset = 0

        while True:
            batch_size = self.BATCH_SIZE
            if filters.limit:
                batch_size = min(batch_size, filters.limit - len(rows))
                if batch_size <= 0:
                    break

            def build(offset=offset, batch_size=batch_size):
                query = self._table().select("*")
                if filters.store_id:
                    query = query.eq("store_id", filters.store_id)
                if filters.role:
                    query = query.eq("role", Role.parse(filters.role).value)
                if filters.is_active is not None:
                    query = query.eq("is_active", filters.is_active)
                return query.order("created_at", desc=True).range(offset, offset + batch_size - 1)

            batch = self._execute("list_users", build)
            rows.extend(batch)
            if len(batch) < batch_size:
                break
            offset += batch_size

        users = self.users_from_payload(rows)
        logger.info(f"Fetched {len(users)} users from Supabase")
        return users

    def register(self, registration: Registration) -> RegistrationResult:
        if not (registration.name and registration.email and registration.password):
            raise ValidationError("Name, email, and password are required")

        now = format_timestamp(utc_now())
        record = {
            "name": registration.name.strip(),
            "email": registration.email.strip().lower(),
            "password_hash": hash_secret(registration.password),
            "role": Role.parse(registration.role or Role.CASHIER).value,
            "phone": registration.phone,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        rows = self._execute("register", lambda: self._table().insert(record))
        if not rows:
            raise RemoteError("Registration response did not include a user", endpoint="register")

        user = User.from_remote(rows[0])
        return RegistrationResult(user=user, token=self._issue_token(user), source="supabase")

    def logout(self, token: Optional[str]) -> None:
        # Tokens are not stored server side
        logger.debug("Supabase logout is local only")

    def health_check(self) -> HealthReport:
        try:
            self._execute("health_check", lambda: self._table(self.health_client).select("id").limit(1))
        except RemoteError as e:
            logger.warning(f"Supabase reachable but query failed: {e}")
            return HealthReport(status="unhealthy", database_connected=False, timestamp=utc_now())

        return HealthReport(
            status="healthy",
            database_connected=True,
            timestamp=utc_now(),
            server={"provider": "supabase"},
        )
