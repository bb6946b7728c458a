# =============================================================================
# pos_core/offline/models.py
# Typed records shared by the local store, remote directory and sessions
# =============================================================================
"""
Every user record crossing a boundary is normalized here exactly once:

    remote JSON  --User.from_remote-->  User  --User.to_row-->  SQLite row
    SQLite row   --User.from_row---->   User
    session JSON --User.from_public_dict--> User (no credential secret)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pos_core.errors import SyncPartialFailure, ValidationError
from pos_core.logging import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse ISO-8601 text (with 'Z' or offset) or SQLite datetime text.

    Naive values are taken as UTC. Unparseable values return None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 text."""
    return value.isoformat() if value else None


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "t")
    return bool(value)


def _as_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


class Role(str, Enum):
    """Staff roles, lowest to highest privilege."""
    CASHIER = "cashier"
    MANAGER = "manager"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def parse(cls, value: Any) -> Role:
        """Parse a role name; unknown names fall back to cashier."""
        if isinstance(value, Role):
            return value
        text = _as_text(value).lower().replace("-", "_").replace(" ", "_")
        aliases = {"admin": cls.SUPER_ADMIN, "superadmin": cls.SUPER_ADMIN}
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            if text:
                logger.warning(f"Unknown role '{value}', defaulting to cashier")
            return cls.CASHIER


class SessionSource(str, Enum):
    """Where a session was established."""
    REMOTE = "remote"
    LOCAL = "local"


@dataclass
class User:
    """The reconciled identity record. `id` is the reconciliation key."""
    id: str
    name: str
    email: str
    credential_secret: str = ""
    role: Role = Role.CASHIER
    phone: Optional[str] = None
    is_active: bool = True
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.id = _as_text(self.id)
        self.name = _as_text(self.name)
        self.email = _as_text(self.email).lower()
        self.role = Role.parse(self.role)

    def validate(self) -> None:
        """Raise ValidationError if a required field is empty."""
        missing = [name for name in ("id", "email", "name") if not getattr(self, name)]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                missing=missing,
                details={"user": self.email or self.id or "<unknown>"},
            )

    # ------------------------------------------------------------------
    # Boundary mappings
    # ------------------------------------------------------------------

    @classmethod
    def from_remote(cls, payload: Mapping[str, Any]) -> User:
        """
        Map a remote JSON object to a User.

        Field aliases are resolved here: role/position, password/password_hash,
        last_login/last_login_at. Missing fields become empty values rather
        than errors so each record can be validated individually on upsert.
        """
        secret = payload.get("credential_secret") or payload.get("password_hash") or payload.get("password")
        phone = payload.get("phone")
        return cls(
            id=payload.get("id"),
            name=payload.get("name"),
            email=payload.get("email"),
            credential_secret=_as_text(secret),
            role=payload.get("role") or payload.get("position"),
            phone=_as_text(phone) or None,
            is_active=_as_bool(payload.get("is_active")),
            last_login_at=parse_timestamp(payload.get("last_login_at") or payload.get("last_login")),
            created_at=parse_timestamp(payload.get("created_at")),
            updated_at=parse_timestamp(payload.get("updated_at")),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> User:
        """Map a `users` table row to a User."""
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            credential_secret=row["credential_secret"] or "",
            role=row["role"],
            phone=row["phone"],
            is_active=bool(row["is_active"]),
            last_login_at=parse_timestamp(row["last_login_at"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    def to_row(self) -> Dict[str, Any]:
        """Map to `users` table column values."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "credential_secret": self.credential_secret,
            "role": self.role.value,
            "phone": self.phone,
            "is_active": 1 if self.is_active else 0,
            "last_login_at": format_timestamp(self.last_login_at),
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-safe copy without the credential secret."""
        row = self.to_row()
        row.pop("credential_secret")
        row["is_active"] = self.is_active
        return row

    @classmethod
    def from_public_dict(cls, data: Mapping[str, Any]) -> User:
        """Inverse of to_public_dict."""
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            email=data.get("email"),
            role=data.get("role"),
            phone=data.get("phone"),
            is_active=_as_bool(data.get("is_active")),
            last_login_at=parse_timestamp(data.get("last_login_at")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass
class Session:
    """The locally persisted proof of authentication."""
    token: str
    user: User
    source: SessionSource
    established_at: datetime = field(default_factory=utc_now)

    @property
    def is_offline(self) -> bool:
        return self.source == SessionSource.LOCAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "user": self.user.to_public_dict(),
            "source": self.source.value,
            "established_at": format_timestamp(self.established_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Session:
        return cls(
            token=str(data["token"]),
            user=User.from_public_dict(data["user"]),
            source=SessionSource(data.get("source", SessionSource.REMOTE.value)),
            established_at=parse_timestamp(data.get("established_at")) or utc_now(),
        )


@dataclass
class SyncCursor:
    """Bookkeeping for reconciliation cadence."""
    last_sync_at: Optional[datetime] = None

    def is_fresh(self, now: datetime, interval: timedelta) -> bool:
        """True if the last sync happened less than `interval` before `now`."""
        if self.last_sync_at is None:
            return False
        return now - self.last_sync_at < interval


@dataclass
class BulkUpsertResult:
    """Outcome of LocalStore.bulk_upsert."""
    synced: int = 0
    failed: int = 0
    total: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class SyncCounts:
    succeeded: int
    failed: int
    total: int


@dataclass
class SyncResult:
    """Outcome of one reconciliation pass."""
    synced: bool
    reason: Optional[str] = None
    counts: Optional[SyncCounts] = None
    errors: List[Dict[str, str]] = field(default_factory=list)
    sync_time: Optional[datetime] = None

    @property
    def has_failures(self) -> bool:
        return bool(self.counts and self.counts.failed)

    def raise_on_failures(self) -> None:
        """Escalate record failures for callers that want a hard error."""
        if self.has_failures:
            raise SyncPartialFailure(
                f"{self.counts.failed} of {self.counts.total} users failed to sync",
                succeeded=self.counts.succeeded,
                failed=self.counts.failed,
                errors=self.errors,
            )


@dataclass
class HealthReport:
    """Parsed /health response."""
    status: str
    database_connected: bool
    timestamp: Optional[datetime] = None
    server: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy" and self.database_connected

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> HealthReport:
        database = payload.get("database")
        return cls(
            status=_as_text(payload.get("status")) or "unknown",
            database_connected=database == "connected" or database is True,
            timestamp=parse_timestamp(payload.get("timestamp")),
            server=dict(payload.get("server") or {}),
        )


@dataclass
class RemoteLogin:
    """A successful remote authentication."""
    user: User
    token: str
    source: str = "supabase"


@dataclass
class RegistrationResult:
    user: User
    token: Optional[str]
    source: str = "supabase"
    message: str = "Account created successfully! Please sign in to continue."


@dataclass
class UserFilters:
    """Query filters for listing remote users."""
    store_id: Optional[str] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    limit: Optional[int] = None

    def to_params(self) -> Dict[str, str]:
        params = {}
        if self.store_id:
            params["store_id"] = str(self.store_id)
        if self.role:
            params["role"] = Role.parse(self.role).value
        if self.is_active is not None:
            params["is_active"] = "true" if self.is_active else "false"
        if self.limit:
            params["limit"] = str(self.limit)
        return params
