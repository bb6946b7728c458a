"""
Mock Remote Directory
In-memory directory for demos, development and tests
"""
import itertools
import time
from collections import deque
from typing import Deque, Dict, List, Optional

from pos_core.errors import (
    ConflictError,
    InvalidCredentials,
    PosCoreError,
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
    utc_now,
)

from .base_directory import DirectoryConfig, Registration, RemoteDirectory

logger = get_logger(__name__)


DEMO_DIRECTORY = [
    ("demo-admin-1", "Demo Admin", "admin@techcorp.com", Role.SUPER_ADMIN, "+1-555-0100"),
    ("demo-manager-1", "Demo Manager", "manager@techcorp.com", Role.MANAGER, "+1-555-0101"),
    ("demo-cashier-1", "Demo Cashier", "cashier@techcorp.com", Role.CASHIER, "+1-555-0102"),
    ("demo-cashier-2", "Demo Cashier 2", "cashier2@techcorp.com", Role.CASHIER, "+1-555-0103"),
]


class MockDirectory(RemoteDirectory):
    """
    Remote directory kept in memory.

    Availability can be toggled with `online`, and individual calls can be
    made to fail with `fail_next(operation, error)`. Every call is recorded
    in `calls` so tests can assert on network traffic.
    """

    def __init__(self, config: Optional[DirectoryConfig] = None, users: Optional[List[User]] = None):
        super().__init__(config or DirectoryConfig(provider="mock"))
        self.online = True
        self.database_connected = True
        self.calls: List[str] = []
        self._failures: Dict[str, Deque[PosCoreError]] = {}
        self._tokens: Dict[str, str] = {}
        self._counter = itertools.count(1)

        if users is None:
            now = utc_now()
            users = [
                User(id=uid, name=name, email=email, credential_secret="password123",
                     role=role, phone=phone, created_at=now, updated_at=now)
                for uid, name, email, role, phone in DEMO_DIRECTORY
            ]
        self.users: Dict[str, User] = {user.id: user for user in users}

    # =========================================================================
    # TEST CONTROLS
    # =========================================================================

    def fail_next(self, operation: str, error: PosCoreError, times: int = 1) -> None:
        """Make the next `times` calls to `operation` raise `error`."""
        queue = self._failures.setdefault(operation, deque())
        queue.extend([error] * times)

    def call_count(self, operation: str) -> int:
        return self.calls.count(operation)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        queue = self._failures.get(operation)
        if queue:
            raise queue.popleft()
        if not self.online:
            raise ServerUnavailable("Network Error", endpoint=operation)

    def _issue_token(self, user: User) -> str:
        token = f"mock_{user.id}_{int(time.time() * 1000)}_{next(self._counter)}"
        self._tokens[token] = user.id
        return token

    def _by_email(self, email: str) -> Optional[User]:
        email = (email or "").strip().lower()
        return next((u for u in self.users.values() if u.email == email), None)

    # =========================================================================
    # DIRECTORY OPERATIONS
    # =========================================================================

    def login(self, email: str, secret: str) -> RemoteLogin:
        self._enter("login")
        user = self._by_email(email)
        if user is None or not user.is_active or not verify_secret(secret, user.credential_secret):
            raise InvalidCredentials(source="remote")
        user.last_login_at = utc_now()
        return RemoteLogin(user=user, token=self._issue_token(user), source="mock")

    def fetch_profile(self, token: str) -> User:
        self._enter("fetch_profile")
        user_id = self._tokens.get(token)
        if user_id is None or user_id not in self.users:
            raise InvalidCredentials("Invalid or expired token", source="remote")
        return self.users[user_id]

    def list_users(self, token: Optional[str] = None, filters: Optional[UserFilters] = None) -> List[User]:
        self._enter("list_users")
        users = list(self.users.values())
        if filters:
            if filters.role:
                users = [u for u in users if u.role == Role.parse(filters.role)]
            if filters.is_active is not None:
                users = [u for u in users if u.is_active == filters.is_active]
            if filters.limit:
                users = users[:filters.limit]
        return [User(**vars(u)) for u in users]

    def register(self, registration: Registration) -> RegistrationResult:
        self._enter("register")
        if not (registration.name and registration.email and registration.password):
            raise ValidationError("Name, email, and password are required")
        if self._by_email(registration.email):
            raise ConflictError()

        now = utc_now()
        user = User(
            id=f"mock-user-{next(self._counter)}",
            name=registration.name,
            email=registration.email,
            credential_secret=hash_secret(registration.password),
            role=registration.role or Role.CASHIER,
            phone=registration.phone,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return RegistrationResult(user=user, token=self._issue_token(user), source="mock")

    def logout(self, token: Optional[str]) -> None:
        self._enter("logout")
        self._tokens.pop(token, None)

    def health_check(self) -> HealthReport:
        self._enter("health_check")
        return HealthReport(
            status="healthy" if self.database_connected else "unhealthy",
            database_connected=self.database_connected,
            timestamp=utc_now(),
            server={"environment": "mock", "region": "local"},
        )
