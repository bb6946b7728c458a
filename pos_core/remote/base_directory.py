"""
Base Remote Directory
Abstract interface to the authoritative user backend
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from pos_core.logging import get_logger
from pos_core.offline.models import (
    HealthReport,
    RegistrationResult,
    RemoteLogin,
    User,
    UserFilters,
)

logger = get_logger(__name__)


@dataclass
class DirectoryConfig:
    """Configuration for a remote directory connection"""
    provider: str
    base_url: str = ""
    api_key: Optional[str] = None
    request_timeout: float = 15.0
    health_timeout: float = 10.0
    logout_timeout: float = 5.0


@dataclass
class Registration:
    """New account data sent to the remote"""
    name: str
    email: str
    password: str
    phone: Optional[str] = None
    role: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {"name": self.name, "email": self.email, "password": self.password}
        if self.phone:
            payload["phone"] = self.phone
        if self.role:
            payload["role"] = self.role
        return payload


class RemoteDirectory(ABC):
    """
    Abstract base class for remote user directories.

    Implementations raise:
        InvalidCredentials: the remote rejected the credentials or token
        ServerUnavailable: timeout, network error or 5xx
        ValidationError / ConflictError / RemoteError: other refusals
    """

    def __init__(self, config: DirectoryConfig):
        self.config = config

    @abstractmethod
    def login(self, email: str, secret: str) -> RemoteLogin:
        """Verify credentials and return the user with a session token"""
        pass

    @abstractmethod
    def fetch_profile(self, token: str) -> User:
        """Return the user that owns `token`"""
        pass

    @abstractmethod
    def list_users(self, token: Optional[str] = None, filters: Optional[UserFilters] = None) -> List[User]:
        """Return the authoritative user list; empty when the payload is unusable"""
        pass

    @abstractmethod
    def register(self, registration: Registration) -> RegistrationResult:
        """Create a new account"""
        pass

    @abstractmethod
    def logout(self, token: Optional[str]) -> None:
        """Tell the remote the session ended"""
        pass

    @abstractmethod
    def health_check(self) -> HealthReport:
        """Probe service and database reachability"""
        pass

    def close(self) -> None:
        """Release network resources"""
        pass

    @staticmethod
    def users_from_payload(items: Any) -> List[User]:
        """
        Map a list of remote user objects to Users.

        A non-list payload yields no users. Items that are not objects are
        skipped with a warning.
        """
        if not isinstance(items, list):
            return []

        users = []
        for item in items:
            if isinstance(item, Mapping):
                users.append(User.from_remote(item))
            else:
                logger.warning(f"Skipping malformed user record: {item!r}")
        return users
