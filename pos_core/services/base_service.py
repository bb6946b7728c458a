# =============================================================================
# pos_core/services/base_service.py
# Session-aware Service Base for Terminal Operations
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from pos_core.errors import (
    InvalidCredentials,
    PermissionDenied,
    PosCoreError,
    error_category,
    handle_error,
)
from pos_core.logging import LogContext, get_logger
from pos_core.offline.models import Role, Session, User


SessionProvider = Callable[[], Optional[Session]]


@dataclass
class ServiceResult:
    """
    Outcome of a service call that never raises.

    A failure carries the display text from `user_message`, the error code
    and the category of reason (credential, connectivity, validation...).
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    category: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None) -> ServiceResult:
        return cls(success=True, data=data)

    @classmethod
    def from_exception(cls, e: Exception, message: str) -> ServiceResult:
        return cls(
            success=False,
            error=message,
            error_code=e.code if isinstance(e, PosCoreError) else "UNKNOWN",
            category=error_category(e),
            details=dict(e.details) if isinstance(e, PosCoreError) else {},
        )


class BaseService:
    """
    Base for services that act on behalf of the signed-in staff member.

    The session is looked up on every call, so a service built at startup
    follows later logins and logouts.

    Usage:
        class ShiftService(BaseService):
            def close_shift(self) -> ServiceResult:
                def _close():
                    manager = self.require_role("close the shift", Role.MANAGER)
                    ...
                return self.safe_execute("Closing shift", _close)
    """

    def __init__(self, session_provider: SessionProvider):
        self.logger = get_logger(self.__class__.__name__)
        self._session_provider = session_provider

    # =========================================================================
    # ACTING USER
    # =========================================================================

    def acting_user(self) -> User:
        """The signed-in user, or InvalidCredentials when nobody is."""
        session = self._session_provider()
        if session is None:
            raise InvalidCredentials("You must be signed in", source="local")
        return session.user

    def require_role(self, action: str, *roles: Role) -> User:
        """The signed-in user, provided their role is one of `roles`."""
        user = self.acting_user()
        if user.role not in roles:
            raise PermissionDenied(
                f"{user.role.value} cannot {action}",
                required_roles=[role.value for role in roles],
            )
        return user

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def safe_execute(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> ServiceResult:
        """
        Run `func` inside a timed log context and fold any error into the
        result.
        """
        with LogContext(self.logger, operation):
            try:
                return ServiceResult.ok(func(*args, **kwargs))
            except PosCoreError as e:
                return ServiceResult.from_exception(e, handle_error(e))
            except Exception as e:
                self.logger.error(f"{operation} failed: {e}", exc_info=True)
                return ServiceResult.from_exception(e, handle_error(e, log_error=False))
