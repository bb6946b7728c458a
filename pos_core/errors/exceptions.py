# =============================================================================
# pos_core/errors/exceptions.py
# Custom Exception Hierarchy for the POS offline sync core
# =============================================================================

from typing import Optional, Dict, Any


class PosCoreError(Exception):
    """
    Base exception for all pos_core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "AUTH_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "POS_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# AUTHENTICATION EXCEPTIONS
# =============================================================================

class ValidationError(PosCoreError):
    """Raised when input is malformed, before any I/O happens"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        missing: Optional[list] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if missing:
            details["missing"] = missing

        super().__init__(
            message=message,
            code="AUTH_001",
            details=details,
            **kwargs,
        )


class InvalidCredentials(PosCoreError):
    """Raised when a reachable server rejects credentials, or no local match exists"""

    def __init__(
        self,
        message: str = "Invalid email or password",
        source: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if source:
            details["source"] = source

        super().__init__(
            message=message,
            code="AUTH_002",
            details=details,
            **kwargs,
        )


class PermissionDenied(PosCoreError):
    """Raised when the acting user lacks the role for an operation"""

    def __init__(
        self,
        message: str,
        required_roles: Optional[list] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if required_roles:
            details["required_roles"] = required_roles

        super().__init__(
            message=message,
            code="AUTH_003",
            details=details,
            **kwargs,
        )


# =============================================================================
# REMOTE DIRECTORY EXCEPTIONS
# =============================================================================

class ServerUnavailable(PosCoreError):
    """
    Raised for connectivity failures: timeouts, network errors, 5xx and 503.

    These are retryable and make a login eligible for local fallback.
    """

    def __init__(
        self,
        message: str = "Server temporarily unavailable",
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )
        self.status_code = status_code


class RemoteError(PosCoreError):
    """Raised when the remote answers with something unexpected"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint

        super().__init__(
            message=message,
            code=kwargs.pop("code", "REMOTE_002"),
            details=details,
            **kwargs,
        )
        self.status_code = status_code


class ConflictError(RemoteError):
    """Raised when the remote refuses a create because the record exists"""

    def __init__(self, message: str = "An account with this email already exists.", **kwargs):
        kwargs.setdefault("status_code", 409)
        super().__init__(message=message, code="REMOTE_003", **kwargs)


# =============================================================================
# LOCAL STORAGE EXCEPTIONS
# =============================================================================

class LocalStorageError(PosCoreError):
    """Raised when the local database is unavailable or corrupt"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# SYNC EXCEPTIONS
# =============================================================================

class SyncPartialFailure(PosCoreError):
    """Some records of a bulk upsert failed; carries counts and sample errors"""

    def __init__(
        self,
        message: str,
        succeeded: int = 0,
        failed: int = 0,
        errors: Optional[list] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["succeeded"] = succeeded
        details["failed"] = failed
        if errors:
            details["errors"] = errors

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


class OperationInProgressError(PosCoreError):
    """Raised when an operation that must not overlap is already running"""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="SYNC_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(PosCoreError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
