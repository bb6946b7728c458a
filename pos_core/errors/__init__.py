# =============================================================================
# pos_core/errors/__init__.py
# Centralized Error Handling for the POS offline sync core
# =============================================================================

from .exceptions import (
    PosCoreError,
    ValidationError,
    InvalidCredentials,
    PermissionDenied,
    ServerUnavailable,
    RemoteError,
    ConflictError,
    LocalStorageError,
    SyncPartialFailure,
    OperationInProgressError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    user_message,
    error_category,
    safe_execute,
    error_boundary,
)

__all__ = [
    # Exceptions
    "PosCoreError",
    "ValidationError",
    "InvalidCredentials",
    "PermissionDenied",
    "ServerUnavailable",
    "RemoteError",
    "ConflictError",
    "LocalStorageError",
    "SyncPartialFailure",
    "OperationInProgressError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "user_message",
    "error_category",
    "safe_execute",
    "error_boundary",
]
