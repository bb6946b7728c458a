# =============================================================================
# pos_core/errors/handlers.py
# Error Handling Utilities for the POS offline sync core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any

from pos_core.logging import get_logger
from .exceptions import (
    PosCoreError,
    ValidationError,
    InvalidCredentials,
    PermissionDenied,
    ServerUnavailable,
    ConflictError,
    LocalStorageError,
)

logger = get_logger(__name__)

T = TypeVar("T")


def user_message(error: Exception) -> str:
    """
    Translate an exception into a single human-readable reason.

    Login and registration surface one of three kinds of reasons: credential,
    connectivity or validation. Transport details never reach the caller.
    """
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, InvalidCredentials):
        return "No account found with these credentials. Please check your email and password."
    if isinstance(error, ConflictError):
        return error.message
    if isinstance(error, PermissionDenied):
        return "You do not have permission to perform this action."
    if isinstance(error, ServerUnavailable):
        return "Server is temporarily unavailable. Please try again."
    if isinstance(error, LocalStorageError):
        return "Local storage is unavailable. Please restart the app."
    if isinstance(error, PosCoreError):
        return error.message
    return "Something went wrong. Please try again."


def error_category(error: Exception) -> str:
    """Which kind of reason `user_message` gives for this error."""
    if isinstance(error, ValidationError):
        return "validation"
    if isinstance(error, (InvalidCredentials, PermissionDenied)):
        return "credential"
    if isinstance(error, ServerUnavailable):
        return "connectivity"
    if isinstance(error, ConflictError):
        return "conflict"
    if isinstance(error, LocalStorageError):
        return "storage"
    return "unexpected"


def handle_error(
    error: Exception,
    log_error: bool = True,
    message: Optional[str] = None,
) -> str:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        message: Custom message to return (derived from the error if None)

    Returns:
        Human-readable message suitable for display
    """
    if isinstance(error, PosCoreError):
        code = error.code
        details = error.details
    else:
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}

    text = message or user_message(error)

    if log_error:
        logger.error(
            f"[{code}] {error}",
            extra={"details": details},
            exc_info=not isinstance(error, PosCoreError),
        )

    return text


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Usage:
        users = safe_execute(store.get_all, default=[])
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, message=error_message)
        if reraise:
            raise
        return default


def error_boundary(
    default_return: Any = None,
    log: bool = True,
):
    """
    Decorator for best-effort calls whose failure must not reach the caller.

    Usage:
        @error_boundary(default_return=False)
        def notify_server(token: str) -> bool:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.warning(f"{func.__name__} failed: {e}")
                return default_return

        return wrapper

    return decorator
