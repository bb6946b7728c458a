# =============================================================================
# pos_core/logging/__init__.py
# Centralized Logging Configuration
# =============================================================================

from .config import setup_logging, configure_from_settings, get_logger, redact, LogContext, SecretRedactingFilter

__all__ = [
    "setup_logging",
    "configure_from_settings",
    "get_logger",
    "redact",
    "LogContext",
    "SecretRedactingFilter",
]
