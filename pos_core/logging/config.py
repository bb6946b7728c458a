# =============================================================================
# pos_core/logging/config.py
# Logging Configuration for the POS offline sync core
# =============================================================================

import logging
import re
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union


LOG_FORMAT = "%(asctime)s | %(threadName)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_DIR = Path("logs")

# Transports used by the remote directories
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "postgrest", "supabase")

REDACTED = "[redacted]"
_MASKED_VALUES = (
    re.compile(r"\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}"),        # bcrypt hash
    re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+"),                 # JWT / Supabase key
)
_MASKED_PAIRS = (
    re.compile(r"(?i)(\bbearer\s+)[\w.\-]+"),
    re.compile(r"(?i)(\"?\b(?:password|secret|credential_secret|password_hash|apikey)\"?\s*[:=]\s*)(\"[^\"]*\"|'[^']*'|\S+)"),
)


class SecretRedactingFilter(logging.Filter):
    """
    Mask credentials in log output.

    Login and sync errors can echo request payloads or auth headers; bcrypt
    hashes, JWTs and `password=...` style pairs are replaced before any
    handler writes the record.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def redact(text: str) -> str:
    for pattern in _MASKED_VALUES:
        text = pattern.sub(REDACTED, text)
    for pattern in _MASKED_PAIRS:
        text = pattern.sub(rf"\g<1>{REDACTED}", text)
    return text


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level, as an int or a name such as "DEBUG"
        log_to_file: Whether to also log to a file
        log_filename: Custom log filename (default: pos_YYYY-MM-DD.log)
        log_dir: Directory for the log file (default: ./logs)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        directory = Path(log_dir or LOG_DIR)
        directory.mkdir(parents=True, exist_ok=True)
        filename = log_filename or f"pos_{datetime.now().strftime('%Y-%m-%d')}.log"
        handlers.append(logging.FileHandler(directory / filename, encoding="utf-8"))

    redacting = SecretRedactingFilter()
    for handler in handlers:
        handler.addFilter(redacting)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("pos_core").info(
        f"Logging initialized ({logging.getLevelName(level)}, file: {'on' if log_to_file else 'off'})"
    )


def configure_from_settings(settings: Any) -> None:
    """Apply the [logging] section of a loaded Settings object."""
    setup_logging(
        level=settings.log_level,
        log_to_file=settings.log_to_file,
        log_dir=settings.log_dir,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Usage:
        from pos_core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Sync started")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for logging operation timing and status.

    Failures of the core's own errors are logged with their code at warning
    level; anything else is logged as an error.

    Usage:
        with LogContext(logger, "Exporting users"):
            frame.to_csv(path)
        # Logs: "Exporting users... started"
        # Logs: "Exporting users... completed (0.34s)"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({self.elapsed:.2f}s)")
            return False

        code = getattr(exc_val, "code", None)
        if code:
            self.logger.warning(f"{self.operation}... failed [{code}] ({self.elapsed:.2f}s): {exc_val}")
        else:
            self.logger.error(f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}")
        return False
