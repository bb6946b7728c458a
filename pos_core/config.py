# =============================================================================
# pos_core/config.py
# Settings for the POS offline sync core
# Loaded from a TOML file, then overridden by environment variables
# =============================================================================

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import toml

from pos_core.errors import ConfigurationError
from pos_core.logging import get_logger

logger = get_logger(__name__)


PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "pos_core.toml"

REMOTE_PROVIDERS = ("api", "supabase", "mock")


@dataclass
class Settings:
    """
    Runtime configuration.

    Example config/pos_core.toml:
        [remote]
        provider = "api"
        base_url = "https://byd-pos-middleware.vercel.app"
        request_timeout = 15

        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"

        [local]
        database_path = "local_data/pos_users.db"
        seed_demo_users = true
    """
    # Remote directory
    remote_provider: str = "api"
    api_base_url: str = "https://byd-pos-middleware.vercel.app"
    request_timeout: float = 15.0
    health_timeout: float = 10.0
    logout_timeout: float = 5.0

    # Supabase (direct provider only)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Local store
    database_path: Path = field(default_factory=lambda: PROJECT_ROOT / "local_data" / "pos_users.db")
    seed_demo_users: bool = True

    # Reconciliation
    sync_interval_seconds: float = 3600.0

    # Health monitoring
    health_max_retries: int = 3
    health_backoff_seconds: float = 2.0
    failure_threshold: int = 1
    monitor_interval_online: float = 30.0
    monitor_interval_offline: float = 10.0
    start_monitoring: bool = False

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: Path = field(default_factory=lambda: PROJECT_ROOT / "logs")

    def validate(self) -> None:
        """Raise ConfigurationError for values no service can work with."""
        if self.remote_provider not in REMOTE_PROVIDERS:
            raise ConfigurationError(
                f"Unknown remote provider '{self.remote_provider}'",
                config_key="remote.provider",
                expected_type=" | ".join(REMOTE_PROVIDERS),
            )
        if self.remote_provider == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ConfigurationError(
                "Supabase provider requires supabase.url and supabase.key",
                config_key="supabase",
            )
        if self.health_max_retries < 1:
            raise ConfigurationError(
                "health.max_retries must be at least 1",
                config_key="health.max_retries",
                expected_type="int >= 1",
            )
        if self.failure_threshold < 1:
            raise ConfigurationError(
                "health.failure_threshold must be at least 1",
                config_key="health.failure_threshold",
                expected_type="int >= 1",
            )
        for key in ("request_timeout", "health_timeout", "logout_timeout", "sync_interval_seconds"):
            if getattr(self, key) < 0:
                raise ConfigurationError(
                    f"{key} must not be negative",
                    config_key=key,
                    expected_type="float >= 0",
                )


# TOML section/key -> Settings attribute
_TOML_KEYS = {
    ("remote", "provider"): "remote_provider",
    ("remote", "base_url"): "api_base_url",
    ("remote", "request_timeout"): "request_timeout",
    ("remote", "health_timeout"): "health_timeout",
    ("remote", "logout_timeout"): "logout_timeout",
    ("supabase", "url"): "supabase_url",
    ("supabase", "key"): "supabase_key",
    ("local", "database_path"): "database_path",
    ("local", "seed_demo_users"): "seed_demo_users",
    ("sync", "interval_seconds"): "sync_interval_seconds",
    ("health", "max_retries"): "health_max_retries",
    ("health", "backoff_seconds"): "health_backoff_seconds",
    ("health", "failure_threshold"): "failure_threshold",
    ("health", "interval_online"): "monitor_interval_online",
    ("health", "interval_offline"): "monitor_interval_offline",
    ("health", "start_monitoring"): "start_monitoring",
    ("logging", "level"): "log_level",
    ("logging", "to_file"): "log_to_file",
    ("logging", "dir"): "log_dir",
}

_ENV_KEYS = {
    "POS_REMOTE_PROVIDER": "remote_provider",
    "POS_API_BASE_URL": "api_base_url",
    "POS_DATABASE_PATH": "database_path",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
    "POS_LOG_LEVEL": "log_level",
}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw TOML/env value to the type of the Settings field."""
    kind = {f.name: f.type for f in fields(Settings)}[name]

    try:
        if kind == "Path":
            return Path(value)
        if kind == "bool":
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if kind == "int":
            return int(value)
        if kind == "float":
            return float(value)
        return str(value) if value is not None else None
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid value for {name}: {value!r}",
            config_key=name,
            expected_type=str(kind),
        )


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
) -> Settings:
    """
    Load settings from TOML and environment.

    Args:
        path: TOML file; DEFAULT_CONFIG_PATH is used when it exists
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings
    """
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}

    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        try:
            raw = toml.load(config_path)
        except toml.TomlDecodeError as e:
            raise ConfigurationError(
                f"Could not parse {config_path}: {e}",
                config_key=str(config_path),
            )
        for (section, key), attr in _TOML_KEYS.items():
            if key in raw.get(section, {}):
                values[attr] = _coerce(attr, raw[section][key])
        logger.debug(f"Loaded settings from {config_path}")
    elif path:
        raise ConfigurationError(f"Config file not found: {config_path}", config_key=str(config_path))

    for env_key, attr in _ENV_KEYS.items():
        if env.get(env_key):
            values[attr] = _coerce(attr, env[env_key])

    settings = Settings(**values)
    settings.validate()
    return settings
