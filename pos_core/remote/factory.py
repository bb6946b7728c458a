"""
Remote Directory Factory
Builds the configured directory from Settings
"""
from typing import Dict, Type

from pos_core.config import REMOTE_PROVIDERS, Settings
from pos_core.errors import ConfigurationError
from pos_core.logging import get_logger

from .api_directory import ApiDirectory
from .base_directory import DirectoryConfig, RemoteDirectory
from .mock_directory import MockDirectory
from .supabase_directory import SupabaseDirectory

logger = get_logger(__name__)


DIRECTORIES: Dict[str, Type[RemoteDirectory]] = {
    "api": ApiDirectory,
    "supabase": SupabaseDirectory,
    "mock": MockDirectory,
}


def directory_config(settings: Settings) -> DirectoryConfig:
    """Connection settings for the configured provider."""
    provider = settings.remote_provider
    if provider == "supabase":
        base_url, api_key = settings.supabase_url or "", settings.supabase_key
    else:
        base_url, api_key = settings.api_base_url, None

    return DirectoryConfig(
        provider=provider,
        base_url=base_url,
        api_key=api_key,
        request_timeout=settings.request_timeout,
        health_timeout=settings.health_timeout,
        logout_timeout=settings.logout_timeout,
    )


def create_directory(settings: Settings) -> RemoteDirectory:
    """
    Create the remote directory named by `settings.remote_provider`.

    Raises:
        ConfigurationError: unknown provider or missing credentials
    """
    directory_class = DIRECTORIES.get(settings.remote_provider)
    if directory_class is None:
        raise ConfigurationError(
            f"Unknown remote provider '{settings.remote_provider}'",
            config_key="remote.provider",
            expected_type=" | ".join(REMOTE_PROVIDERS),
        )

    logger.info(f"Using remote directory: {settings.remote_provider}")
    return directory_class(directory_config(settings))


def get_available_providers() -> list:
    return list(DIRECTORIES.keys())
