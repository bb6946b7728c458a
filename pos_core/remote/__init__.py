"""
Remote Directory Module
Clients for the authoritative user backend
"""

from .base_directory import RemoteDirectory, DirectoryConfig, Registration
from .api_directory import ApiDirectory
from .supabase_directory import SupabaseDirectory
from .mock_directory import MockDirectory
from .factory import DIRECTORIES, create_directory, directory_config, get_available_providers

__all__ = [
    # Base classes
    "RemoteDirectory",
    "DirectoryConfig",
    "Registration",

    # Providers
    "ApiDirectory",
    "SupabaseDirectory",
    "MockDirectory",

    # Factory
    "DIRECTORIES",
    "create_directory",
    "directory_config",
    "get_available_providers",
]
