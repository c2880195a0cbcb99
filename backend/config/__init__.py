"""
Configuration module for the MoneyVerse backend.

Provides settings management using pydantic-settings.
Supports loading from environment variables and .env files.
"""

from .settings import Settings, get_settings, has_gemini_credentials
from .paths import (
    APP_IDENTIFIER,
    resolve_app_data_dir,
    default_backup_directory,
    default_database_url,
    default_log_directory,
)

__all__ = [
    "Settings",
    "get_settings",
    "has_gemini_credentials",
    "APP_IDENTIFIER",
    "resolve_app_data_dir",
    "default_backup_directory",
    "default_database_url",
    "default_log_directory",
]
