"""Configuration package for the file synchronizer."""

from .settings import (
    GoogleDriveSettings,
    LoggingSettings,
    AppSettings,
    get_settings,
    reload_settings
)

from .schema import (
    GoogleClientConfig,
    SyncConfig,
    SYNC_CONFIG_EXAMPLE
)

from .loader import (
    ConfigLoader,
    ConfigurationError,
    load_sync_config
)

__all__ = [
    "GoogleDriveSettings",
    "LoggingSettings",
    "AppSettings",
    "get_settings",
    "reload_settings",

    "GoogleClientConfig",
    "SyncConfig",
    "SYNC_CONFIG_EXAMPLE",

    "ConfigLoader",
    "ConfigurationError",
    "load_sync_config"
]
