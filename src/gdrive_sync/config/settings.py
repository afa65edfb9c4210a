"""Application configuration settings."""

from typing import Optional, List
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_SETTINGS_FILE = Path.home() / ".gdrive-single-file-sync.settings"
DEFAULT_TOKEN_PATH = Path.home() / ".gdrive-single-file-sync.auth"


class GoogleDriveSettings(BaseSettings):
    """Google Drive API configuration."""

    # drive.file only grants access to files this application created or opened
    scopes: List[str] = Field(default=["https://www.googleapis.com/auth/drive.file"])
    api_version: str = Field(default="v3")
    upload_chunk_size: int = Field(default=8 * 1024 * 1024)
    download_chunk_size: int = Field(default=8 * 1024 * 1024)
    oauth_callback_port: int = Field(default=8765)
    oauth_timeout_seconds: int = Field(default=300)

    class Config:
        env_prefix = "GOOGLE_DRIVE_"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)

    class Config:
        env_prefix = "LOG_"


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="gdrive-single-file-sync")
    version: str = Field(default="1.0.0")

    settings_file: Path = Field(default=DEFAULT_SETTINGS_FILE)
    token_path: Path = Field(default=DEFAULT_TOKEN_PATH)

    # Sub-settings
    google_drive: GoogleDriveSettings = GoogleDriveSettings()
    logging: LoggingSettings = LoggingSettings()

    class Config:
        env_prefix = "GDRIVE_SYNC_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings


def reload_settings() -> AppSettings:
    """Re-read settings from the environment, replacing the global instance."""
    global settings
    settings = AppSettings(
        google_drive=GoogleDriveSettings(),
        logging=LoggingSettings()
    )
    return settings
