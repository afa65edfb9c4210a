"""Configuration loader for the JSON/YAML settings file and environment variables."""

import os
import json
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union

from pydantic import ValidationError

from .schema import SYNC_CONFIG_EXAMPLE, SyncConfig
from .settings import get_settings
from ..utils.logging import get_logger


class ConfigurationError(Exception):
    """Raised when configuration loading fails."""
    pass


class ConfigLoader:
    """Loads and validates the sync settings file."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, file_path: Union[str, Path]) -> SyncConfig:
        """Load configuration from a JSON or YAML file.

        Files without a ``.yaml``/``.yml`` suffix are read as JSON.

        Args:
            file_path: Path to the settings file

        Returns:
            Validated SyncConfig object

        Raises:
            ConfigurationError: If file cannot be loaded or validated
        """
        file_path = Path(file_path).expanduser()

        if not file_path.exists():
            raise ConfigurationError(
                f"Settings file not found: {file_path}. Create it with content like:\n"
                f"{json.dumps(SYNC_CONFIG_EXAMPLE, indent=2)}"
            )

        self.logger.debug("Loading settings from file", file_path=str(file_path))

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format in {file_path}: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format in {file_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Cannot read settings file {file_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {file_path} must contain an object")

        return self.load_from_dict(data)

    def load_from_dict(self, data: Dict[str, Any]) -> SyncConfig:
        """Load configuration from dictionary.

        Args:
            data: Configuration data as dictionary

        Returns:
            Validated SyncConfig object
        """
        data = self._apply_env_overrides(data)

        try:
            config = SyncConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}")

        self.logger.debug(
            "Settings loaded",
            local_file_path=str(config.local_file_path),
            remote_file_path=config.remote_file_path
        )

        return config

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration data.

        GDRIVE_SYNC_LOCAL_FILE_PATH and GDRIVE_SYNC_REMOTE_FILE_PATH replace
        the file pair named in the settings file.
        """
        env_overrides = {}

        if os.getenv('GDRIVE_SYNC_LOCAL_FILE_PATH'):
            env_overrides['localFilePath'] = os.getenv('GDRIVE_SYNC_LOCAL_FILE_PATH')

        if os.getenv('GDRIVE_SYNC_REMOTE_FILE_PATH'):
            env_overrides['remoteFilePath'] = os.getenv('GDRIVE_SYNC_REMOTE_FILE_PATH')

        if env_overrides:
            self.logger.info("Applied environment variable overrides", overrides=list(env_overrides.keys()))
            # Drop snake_case spellings so the override wins over either form
            data = {
                k: v for k, v in data.items()
                if k not in ('local_file_path', 'remote_file_path')
            }
            data = {**data, **env_overrides}

        return data


def load_sync_config(file_path: Optional[Union[str, Path]] = None) -> SyncConfig:
    """Load the sync settings file.

    Uses ``file_path`` when given, otherwise the ``settings_file`` from the
    application settings (``GDRIVE_SYNC_SETTINGS_FILE`` or
    ``~/.gdrive-single-file-sync.settings``).
    """
    loader = ConfigLoader()
    return loader.load_from_file(file_path or get_settings().settings_file)
