"""Simple YAML configuration loader for scribe-sync."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "port": 3000,
        "public_url": None,
        "presigned_expires_in": 3600,
        "max_upload_bytes": 104857600,
    },
    "storage": {
        "backend": "memory",
        "data_directory": "data",
    },
    "client": {
        "base_url": "http://localhost:3000",
        "connect_timeout": 5,
        "read_timeout": 10,
        "spool_directory": "data/spool",
    },
    "upload": {
        "max_attempts": 3,
        "retry_delays": [1, 2, 5],
    },
    "audio": {
        "sample_rate": 44100,
        "channels": 1,
        "sample_width": 2,
        "chunk_seconds": 10,
    },
    "durability": {
        "preferences_file": "data/scribe_sync_prefs.json",
        "keepalive_interval": 30,
        "probe_interval": 15,
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/scribesync.log",
        "console_output": True,
    },
}

# Keys holding paths that are resolved relative to the config file
PATH_KEYS = (
    "storage.data_directory",
    "client.spool_directory",
    "durability.preferences_file",
    "logging.file_path",
)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class ScribeSyncConfig:
    """scribe-sync configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used with paths relative to the working directory.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULTS)
            return

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file on top of the defaults."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}")

        if not loaded:
            raise ValueError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _merge(copy.deepcopy(DEFAULTS), loaded)
        self._resolve_paths(config, self.config_file.parent)

        logger.info("Configuration loaded successfully")
        return config

    @staticmethod
    def _resolve_paths(config: Dict[str, Any], config_dir: Path) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        for key_path in PATH_KEYS:
            section, key = key_path.split('.')
            value = config.get(section, {}).get(key)
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'upload.max_attempts').

        Args:
            key_path: Dot-separated key path (e.g., 'client.base_url')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'server.port')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_data_directory(self) -> str:
        """Get server data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_spool_directory(self) -> str:
        """Get client spool directory where chunk files wait for upload."""
        spool_dir = self.get('client.spool_directory', 'data/spool')
        return str(Path(spool_dir).absolute())

    def get_retry_delays(self) -> tuple:
        """Get the backoff delays in seconds, validated as non-negative numbers."""
        delays = self.get('upload.retry_delays', [1, 2, 5])
        if not delays or any(float(d) < 0 for d in delays):
            raise ValueError(f"upload.retry_delays must be non-negative numbers: {delays}")
        return tuple(float(d) for d in delays)
