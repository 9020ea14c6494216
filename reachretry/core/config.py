"""Configuration management for reachretry."""

import copy
import json
import platform
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from reachretry.core.constants import (
    APP_NAME,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PREFERRED_TRANSPORTS,
    DEFAULT_PROBE_HOSTS,
    DEFAULT_PROBE_TIMEOUT,
)


class Config:
    """Manages reachretry configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default path.
        """
        self.config_path = Path(config_path) if config_path else self._get_default_config_path()
        self.config_data: Dict[str, Any] = {}
        self._load_config()

    @staticmethod
    def _get_default_config_path() -> Path:
        """Get default configuration path based on platform."""
        system = platform.system()
        home = Path.home()

        if system == "Windows":
            config_dir = home / "AppData" / "Roaming" / APP_NAME
        elif system == "Darwin":
            config_dir = home / "Library" / "Application Support" / APP_NAME
        else:  # Linux and others
            config_dir = home / ".config" / APP_NAME

        config_dir.mkdir(parents=True, exist_ok=True)
        return config_dir / "config.json"

    def _load_config(self) -> None:
        """Load configuration from file, falling back to defaults."""
        if self.config_path.exists() and self.config_path.stat().st_size > 0:
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                self.config_data = self._merge(self._get_default_config(), loaded)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"[Config] Error loading config: {e}. Using default configuration.")
                self.config_data = self._get_default_config()
        else:
            self.config_data = self._get_default_config()
            self.save()

    @staticmethod
    def _get_default_config() -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "log_level": "info",
            "monitor": {
                "poll_interval": DEFAULT_POLL_INTERVAL,
                "probe_enabled": True,
                "probe_hosts": copy.deepcopy(DEFAULT_PROBE_HOSTS),
                "probe_timeout": DEFAULT_PROBE_TIMEOUT,
                "preferred_transports": list(DEFAULT_PREFERRED_TRANSPORTS),
            },
            "fetch": {
                "timeout": 10,
            },
        }

    @classmethod
    def _merge(cls, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively overlay ``override`` onto ``base`` (keeps keys added in newer defaults)."""
        if not isinstance(override, dict):
            return base
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key] = cls._merge(base[key], value)
            else:
                base[key] = value
        return base

    def save(self) -> None:
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(self.config_data, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key (supports dot notation, e.g., 'monitor.poll_interval')
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        value = self.config_data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        keys = key.split(".")
        data = self.config_data
        for k in keys[:-1]:
            if not isinstance(data.get(k), dict):
                data[k] = {}
            data = data[k]
        data[keys[-1]] = value

    def import_config(self, config_file: Path, file_format: str = "json") -> bool:
        """Import configuration from file.

        Args:
            config_file: Path to configuration file
            file_format: File format ('json' or 'yaml')

        Returns:
            True if successful, False otherwise
        """
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                if file_format.lower() == "yaml":
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)

            if isinstance(data, dict):
                self.config_data = self._merge(self.config_data, data)
                self.save()
                return True
            logger.error(f"[Config] Ignored {config_file}: top level is not a mapping")
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            logger.error(f"[Config] Error importing config: {e}")
        return False

    def export_config(self, output_file: Path, file_format: str = "json") -> bool:
        """Export configuration to file.

        Args:
            output_file: Path to output file
            file_format: File format ('json' or 'yaml')

        Returns:
            True if successful, False otherwise
        """
        try:
            with open(output_file, "w", encoding="utf-8") as f:
                if file_format.lower() == "yaml":
                    yaml.dump(self.config_data, f, default_flow_style=False)
                else:
                    json.dump(self.config_data, f, indent=2)
            return True
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"[Config] Error exporting config: {e}")
        return False
