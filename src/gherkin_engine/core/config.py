import os
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GHERKIN_ENGINE_CONFIG"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manages configuration for Gherkin Engine"""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else self._get_default_config_path()
        self._config = self._load_config()

    def _get_default_config_path(self) -> Path:
        """Get default configuration path"""
        if env_path := os.getenv(CONFIG_ENV_VAR):
            return Path(env_path)

        locations = [
            Path.cwd() / "gherkin-engine.yaml",
            Path.cwd() / ".gherkin-engine" / "config.yaml",
            Path.home() / ".gherkin-engine" / "config.yaml",
        ]

        for location in locations:
            if location.exists():
                return location

        return Path.home() / ".gherkin-engine" / "config.yaml"

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file, layered over the defaults"""
        defaults = self._get_default_config()
        if not self.config_path.exists():
            return defaults

        try:
            with open(self.config_path, 'r') as f:
                if self.config_path.suffix in ('.yaml', '.yml'):
                    loaded = yaml.safe_load(f)
                elif self.config_path.suffix == '.json':
                    loaded = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported config format: {self.config_path.suffix}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Malformed config file {self.config_path}: {e}") from e

        if loaded is None:
            return defaults
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")

        logger.debug(f"Loaded configuration from {self.config_path}")
        return _deep_merge(defaults, loaded)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            "general": {
                "log_level": "INFO",
            },
            "executor": {
                "browser": "chromium",
                "headless": True,
                "timeout": 30000,
                "slow_mo": 0,
                "base_url": None,
                "viewport": {"width": 1280, "height": 720},
            },
            "batch": {
                "parallel": True,
                "max_workers": None,  # cpu count
                "timeout_seconds": 300,
                "continue_on_failure": True,
                "output_format": "text",
            },
            "comparison": {
                "output_format": "text",
            },
            "alerts": {
                "config_file": None,
                "output_format": "text",
            },
            "webhooks": {
                "config_file": None,
            },
            "reporter": {
                "output_dir": "test-results",
                "formats": ["json"],
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self) -> None:
        """Save configuration to file"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            if self.config_path.suffix == '.json':
                json.dump(self._config, f, indent=2)
            else:
                yaml.dump(self._config, f, default_flow_style=False)

    def get_module_config(self, module_name: str) -> Dict[str, Any]:
        """Get configuration for a specific section"""
        return self.get(module_name, {}) or {}
