"""
Environment-specific configuration management for QSTUDY.
Provides configuration overrides for different deployment environments.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent


@dataclass
class EnvironmentConfig:
    """Environment-specific configuration overrides."""

    name: str
    overrides: dict[str, Any] = field(default_factory=dict)

    def apply_to_config(self, config):
        """Apply environment-specific overrides to the base configuration."""
        for key, value in self.overrides.items():
            if not hasattr(config, key):
                logger.warning(f"Ignoring unknown configuration key '{key}' for environment {self.name}")
                continue
            section = getattr(config, key)
            if isinstance(value, dict) and hasattr(section, "__dict__"):
                # Handle nested configuration objects
                for nested_key, nested_value in value.items():
                    if hasattr(section, nested_key):
                        setattr(section, nested_key, nested_value)
                    else:
                        logger.warning(f"Ignoring unknown configuration key '{key}.{nested_key}'")
            else:
                setattr(config, key, value)
        return config


class EnvironmentManager:
    """Manages environment-specific configurations."""

    def __init__(self, config_dir: str | Path = CONFIG_DIR):
        self.config_dir = Path(config_dir)
        self.environments: dict[str, EnvironmentConfig] = {}
        self._load_environment_configs()

    def _load_environment_configs(self) -> None:
        """Load environment-specific configuration files; YAML wins over JSON."""
        env_dir = self.config_dir / "environments"
        if not env_dir.exists():
            return

        for pattern, loader in (("*.json", json.load), ("*.yaml", yaml.safe_load), ("*.yml", yaml.safe_load)):
            for env_file in sorted(env_dir.glob(pattern)):
                try:
                    with open(env_file) as f:
                        overrides = loader(f)
                except (OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning(f"Failed to load environment config {env_file}: {e}")
                    continue
                self.environments[env_file.stem] = EnvironmentConfig(name=env_file.stem, overrides=overrides or {})

    def get_environment_config(self, environment: str) -> EnvironmentConfig | None:
        """Get configuration for a specific environment."""
        return self.environments.get(environment)

    def apply_environment(self, config, environment: str):
        """Apply environment-specific configuration to base config."""
        env_config = self.get_environment_config(environment)
        if env_config:
            return env_config.apply_to_config(config)
        return config

    def list_environments(self) -> list[str]:
        """List available environment configurations."""
        return list(self.environments.keys())


# Global environment manager
environment_manager = EnvironmentManager()
