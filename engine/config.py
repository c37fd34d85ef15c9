"""
Configuration manager for Craft Architect.

Handles loading and managing application configuration from YAML files.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml
from utils.paths import CONFIG_PATH, DB_PATH, LOG_DIR, WORLD_STATUS_PATH


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or parsed."""
    pass


class ConfigManager:
    """Manages application configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager."""
        self.logger = logging.getLogger(__name__)

        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = CONFIG_PATH

        self._config = None

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            self.logger.warning("Config file not found at %s, using defaults", self.config_path)
            self._config = self.get_default_config()
            return self._config

        try:
            with self.config_path.open('r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error("Corrupt configuration at %s: %s", self.config_path, e)
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e
        except OSError as e:
            self.logger.error("Cannot read configuration at %s: %s", self.config_path, e)
            raise ConfigError(f"Cannot read {self.config_path}: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigError(f"Configuration root in {self.config_path} must be a mapping")

        # Merge with defaults to ensure all required keys exist
        merged_config = self._merge_configs(self.get_default_config(), config)
        merged_config = self._migrate_config(merged_config)

        self._config = merged_config
        self.logger.info("Configuration loaded from %s", self.config_path)
        return self._config

    def get_config(self) -> Dict[str, Any]:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)."""
        value = self.get_config()
        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """Set configuration value by key (supports dot notation)."""
        keys = key.split('.')
        current = self.get_config()

        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value

    def save_config(self, config: Optional[Dict[str, Any]] = None, config_path: Optional[str] = None):
        """Save configuration to YAML file."""
        if config is not None:
            self._config = config

        if not self._config:
            self.logger.warning("No configuration to save")
            return

        save_path = Path(config_path) if config_path else self.config_path
        save_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            tmp_path = save_path.with_suffix(save_path.suffix + ".tmp")
            with open(tmp_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, save_path)

            self.logger.info("Configuration saved to %s", save_path)

        except OSError as e:
            self.logger.error("Failed to save configuration: %s", e)
            raise

    def get_default_config(self) -> Dict[str, Any]:
        """Return default configuration values."""
        return self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        return {
            'market': {
                'data_center': "",
                'home_world': "",
                'exclude_congested_worlds': True,
                'blacklisted_worlds': [],
            },
            'analysis': {
                'recommendation_mode': "minimize_total_cost",
                'max_price_multiplier': 2.5,
                'enable_split_world': False,
                'split_savings_threshold': 0.05,
                'max_worlds_per_item': 5,
            },
            'planner': {
                'max_depth': 20,
            },
            'garland': {
                'base_url': "https://www.garlandtools.org/db/doc/item/en/3",
                'timeout_seconds': 15,
                'cache_ttl_sec': 900,
            },
            'universalis': {
                'base_url': "https://universalis.app/api/v2",
                'timeout_seconds': 30,
                'listings_per_item': 100,
            },
            'world_status': {
                'path': str(WORLD_STATUS_PATH),
            },
            'cache': {
                'max_age_hours': 6,
            },
            'database': {
                'path': str(DB_PATH),
            },
            'logging': {
                'level': "INFO",
                'file': str(LOG_DIR / "app.log"),
                'max_size_mb': 10,
                'backup_count': 5
            },
        }

    def _merge_configs(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Merge user configuration with defaults."""
        result = default.copy()

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _migrate_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Handle legacy configuration keys."""
        market_cfg = config.setdefault('market', {})
        # older files kept the home world at the top level
        if 'home_world' in config and not market_cfg.get('home_world'):
            market_cfg['home_world'] = config['home_world']
        config.pop('home_world', None)
        return config

    def get_home_world(self) -> str:
        """Get the player's home world."""
        return self.get('market.home_world', "") or ""

    def get_blacklisted_worlds(self) -> List[str]:
        """Get worlds the player refuses to travel to."""
        return list(self.get('market.blacklisted_worlds', []) or [])

    def get_analysis_config(self) -> Dict[str, Any]:
        """Get procurement analysis settings."""
        return self.get('analysis', {})

    def get_max_age_hours(self) -> float:
        """Get maximum age for cached market data in hours."""
        return self.get('cache.max_age_hours', 6)

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []
        config = self.get_config()

        for section in ('market', 'analysis', 'garland', 'universalis'):
            if section not in config:
                errors.append(f"Missing required section: {section}")

        multiplier = self.get('analysis.max_price_multiplier', 2.5)
        if not isinstance(multiplier, (int, float)) or multiplier <= 1:
            errors.append("Max price multiplier must be a number greater than 1")

        threshold = self.get('analysis.split_savings_threshold', 0.05)
        if not isinstance(threshold, (int, float)) or not (0 <= threshold <= 1):
            errors.append("Split savings threshold must be between 0 and 1")

        depth = self.get('planner.max_depth', 20)
        if not isinstance(depth, int) or depth < 1:
            errors.append("Planner max_depth must be a positive integer")

        if not self.get('garland.base_url'):
            errors.append("Garland base_url not configured")
        if not self.get('universalis.base_url'):
            errors.append("Universalis base_url not configured")

        return errors
