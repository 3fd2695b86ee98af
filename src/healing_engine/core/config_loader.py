"""Configuration loading and validation utilities for selector healing."""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from .models.healing_models import HealingConfiguration
from .config import settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


class SelfHealingConfigLoader:
    """Loads and validates selector healing configuration."""

    DEFAULT_CONFIG = {
        "self_healing": {
            "enabled": True,
            "confidence_threshold": 0.7,
            "max_retries": 3,
            "auto_update_locators": True,
            "timeouts": {
                "llm": 60,
                "healing": 120,
                "action_check": 2.0
            },
            "dom_snapshot": {
                "max_html_chars": 10000,
                "max_prompt_html_chars": 4000,
                "max_similar_elements": 5
            }
        }
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config loader with optional custom path."""
        self.config_path = Path(
            config_path or settings.SELF_HEALING_CONFIG_PATH)
        self._config_cache: Optional[HealingConfiguration] = None
        self._config_file_mtime: Optional[float] = None

    def load_config(self, force_reload: bool = False) -> HealingConfiguration:
        """Load and validate healing configuration.

        Args:
            force_reload: Force reload even if cached config exists

        Returns:
            HealingConfiguration: Validated configuration object

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not force_reload and self._config_cache and self._is_config_current():
            return copy.copy(self._config_cache)

        try:
            config_data = self._load_config_file()
            healing_config = self._parse_healing_config(config_data)
            self._validate_config(healing_config)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to load self-healing configuration: {e}")
            raise ConfigurationError(
                f"Configuration loading failed: {e}") from e

        self._config_cache = healing_config
        self._config_file_mtime = (
            self.config_path.stat().st_mtime if self.config_path.exists() else None)

        logger.info(
            f"Loaded self-healing configuration from {self.config_path}")
        return copy.copy(healing_config)

    def save_config(self, config: HealingConfiguration) -> None:
        """Save configuration to file.

        Raises:
            ConfigurationError: If the configuration is invalid or cannot be written
        """
        self._validate_config(config)

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            config_data = {
                "self_healing": self._config_to_dict(config)
            }
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(config_data, f, default_flow_style=False, indent=2)
        except OSError as e:
            logger.error(f"Failed to save self-healing configuration: {e}")
            raise ConfigurationError(
                f"Configuration saving failed: {e}") from e

        self._config_cache = config
        self._config_file_mtime = self.config_path.stat().st_mtime
        logger.info(
            f"Saved self-healing configuration to {self.config_path}")

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration from file or return defaults."""
        if not self.config_path.exists():
            logger.info(
                f"Config file {self.config_path} not found, using defaults")
            return copy.deepcopy(self.DEFAULT_CONFIG)

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a mapping")

        return self._deep_merge(copy.deepcopy(self.DEFAULT_CONFIG), config_data)

    def _parse_healing_config(self, config_data: Dict[str, Any]) -> HealingConfiguration:
        """Parse configuration data into a HealingConfiguration object."""
        healing_section = config_data.get("self_healing") or {}
        timeouts = healing_section.get("timeouts") or {}
        dom_snapshot = healing_section.get("dom_snapshot") or {}

        try:
            return HealingConfiguration(
                enabled=bool(healing_section.get("enabled", True)),
                confidence_threshold=float(healing_section.get("confidence_threshold", 0.7)),
                max_retries=int(healing_section.get("max_retries", 3)),
                auto_update_locators=bool(healing_section.get("auto_update_locators", True)),
                llm_timeout=float(timeouts.get("llm", 60)),
                healing_timeout=float(timeouts.get("healing", 120)),
                action_check_timeout=float(timeouts.get("action_check", 2.0)),
                max_html_chars=int(dom_snapshot.get("max_html_chars", 10000)),
                max_prompt_html_chars=int(dom_snapshot.get("max_prompt_html_chars", 4000)),
                max_similar_elements=int(dom_snapshot.get("max_similar_elements", 5))
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

    def _config_to_dict(self, config: HealingConfiguration) -> Dict[str, Any]:
        """Convert HealingConfiguration to the nested file structure."""
        return {
            "enabled": config.enabled,
            "confidence_threshold": config.confidence_threshold,
            "max_retries": config.max_retries,
            "auto_update_locators": config.auto_update_locators,
            "timeouts": {
                "llm": config.llm_timeout,
                "healing": config.healing_timeout,
                "action_check": config.action_check_timeout
            },
            "dom_snapshot": {
                "max_html_chars": config.max_html_chars,
                "max_prompt_html_chars": config.max_prompt_html_chars,
                "max_similar_elements": config.max_similar_elements
            }
        }

    def _validate_config(self, config: HealingConfiguration) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If validation fails
        """
        errors = []

        if config.confidence_threshold < 0.0 or config.confidence_threshold > 1.0:
            errors.append("confidence_threshold must be between 0.0 and 1.0")

        if config.max_retries < 1 or config.max_retries > 10:
            errors.append("max_retries must be between 1 and 10")

        if config.llm_timeout < 1 or config.llm_timeout > 600:
            errors.append("llm timeout must be between 1 and 600 seconds")

        if config.healing_timeout < 5 or config.healing_timeout > 1800:
            errors.append("healing timeout must be between 5 and 1800 seconds")

        if config.healing_timeout <= config.llm_timeout:
            errors.append("healing timeout must be greater than llm timeout")

        if config.action_check_timeout < 0 or config.action_check_timeout > 30:
            errors.append("action_check timeout must be between 0 and 30 seconds")

        if config.max_html_chars < 500 or config.max_html_chars > 100000:
            errors.append("max_html_chars must be between 500 and 100000")

        if config.max_prompt_html_chars < 500 or config.max_prompt_html_chars > config.max_html_chars:
            errors.append("max_prompt_html_chars must be between 500 and max_html_chars")

        if config.max_similar_elements < 0 or config.max_similar_elements > 20:
            errors.append("max_similar_elements must be between 0 and 20")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed: " + "; ".join(errors))

    def _is_config_current(self) -> bool:
        """Check if cached config is still current."""
        if not self.config_path.exists():
            return self._config_file_mtime is None

        return self._config_file_mtime == self.config_path.stat().st_mtime

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


# Global config loader instance
config_loader = SelfHealingConfigLoader()


def get_healing_config(force_reload: bool = False) -> HealingConfiguration:
    """Get the current healing configuration.

    The ``SELF_HEALING_ENABLED`` setting overrides the file's ``enabled`` flag
    when it is switched off.
    """
    config = config_loader.load_config(force_reload)
    if not settings.SELF_HEALING_ENABLED:
        config.enabled = False
    return config


def save_healing_config(config: HealingConfiguration) -> None:
    """Save healing configuration."""
    config_loader.save_config(config)
