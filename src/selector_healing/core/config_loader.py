"""Healing policy file: YAML loading, default merging and validation."""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

from .models.healing_models import HealingConfiguration
from .config import settings

logger = logging.getLogger(__name__)

POLICY_SECTION = "self_healing"


class ConfigurationError(Exception):
    """Raised when the healing policy cannot be read or fails validation."""
    pass


def merge_sections(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay ``overrides`` onto ``defaults``; nested mappings merge key by key."""
    merged = dict(defaults)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_sections(current, value)
        else:
            merged[key] = value
    return merged


def policy_errors(config: HealingConfiguration) -> List[str]:
    """Every rule the policy breaks, empty when it is usable."""
    errors = []

    thresholds = config.confidence_thresholds
    ladder = [thresholds.auto_apply, thresholds.suggest_review,
              thresholds.attempt_healing, thresholds.min_viable]
    if not all(0.0 < value <= 1.0 for value in ladder):
        errors.append("confidence thresholds must be in (0, 1]")
    if not all(upper > lower for upper, lower in zip(ladder, ladder[1:])):
        errors.append("confidence thresholds must be strictly decreasing: "
                      "auto_apply > suggest_review > attempt_healing > min_viable")

    strategies = config.healing_strategies
    if not 1 <= strategies.max_attempts_per_strategy <= 10:
        errors.append("max_attempts_per_strategy must be between 1 and 10")
    if not 0 <= strategies.total_max_attempts <= 50:
        errors.append("total_max_attempts must be between 0 and 50")
    if len(set(strategies.enabled_strategies)) < len(strategies.enabled_strategies):
        errors.append("Duplicate healing strategies are not allowed")

    if not 0.0 <= config.validation_settings.similarity_threshold <= 1.0:
        errors.append("similarity_threshold must be between 0.0 and 1.0")

    limits = config.performance_limits
    if min(limits.strategy_timeout_seconds, limits.validation_timeout_seconds,
           limits.healing_timeout_seconds) <= 0:
        errors.append("performance limits must be positive")

    return errors


class HealingConfigLoader:
    """Reads the policy file, caching the result until the file changes."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or settings.SELF_HEALING_CONFIG_PATH)
        self._cached: Optional[HealingConfiguration] = None
        self._cached_stamp: Optional[float] = None

    def _file_stamp(self) -> Optional[float]:
        return self.config_path.stat().st_mtime if self.config_path.exists() else None

    def load_config(self, force_reload: bool = False) -> HealingConfiguration:
        """Load, merge over defaults and validate the policy.

        A missing file yields the default policy. Callers always receive a
        copy, so mutating the result never touches the cache.

        Raises:
            ConfigurationError: If the file is unreadable or the policy is invalid
        """
        if self._cached is not None and not force_reload and self._cached_stamp == self._file_stamp():
            return copy.deepcopy(self._cached)

        section = merge_sections(HealingConfiguration().to_dict(), self._read_section())
        try:
            config = HealingConfiguration.from_dict(section)
        except (ValueError, TypeError, KeyError) as e:
            raise ConfigurationError(f"Invalid healing configuration: {e}") from e
        self.validate_config(config)

        self._cached = config
        self._cached_stamp = self._file_stamp()
        logger.info(f"Healing policy loaded from {self.config_path}")
        return copy.deepcopy(config)

    def _read_section(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            logger.info(f"No healing policy at {self.config_path}, using defaults")
            return {}
        try:
            document = yaml.safe_load(self.config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file: {e}") from e
        section = document.get(POLICY_SECTION, {}) if isinstance(document, dict) else None
        if not isinstance(section, dict):
            raise ConfigurationError(f"'{POLICY_SECTION}' must be a mapping")
        return section

    def save_config(self, config: HealingConfiguration) -> None:
        """Validate and write the policy, refreshing the cache."""
        self.validate_config(config)
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(
                yaml.safe_dump({POLICY_SECTION: config.to_dict()}, default_flow_style=False, indent=2),
                encoding="utf-8")
        except OSError as e:
            logger.error(f"Could not write healing policy to {self.config_path}: {e}")
            raise ConfigurationError(f"Configuration saving failed: {e}") from e

        self._cached = copy.deepcopy(config)
        self._cached_stamp = self._file_stamp()
        logger.info(f"Healing policy saved to {self.config_path}")

    def validate_config(self, config: HealingConfiguration) -> None:
        errors = policy_errors(config)
        if errors:
            raise ConfigurationError("Configuration validation failed: " + "; ".join(errors))


config_loader = HealingConfigLoader()


def get_healing_config(force_reload: bool = False) -> HealingConfiguration:
    """Current policy; ``SELF_HEALING_ENABLED=false`` in the environment wins over the file."""
    config = config_loader.load_config(force_reload)
    if not settings.SELF_HEALING_ENABLED:
        config.enabled = False
    return config
