"""Configuration service for engine settings."""

import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import structlog

from ..models import EngineConfig
from .errors import ConfigurationError

log = structlog.stdlib.get_logger()


VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self, is_valid: bool, errors: list[str] | None = None) -> None:
        self.is_valid: bool = is_valid
        self.errors: list[str] = errors or []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigurationService:
    """Service for loading, validating and saving EngineConfig."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path: Path = config_path or Path.home() / ".config" / "game-update-tracker" / "config.json"
        log.info("Configuration service initialized", config_path=str(self.config_path))

    def load_config(self) -> EngineConfig:
        """Load configuration from file or return default configuration."""
        if not self.config_path.exists():
            log.info("Configuration file not found, using defaults")
            return self._get_default_config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("configuration root must be an object")

            config = self._dict_to_config(data)
            validation_result = self.validate_config(config)

            if not validation_result.is_valid:
                log.warning("Invalid configuration loaded, using defaults", errors=validation_result.errors)
                return self._get_default_config()

            log.info("Configuration loaded successfully")
            return config

        except (json.JSONDecodeError, TypeError, ValueError) as e:
            log.error("Failed to load configuration, using defaults", error=str(e))
            return self._get_default_config()

    def save_config(self, config: EngineConfig) -> None:
        """Save configuration to file.

        Raises:
            ConfigurationError: If the configuration does not validate
            OSError: If the file cannot be written
        """
        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            raise ConfigurationError(
                f"Invalid configuration: {', '.join(validation_result.errors)}",
                expected="values within the documented ranges",
            )

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self._config_to_dict(config), f, indent=2, ensure_ascii=False)

            log.info("Configuration saved successfully")

        except OSError as e:
            log.error("Failed to save configuration", error=str(e))
            raise

    def validate_config(self, config: EngineConfig) -> ValidationResult:
        """Validate configuration settings."""
        errors = []

        for name in ("match_threshold", "high_similarity_threshold", "sequel_band_low",
                     "sequel_band_high", "auto_approval_threshold"):
            value = getattr(config, name)
            if not _is_number(value) or not 0.0 <= value <= 1.0:
                errors.append(f"{name} must be a number between 0 and 1")

        if (
            _is_number(config.sequel_band_low)
            and _is_number(config.sequel_band_high)
            and config.sequel_band_low >= config.sequel_band_high
        ):
            errors.append("sequel_band_low must be below sequel_band_high")

        if (
            _is_number(config.sequel_band_high)
            and _is_number(config.match_threshold)
            and config.sequel_band_high > config.match_threshold
        ):
            errors.append("sequel_band_high must not exceed match_threshold")

        if not _is_number(config.classifier_timeout) or config.classifier_timeout <= 0:
            errors.append("classifier_timeout must be a positive number")
        elif config.classifier_timeout > 120:
            errors.append("classifier_timeout should not exceed 120 seconds")

        for name in ("classifier_url", "resolver_url", "feed_url"):
            value = getattr(config, name)
            if value is not None and (not isinstance(value, str) or not value.startswith(("http://", "https://"))):
                errors.append(f"{name} must be an http(s) URL or null")

        if not isinstance(config.resolver_concurrency, int) or config.resolver_concurrency < 1:
            errors.append("resolver_concurrency must be a positive integer")
        elif config.resolver_concurrency > 20:
            errors.append("resolver_concurrency should not exceed 20")

        if not isinstance(config.feed_limit, int) or config.feed_limit < 1:
            errors.append("feed_limit must be a positive integer")

        if not isinstance(config.date_version_grace_days, int) or config.date_version_grace_days < 0:
            errors.append("date_version_grace_days must be a non-negative integer")

        if not _is_number(config.request_delay) or config.request_delay < 0:
            errors.append("request_delay must be a non-negative number")
        elif config.request_delay > 60:
            errors.append("request_delay should not exceed 60 seconds")

        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        return ValidationResult(len(errors) == 0, errors)

    def _get_default_config(self) -> EngineConfig:
        return EngineConfig()

    def _config_to_dict(self, config: EngineConfig) -> dict[str, Any]:
        """Convert EngineConfig to dictionary for JSON serialization."""
        return {field.name: getattr(config, field.name) for field in fields(EngineConfig)}

    def _dict_to_config(self, data: dict[str, Any]) -> EngineConfig:
        """Convert dictionary to EngineConfig.

        Unknown keys are ignored and missing keys take their defaults.
        """
        defaults = EngineConfig()
        values: dict[str, Any] = {}
        for field in fields(EngineConfig):
            if field.name not in data:
                continue
            raw = data[field.name]
            default = getattr(defaults, field.name)
            if isinstance(default, bool):
                values[field.name] = raw if isinstance(raw, bool) else default
            elif isinstance(default, int):
                values[field.name] = int(raw) if _is_number(raw) else default
            elif isinstance(default, float):
                values[field.name] = float(raw) if _is_number(raw) else default
            elif field.name == "log_level":
                values[field.name] = str(raw).upper() if isinstance(raw, str) else default
            else:
                values[field.name] = str(raw) if raw else None
        return EngineConfig(**values)
