"""
Configuration management for hvstats.

This module handles loading and validating configuration from files and environment variables.
"""

import os
import yaml
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict

from .exceptions import ConfigurationError
from .logging import logger


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class AppConfig(BaseModel):
    """Application configuration with Pydantic validation.

    Configuration can be loaded from:
    1. Explicit config file path
    2. Default config file locations
    3. Environment variables (highest priority)

    Environment variables:
    - HVSTATS_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - HVSTATS_LIBVIRT_URI: libvirt connection URI
    - HVSTATS_REGISTRATION_POLICY: What to do with a bad driver (strict, skip)
    - HVSTATS_DRIVERS: Comma-separated list of drivers to register
    - HVSTATS_COLLECT_CPU / HVSTATS_COLLECT_BLOCK / HVSTATS_COLLECT_NETWORK:
      Default collection categories (true/false)
    """

    model_config = ConfigDict(extra="forbid")  # Reject unknown fields

    log_level: str = Field(default="INFO", description="Logging level")
    libvirt_uri: str = Field(default="qemu:///system", min_length=1)
    registration_policy: str = Field(
        default="strict", description="strict aborts on a bad driver, skip warns"
    )
    drivers: List[str] = Field(default_factory=lambda: ["libvirt"])

    collect_cpu: bool = True
    collect_block: bool = True
    collect_network: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        v = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v

    @field_validator("registration_policy")
    @classmethod
    def validate_registration_policy(cls, v: str) -> str:
        v = v.lower()
        if v not in ("strict", "skip"):
            raise ValueError("registration_policy must be one of ['strict', 'skip']")
        return v

    @field_validator("drivers")
    @classmethod
    def validate_drivers(cls, v: List[str]) -> List[str]:
        if any(not name.strip() for name in v):
            raise ValueError("driver names must be non-empty")
        return [name.strip().lower() for name in v]


class ConfigLoader:
    """Loads and validates configuration."""

    def __init__(self) -> None:
        self.logger = logger

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """
        Load configuration from file and environment variables.

        Priority (highest to lowest):
        1. Environment variables
        2. Config file (explicit path or default locations)
        3. Default values

        Args:
            config_path: Path to configuration file. If None, looks in default locations.

        Returns:
            AppConfig: Loaded configuration
        """
        if config_path:
            config_data = self._load_data_from_file(config_path)
        else:
            default_paths = [
                os.path.expanduser("~/.config/hvstats/config.yaml"),
                "/etc/hvstats/config.yaml",
                "config.yaml",
            ]

            config_data = {}
            for path in default_paths:
                if os.path.exists(path):
                    self.logger.debug(f"Loading configuration from {path}", path=path)
                    config_data = self._load_data_from_file(path)
                    break

        config_data = self._apply_env_overrides(config_data)

        try:
            return AppConfig(**config_data)
        except ValueError as e:
            self.logger.error(f"Invalid configuration: {e}")
            raise ConfigurationError(f"Invalid configuration: {e}")

    def _apply_env_overrides(self, config_data: dict) -> dict:
        """Apply environment variable overrides to config data."""
        env_mappings = {
            "HVSTATS_LOG_LEVEL": "log_level",
            "HVSTATS_LIBVIRT_URI": "libvirt_uri",
            "HVSTATS_REGISTRATION_POLICY": "registration_policy",
            "HVSTATS_DRIVERS": ("drivers", _parse_list),
            "HVSTATS_COLLECT_CPU": ("collect_cpu", _parse_bool),
            "HVSTATS_COLLECT_BLOCK": ("collect_block", _parse_bool),
            "HVSTATS_COLLECT_NETWORK": ("collect_network", _parse_bool),
        }

        for env_var, mapping in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue
            if isinstance(mapping, tuple):
                config_key, converter = mapping
                try:
                    config_data[config_key] = converter(env_value)
                except (ValueError, TypeError) as e:
                    self.logger.warning(
                        f"Invalid value for {env_var}: {env_value}, ignoring. Error: {e}"
                    )
                    continue
            else:
                config_data[mapping] = env_value
            self.logger.debug(f"Applied environment override: {env_var}={env_value}")

        return config_data

    def _load_data_from_file(self, path: str) -> dict:
        """Load configuration data from a specific file."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Failed to parse configuration file {path}: {e}", path=path)
            raise ConfigurationError(f"Failed to parse configuration file: {e}")
        except OSError as e:
            self.logger.error(f"Failed to load configuration from {path}: {e}", path=path)
            raise ConfigurationError(f"Failed to load configuration: {e}")

        if data is None:
            # Empty file
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid configuration format in {path}")
        return data


# Global config loader
config_loader = ConfigLoader()
