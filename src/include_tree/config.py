# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for include-tree."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from include_tree.providers import DEFAULT_ASSET_EXTENSIONS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = ".include_tree.yml"

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class ConfigurationError(Exception):
    """Raised when configuration validation fails critically."""

    pass


class Config:
    """Configuration for include tree analysis.

    Loads configuration from .include_tree.yml with validation and defaults.
    Invalid or unknown values are logged and replaced by defaults.
    """

    DEFAULTS: Dict[str, Any] = {
        "directive_names": ["include"],
        "asset_extensions": list(DEFAULT_ASSET_EXTENSIONS),
        "watched_extensions": [".lua"],
        "default_entry_path": "entry.lua",
        "max_nodes": 100000,
        "cache_max_entries": 0,  # 0 = unbounded
        "log_cycle_warnings": True,
        "log_missing_file_warnings": True,
        "watch_packages": True,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / DEFAULT_CONFIG_FILENAME

        self.config_path: Optional[Path] = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Config":
        """Build a configuration from an in-memory dict (same validation as files).

        Raises:
            ConfigurationError: If values is not a dict.
        """
        if not isinstance(values, dict):
            raise ConfigurationError(f"Configuration must be a dict, got {type(values)}")
        config = cls.__new__(cls)
        config.config_path = None
        config._config = cls._copy_defaults()
        config._validate_and_merge(values)
        return config

    @classmethod
    def _copy_defaults(cls) -> Dict[str, Any]:
        return {k: list(v) if isinstance(v, list) else v for k, v in cls.DEFAULTS.items()}

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        assert self.config_path is not None
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self._copy_defaults()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self._copy_defaults()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self._copy_defaults()
                return

            # Start with defaults and override with loaded values
            self._config = self._copy_defaults()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._copy_defaults()
        except OSError as e:
            logger.warning(
                f"Error reading configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._copy_defaults()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        # Type validation (bool is a subclass of int, reject it for numbers)
        expected_type = type(self.DEFAULTS[key])
        if not isinstance(value, expected_type):
            return False
        if expected_type is int and isinstance(value, bool):
            return False

        if key == "max_nodes":
            return bool(value > 0)
        elif key == "cache_max_entries":
            return bool(value >= 0)
        elif key == "default_entry_path":
            return bool(value.strip())
        elif key == "directive_names":
            return bool(value) and all(
                isinstance(name, str) and _IDENTIFIER.fullmatch(name) for name in value
            )
        elif key in ("asset_extensions", "watched_extensions"):
            return all(isinstance(ext, str) and ext.startswith(".") for ext in value)

        return True

    # Property accessors for all configuration values
    @property
    def directive_names(self) -> List[str]:
        """Function names treated as include directives."""
        value = self._config["directive_names"]
        assert isinstance(value, list)
        return value

    @property
    def asset_extensions(self) -> List[str]:
        """Extensions of non-source assets that are never parsed."""
        value = self._config["asset_extensions"]
        assert isinstance(value, list)
        return value

    @property
    def watched_extensions(self) -> List[str]:
        """Extensions whose changes invalidate a watched package's tree."""
        value = self._config["watched_extensions"]
        assert isinstance(value, list)
        return value

    @property
    def default_entry_path(self) -> str:
        """Entry file used when a package is registered without one."""
        value = self._config["default_entry_path"]
        assert isinstance(value, str)
        return value

    @property
    def max_nodes(self) -> int:
        """Maximum nodes materialized per tree."""
        value = self._config["max_nodes"]
        assert isinstance(value, int)
        return value

    @property
    def cache_max_entries(self) -> int:
        """Maximum cached package trees (0 = unbounded)."""
        value = self._config["cache_max_entries"]
        assert isinstance(value, int)
        return value

    @property
    def log_cycle_warnings(self) -> bool:
        """Whether detected cycles are logged as warnings."""
        value = self._config["log_cycle_warnings"]
        assert isinstance(value, bool)
        return value

    @property
    def log_missing_file_warnings(self) -> bool:
        """Whether missing include targets are logged as warnings."""
        value = self._config["log_missing_file_warnings"]
        assert isinstance(value, bool)
        return value

    @property
    def watch_packages(self) -> bool:
        """Whether directory packages served over MCP are watched for changes."""
        value = self._config["watch_packages"]
        assert isinstance(value, bool)
        return value
