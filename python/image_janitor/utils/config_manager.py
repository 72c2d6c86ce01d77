#!/usr/bin/env python3
"""
Configuration Manager for the Docker image janitor

This module handles loading and managing configuration from config.yaml
and HM_* environment variables. Configuration is read once at startup; the
resulting PolicyConfig is immutable for the lifetime of the process.
"""

import logging
import os
import re
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml
from tabulate import tabulate

from image_janitor.models import ExclusionRules, PolicyConfig

DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"

# Environment variable -> exclusion config key
EXCLUSION_ENV_VARS = {
    "image_name_prefix": "HM_EX_IMAGENAMEPREFIX",
    "image_name_suffix": "HM_EX_IMAGENAMESUFFIX",
    "image_tag_prefix": "HM_EX_IMAGETAGPREFIX",
    "image_tag_suffix": "HM_EX_IMAGETAGSUFFIX",
    "image_label": "HM_EX_IMAGELABEL",
}

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


def split_list(value: Union[str, Iterable[Any], None]) -> List[str]:
    """Split a comma-separated string (or YAML list) into clean entries.

    Whitespace is stripped and empty entries are dropped, so "a,,b" and
    "a, b" both yield ["a", "b"]. An empty string would otherwise match
    every name as a prefix or suffix.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(v) for v in value]
    return [item.strip() for item in items if item.strip()]


class ConfigManager:
    """Manages configuration for the Docker image janitor"""

    def __init__(self, config_file: str = None, validate: bool = True, environ: Optional[Dict[str, str]] = None):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
            environ: Environment mapping to read overrides from (defaults to os.environ)
        """
        self.environ = os.environ if environ is None else environ
        if config_file is None:
            config_file = self.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "policy": {
                "retention_window": 7 * 24 * 60 * 60,  # one week
                "enforcing": False,
                "prune_dangling": True,
                "dry_run": False,
            },
            "exclude": {
                "image_name_prefix": [],
                "image_name_suffix": [],
                "image_tag_prefix": [],
                "image_tag_suffix": [],
                "image_label": [],
            },
            "docker": {
                "host": DEFAULT_DOCKER_HOST,
                "api_version": "1.35",
                "timeout": 60,  # Timeout for non-streaming daemon calls in seconds
            },
            "logging": {"level": "INFO"},
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.info(f"Config file {self.config_file} not found, using defaults and environment")
                return default_config
        except Exception as e:
            logging.error(f"Error loading config file: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _get_int(self, env_var: str, section: str, key: str) -> Any:
        """Read an integer from the environment, falling back to the config value"""
        raw = self.environ.get(env_var)
        if raw is None or raw == "":
            return self.config[section][key]
        try:
            return int(raw)
        except ValueError:
            logging.warning(f"{env_var}={raw!r} is not an integer, using {self.config[section][key]}")
            return self.config[section][key]

    def _get_flag(self, env_var: str, section: str, key: str) -> bool:
        """Read a 0/1 flag from the environment, falling back to the config value.

        Only the value 1 enables a flag; any other integer disables it.
        """
        raw = self.environ.get(env_var)
        if raw is None or raw == "":
            return bool(self.config[section][key])
        try:
            return int(raw) == 1
        except ValueError:
            logging.warning(f"{env_var}={raw!r} is not 0 or 1, using {bool(self.config[section][key])}")
            return bool(self.config[section][key])

    # Policy configuration
    def get_retention_window(self) -> int:
        """Seconds an image may stay unseen before it is eligible for deletion"""
        return self._get_int("HM_UNTIL", "policy", "retention_window")

    def is_enforcing(self) -> bool:
        return self._get_flag("HM_ENFORCING", "policy", "enforcing")

    def is_prune_dangling(self) -> bool:
        return self._get_flag("HM_DELETE_DANGLING", "policy", "prune_dangling")

    def is_dry_run(self) -> bool:
        return self._get_flag("HM_DRY_RUN", "policy", "dry_run")

    def get_exclusion_list(self, key: str) -> List[str]:
        """Get one exclusion list; the environment replaces (not extends) the config value"""
        raw = self.environ.get(EXCLUSION_ENV_VARS[key])
        if raw:
            return split_list(raw)
        return split_list(self.config["exclude"].get(key))

    def get_exclusion_rules(self) -> ExclusionRules:
        return ExclusionRules(**{key: tuple(self.get_exclusion_list(key)) for key in EXCLUSION_ENV_VARS})

    def get_policy_config(self) -> PolicyConfig:
        """Build the immutable policy configuration"""
        return PolicyConfig(
            retention_window=self.get_retention_window(),
            enforcing=self.is_enforcing(),
            prune_dangling=self.is_prune_dangling(),
            dry_run=self.is_dry_run(),
            exclusions=self.get_exclusion_rules(),
        )

    # Docker configuration
    def get_docker_host(self) -> str:
        return self.environ.get("DOCKER_HOST") or self.config["docker"]["host"]

    def get_docker_socket_path(self) -> Optional[str]:
        """Filesystem path of the daemon socket, or None for non-unix endpoints"""
        host = self.get_docker_host()
        if host.startswith("unix://"):
            return host[len("unix://"):]
        return None

    def get_docker_api_version(self) -> str:
        return self.environ.get("HM_DOCKER_API_VERSION") or str(self.config["docker"]["api_version"])

    def get_docker_timeout(self) -> int:
        return self._get_int("HM_DOCKER_TIMEOUT", "docker", "timeout")

    # Logging configuration
    def get_log_level(self) -> str:
        return (self.environ.get("HM_LOG_LEVEL") or self.config["logging"]["level"]).upper()

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        retention_window = self.get_retention_window()
        if not isinstance(retention_window, int) or isinstance(retention_window, bool) or retention_window < 1:
            errors.append(f"retention window (HM_UNTIL) must be a positive integer (seconds), got: {retention_window}")
        elif retention_window < 3600:
            warnings.append(
                f"retention window is very short ({retention_window}s), recently used images will be deleted quickly"
            )

        docker_host = self.get_docker_host()
        if not docker_host or not docker_host.strip():
            errors.append("Docker host is required and cannot be empty")
        elif not self._is_valid_docker_host(docker_host):
            errors.append(
                f"Docker host '{docker_host}' is invalid (expected unix://, tcp://, ssh://, npipe:// or http(s):// URL)"
            )

        timeout = self.get_docker_timeout()
        if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout < 1:
            errors.append(f"docker.timeout must be a positive integer (seconds), got: {timeout}")
        elif timeout > 600:
            warnings.append(f"docker.timeout is very high ({timeout}s), a hung daemon will stall event processing")

        log_level = self.get_log_level()
        if log_level not in VALID_LOG_LEVELS:
            errors.append(f"log level must be one of {', '.join(VALID_LOG_LEVELS)}, got: {log_level}")

        for key in EXCLUSION_ENV_VARS:
            value = self.config["exclude"].get(key)
            if value is not None and not isinstance(value, (str, list, tuple)):
                errors.append(f"exclude.{key} must be a list or a comma-separated string, got: {value!r}")

        if not errors and self.is_enforcing() and self.get_exclusion_rules().is_empty():
            warnings.append("enforcing mode is on and no exclusion rules are configured")

        # Log warnings
        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        # Raise error if there are validation errors
        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def _is_valid_docker_host(self, host: str) -> bool:
        """Validate Docker endpoint URL format"""
        pattern = r"^(unix|npipe)://.+$|^(tcp|ssh|http|https)://[^\s/]+(:[0-9]{1,5})?/?$"
        return bool(re.match(pattern, host.strip()))

    def config_rows(self) -> List[List[Any]]:
        """Effective configuration as (setting, env var, value) rows"""
        rows = [
            ["retention window (s)", "HM_UNTIL", self.get_retention_window()],
            ["prune dangling", "HM_DELETE_DANGLING", self.is_prune_dangling()],
            ["enforcing", "HM_ENFORCING", self.is_enforcing()],
            ["dry run", "HM_DRY_RUN", self.is_dry_run()],
        ]
        for key, env_var in EXCLUSION_ENV_VARS.items():
            rows.append([f"exclude {key.replace('_', ' ')}", env_var, ", ".join(self.get_exclusion_list(key)) or "-"])
        rows.extend(
            [
                ["docker host", "DOCKER_HOST", self.get_docker_host()],
                ["docker api version", "HM_DOCKER_API_VERSION", self.get_docker_api_version()],
                ["docker timeout (s)", "HM_DOCKER_TIMEOUT", self.get_docker_timeout()],
                ["log level", "HM_LOG_LEVEL", self.get_log_level()],
            ]
        )
        return rows

    def log_config(self, logger: logging.Logger) -> None:
        """Log the effective configuration, one setting per line"""
        logger.info("Configuration:")
        for setting, env_var, value in self.config_rows():
            logger.info(f" {env_var:<22}: {value}")

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(tabulate(self.config_rows(), headers=["Setting", "Environment", "Value"], tablefmt="grid"))
