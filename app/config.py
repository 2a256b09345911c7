"""Configuration management for disk-warn."""

import copy
import logging
import os
from dataclasses import dataclass
from typing import Optional

import structlog
import yaml

from app.errors import ConfigError
from app.notifiers.push import SUPPORTED_SERVICES

# Configure initial logging with WARNING level
logging.basicConfig(level=logging.WARNING)
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

CONFIG_ENV_VAR = "DISK_WARN_CONFIG"

DEFAULT_CONFIG = {
    "monitor": {
        "path": "/",  # Monitor root filesystem
        "threshold": 0.10,  # Alert when less than 10% is free
        "interval": 300,  # Check every 5 minutes
    },
    "notifier": {
        "service": "pushbullet",
        "token_env": "PUSHBULLET_TOKEN",
        "token": None,
        "token_file": None,
        "chat_id": None,
        "connect_timeout": 4,
        "read_timeout": 10,
    },
    "logging": {
        "level": "info",
        "file": "stdout",  # Default to stdout for container compatibility
    },
    "paths": {
        "log_file": None,  # Per-user default when unset
        "pid_file": None,
    },
}

DEFAULT_CONFIG_LOCATIONS = [
    "/etc/disk-warn/config.yaml",
    "~/.config/disk-warn/config.yaml",
    "./config.yaml",
]


@dataclass(frozen=True)
class MonitorSettings:
    """Monitor settings, fixed for the lifetime of the process."""

    path: str
    threshold: float
    interval: float


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigManager:
    """Manages application configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = config_path
        self.config = copy.deepcopy(DEFAULT_CONFIG)
        self.load_failed = False

        if not config_path:
            self.config_path = self._find_config()

        if self.config_path:
            self.load_config()

    def _find_config(self) -> Optional[str]:
        """Locate a configuration file, the environment variable first."""
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return os.path.expanduser(env_path)

        for path in DEFAULT_CONFIG_LOCATIONS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                return expanded_path

        logger.debug("No configuration file found, using defaults")
        return None

    def load_config(self) -> Optional[dict]:
        """Load configuration from file."""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f)

            if file_config:
                if not isinstance(file_config, dict):
                    logger.error(
                        "Configuration file must contain a mapping",
                        config_path=self.config_path,
                    )
                    self.load_failed = True
                    return None
                self._merge_config(self.config, file_config)

            logger.debug("Configuration loaded", config=self.config)
            return self.config

        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration: {e}")
            self.load_failed = True
            return None

    def _merge_config(self, base: dict, override: dict) -> None:
        """Recursively merge override config into base config.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _config_errors(self) -> list[str]:
        """Collect every problem with the current configuration."""
        errors = []
        if self.load_failed:
            errors.append(f"Could not load configuration from {self.config_path}")

        monitor = self.config.get("monitor")
        if not isinstance(monitor, dict):
            errors.append("Monitor configuration must be a dictionary")
            return errors

        path = monitor.get("path")
        if not isinstance(path, str) or not path:
            errors.append("Monitor path must be a non-empty string")

        threshold = monitor.get("threshold")
        if not _is_number(threshold) or not 0 < threshold <= 1:
            errors.append(
                f"Threshold must be a ratio in (0, 1], got {threshold!r}"
            )

        interval = monitor.get("interval")
        if not _is_number(interval) or interval <= 0:
            errors.append(f"Interval must be a positive number, got {interval!r}")

        notifier = self.config.get("notifier")
        if not isinstance(notifier, dict):
            errors.append("Notifier configuration must be a dictionary")
        else:
            service = notifier.get("service")
            if service not in SUPPORTED_SERVICES:
                errors.append(f"Unsupported notification service: {service}")
            if service == "telegram" and not notifier.get("chat_id"):
                errors.append("Telegram notifications require chat_id")
            for field in ("connect_timeout", "read_timeout"):
                value = notifier.get(field)
                if not _is_number(value) or value <= 0:
                    errors.append(f"Notifier {field} must be positive, got {value!r}")

        if not isinstance(self.config.get("logging", {}), dict):
            errors.append("Logging configuration must be a dictionary")

        if not isinstance(self.config.get("paths") or {}, dict):
            errors.append("Paths configuration must be a dictionary")

        return errors

    def validate_config(self) -> bool:
        """Validate the current configuration.

        Returns:
            True if configuration is valid, False otherwise
        """
        errors = self._config_errors()
        for error in errors:
            logger.error(error)
        return not errors

    def get_config(self) -> dict:
        """Get the current configuration.

        Returns:
            The current configuration dictionary
        """
        return self.config

    def get_settings(self) -> MonitorSettings:
        """Get validated monitor settings.

        Raises:
            ConfigError: If the configuration is invalid
        """
        errors = self._config_errors()
        if errors:
            raise ConfigError("; ".join(errors))

        monitor = self.config["monitor"]
        return MonitorSettings(
            path=monitor["path"],
            threshold=float(monitor["threshold"]),
            interval=float(monitor["interval"]),
        )

    def save_config(self) -> bool:
        """Save the current configuration to file.

        Returns:
            True if save was successful, False otherwise
        """
        if not self.config_path:
            logger.error("No configuration path to save to")
            return False

        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                yaml.dump(self.config, f, default_flow_style=False, sort_keys=False)
            logger.info("Configuration saved successfully")
            return True
        except OSError as e:
            logger.error("Failed to save configuration", error=str(e))
            return False
