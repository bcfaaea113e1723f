"""Configuration management for the HubPulse client.

This module provides the client configuration as plain dataclasses and
allows environment variable overrides. Configuration is read once when a
hub is constructed; it is not reconfigured at runtime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from ..sender import EventHubCredentials, SenderConfig


class ConfigurationError(ValueError):
    """Raised when the configuration cannot produce usable credentials."""


@dataclass
class DispatchConfig:
    """Configuration for the dispatch loop and its retry schedule."""

    process_events_millis: int = 5000  # Cycle interval
    max_retries: int = 4  # Retries after the initial attempt
    delta_backoff_millis: int = 1750  # Added to every backoff delay
    dispatch_async: bool = True  # Deliver each batch on its own worker thread


@dataclass
class LogConfig:
    """Configuration for loguru sinks."""

    log_level: str = "INFO"
    log_to_console: bool = True
    log_to_file: bool = False
    log_file_path: Path = field(default_factory=lambda: Path.cwd() / "logs" / "hubpulse.log")
    log_rotation: str = "10 MB"
    log_retention: str = "7 days"


@dataclass
class HubConfig:
    """Complete HubPulse client configuration."""

    # Event Hub identity
    device_name: str = ""
    service_namespace: str = ""
    hub_name: str = ""
    key_name: str = ""
    key_value: str = ""

    # Component configurations
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    sender: SenderConfig = field(default_factory=SenderConfig)
    logging: LogConfig = field(default_factory=LogConfig)

    def __post_init__(self):
        """Apply environment variable overrides."""
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        """Apply configuration overrides from environment variables."""
        # Event Hub identity
        if device_name := os.getenv("HUBPULSE_DEVICE_NAME"):
            self.device_name = device_name

        if service_namespace := os.getenv("HUBPULSE_SERVICE_NAMESPACE"):
            self.service_namespace = service_namespace

        if hub_name := os.getenv("HUBPULSE_HUB_NAME"):
            self.hub_name = hub_name

        if key_name := os.getenv("HUBPULSE_KEY_NAME"):
            self.key_name = key_name

        if key_value := os.getenv("HUBPULSE_KEY_VALUE"):
            self.key_value = key_value

        # Dispatch settings
        if process_events_millis := os.getenv("HUBPULSE_PROCESS_EVENTS_MILLIS"):
            try:
                self.dispatch.process_events_millis = int(process_events_millis)
            except ValueError:
                logger.warning(f"Invalid process events interval: {process_events_millis}")

        if max_retries := os.getenv("HUBPULSE_MAX_RETRIES"):
            try:
                self.dispatch.max_retries = int(max_retries)
            except ValueError:
                logger.warning(f"Invalid max retries: {max_retries}")

        if delta_backoff := os.getenv("HUBPULSE_DELTA_BACKOFF_MILLIS"):
            try:
                self.dispatch.delta_backoff_millis = int(delta_backoff)
            except ValueError:
                logger.warning(f"Invalid delta backoff: {delta_backoff}")

        # Sender settings
        if timeout_seconds := os.getenv("HUBPULSE_SENDER_TIMEOUT"):
            try:
                self.sender.timeout_seconds = int(timeout_seconds)
            except ValueError:
                logger.warning(f"Invalid sender timeout: {timeout_seconds}")

        # Logging
        if log_level := os.getenv("HUBPULSE_LOG_LEVEL"):
            self.logging.log_level = log_level.upper()

        if log_file_path := os.getenv("HUBPULSE_LOG_FILE"):
            self.logging.log_file_path = Path(log_file_path)
            self.logging.log_to_file = True

    def has_credentials(self) -> bool:
        """Check whether every Event Hub identity field is filled in."""
        return all((self.device_name, self.service_namespace, self.hub_name, self.key_name, self.key_value))

    def get_credentials(self) -> EventHubCredentials:
        """Build validated Event Hub credentials.

        Raises:
            ConfigurationError: If the identity fields are missing or malformed
        """
        try:
            return EventHubCredentials(
                device_name=self.device_name,
                service_namespace=self.service_namespace,
                hub_name=self.hub_name,
                key_name=self.key_name,
                key_value=self.key_value,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid Event Hub credentials: {e}") from e

    def validate(self) -> tuple[bool, list[str]]:
        """Validate the configuration.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors = []

        if self.dispatch.process_events_millis <= 0:
            errors.append("Process events interval must be positive")

        if self.dispatch.max_retries < 0:
            errors.append("Max retries must not be negative")

        if self.dispatch.delta_backoff_millis < 0:
            errors.append("Delta backoff must not be negative")

        if self.sender.timeout_seconds <= 0:
            errors.append("Sender timeout must be positive")

        if self.sender.token_refresh_margin >= self.sender.token_ttl_seconds:
            errors.append("Token refresh margin must be shorter than the token lifetime")

        # Credentials are optional, but partial credentials are a mistake
        if any((self.device_name, self.service_namespace, self.hub_name, self.key_name, self.key_value)):
            try:
                self.get_credentials()
            except ConfigurationError as e:
                errors.append(str(e))

        return len(errors) == 0, errors


class ConfigManager:
    """Manages HubPulse client configuration."""

    def __init__(self):
        self._config: Optional[HubConfig] = None

    def load_config(
        self,
        device_name: Optional[str] = None,
        service_namespace: Optional[str] = None,
        hub_name: Optional[str] = None,
        key_name: Optional[str] = None,
        key_value: Optional[str] = None,
    ) -> HubConfig:
        """Load configuration with optional overrides.

        Explicit arguments win over environment variables.

        Returns:
            Configured HubConfig instance
        """
        config = HubConfig()

        if device_name:
            config.device_name = device_name

        if service_namespace:
            config.service_namespace = service_namespace

        if hub_name:
            config.hub_name = hub_name

        if key_name:
            config.key_name = key_name

        if key_value:
            config.key_value = key_value

        self._config = config
        return config

    def get_config(self) -> Optional[HubConfig]:
        """Get current configuration."""
        return self._config

    def validate_config(self) -> tuple[bool, list[str]]:
        """Validate current configuration.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        if not self._config:
            return False, ["No configuration loaded"]

        return self._config.validate()


# Global configuration manager instance
_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager."""
    return _config_manager


def get_current_config() -> Optional[HubConfig]:
    """Get the current configuration."""
    return _config_manager.get_config()
