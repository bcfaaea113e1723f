"""Configuration module for HubPulse client."""

from .logger_config import setup_logging
from .settings import ConfigManager, ConfigurationError, DispatchConfig, HubConfig, LogConfig, SenderConfig, get_config_manager, get_current_config

__all__ = [
    "HubConfig",
    "DispatchConfig",
    "SenderConfig",
    "LogConfig",
    "ConfigManager",
    "ConfigurationError",
    "get_config_manager",
    "get_current_config",
    "setup_logging",
]
