"""HubPulse Client - batched, best-effort telemetry delivery to an Event Hub."""

from .config import get_config_manager, setup_logging
from .core import TelemetryHub, create_default_hub

__version__ = "1.0.0"

__all__ = ["TelemetryHub", "create_default_hub", "get_config_manager", "setup_logging"]
