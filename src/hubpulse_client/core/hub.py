"""Telemetry hub: the producer-facing entry point of the HubPulse client.

Application code records event identifiers from any thread; the hub buffers
them and a background dispatch loop delivers them in batches. Nothing on the
producer side can block on the network or raise because of telemetry.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from loguru import logger

from ..buffer import EventBuffer
from ..config import ConfigurationError, HubConfig
from ..dispatch import DispatchLoop
from ..sender import EventHubSender, LogSender, Transport


class TelemetryHub:
    """Buffers telemetry events and dispatches them in the background."""

    def __init__(self, config: Optional[HubConfig] = None, transport: Optional[Transport] = None):
        """Initialize the telemetry hub.

        Args:
            config: Client configuration (environment defaults if omitted)
            transport: Explicit transport; otherwise chosen from the configuration
        """
        self.config = config or HubConfig()
        self.transport = transport or self._create_transport()
        self.buffer = EventBuffer()
        self.dispatch_loop = DispatchLoop(self.buffer, self.transport, self.config.dispatch)

        logger.info(f"Initialized telemetry hub with {type(self.transport).__name__}")

    def start_processing(self) -> None:
        """Start the background dispatch loop. Starting twice is a no-op."""
        self.dispatch_loop.start()

    def stop_processing(self) -> None:
        """Stop dispatching after the current cycle; never blocks or raises."""
        try:
            self.dispatch_loop.stop()
        except Exception:
            logger.exception("Error stopping dispatch loop")

    def record_event(self, identifier: str) -> None:
        """Record one event identifier for the next batch."""
        try:
            self.buffer.append(identifier if isinstance(identifier, str) else str(identifier))
        except Exception:
            logger.exception("Failed to record telemetry event")

    def is_processing(self) -> bool:
        return self.dispatch_loop.is_running()

    def get_status(self) -> Dict[str, Any]:
        """Get hub status."""
        return {
            "processing": self.is_processing(),
            "transport": type(self.transport).__name__,
            "buffer": self.buffer.get_stats(),
            "dispatch": self.dispatch_loop.get_stats(),
            "sender": self.transport.get_stats(),
        }

    def _create_transport(self) -> Transport:
        """Pick the Event Hub sender when credentials are configured, else log batches."""
        if self.config.has_credentials():
            try:
                return EventHubSender(self.config.get_credentials(), self.config.sender)
            except ConfigurationError as e:
                logger.error(f"{e}; telemetry batches will only be logged")
                return LogSender()

        logger.warning("No Event Hub credentials configured, telemetry batches will only be logged")
        return LogSender()


def create_default_hub(
    device_name: str,
    service_namespace: str,
    hub_name: str,
    key_name: str,
    key_value: str,
) -> TelemetryHub:
    """Create a telemetry hub publishing to an Event Hub with default settings.

    Args:
        device_name: Publisher identifier for this device
        service_namespace: Service Bus namespace hosting the hub
        hub_name: Event Hub name
        key_name: Shared access authorization rule name
        key_value: Shared access authorization rule key

    Returns:
        Configured telemetry hub (not yet processing)
    """
    config = HubConfig(
        device_name=device_name,
        service_namespace=service_namespace,
        hub_name=hub_name,
        key_name=key_name,
        key_value=key_value,
    )

    return TelemetryHub(config)
