"""Core HubPulse client components."""

from .hub import TelemetryHub, create_default_hub

__all__ = ["TelemetryHub", "create_default_hub"]
