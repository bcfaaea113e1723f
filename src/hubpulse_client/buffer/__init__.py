"""Event buffering module for the HubPulse client."""

from .event_buffer import EventBuffer

__all__ = ["EventBuffer"]
