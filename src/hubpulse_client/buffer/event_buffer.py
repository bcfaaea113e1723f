"""In-memory event buffer for the HubPulse client.

This module provides the thread-safe buffer that producer threads append
event identifiers to and that the dispatch loop drains once per cycle. It is
unbounded; producers are never refused or blocked beyond the lock.
"""

from __future__ import annotations

import threading

from loguru import logger


class EventBuffer:
    """Thread-safe ordered buffer of event identifiers with atomic drain."""

    def __init__(self):
        self._events: list[str] = []
        self._lock = threading.Lock()

        # Statistics
        self._total_appended = 0
        self._total_drained = 0
        self._total_drains = 0

    def append(self, identifier: str) -> None:
        """Add an event identifier to the end of the buffer."""
        with self._lock:
            self._events.append(identifier)
            self._total_appended += 1

    def drain_all(self) -> list[str]:
        """Remove and return every buffered identifier in insertion order.

        Returns:
            List of identifiers (empty if nothing was appended since the last drain)
        """
        with self._lock:
            events = self._events
            self._events = []
            self._total_drained += len(events)
            self._total_drains += 1

        if events:
            logger.debug(f"Drained {len(events)} events from buffer")

        return events

    def size(self) -> int:
        """Return the current buffer size."""
        with self._lock:
            return len(self._events)

    def is_empty(self) -> bool:
        """Check if the buffer is empty."""
        with self._lock:
            return len(self._events) == 0

    def get_stats(self) -> dict:
        """Get buffer statistics."""
        with self._lock:
            return {
                "current_size": len(self._events),
                "total_appended": self._total_appended,
                "total_drained": self._total_drained,
                "total_drains": self._total_drains,
            }
