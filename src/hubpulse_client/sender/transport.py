"""Transport interface used by the dispatch loop to deliver a serialized batch."""

from __future__ import annotations

from abc import ABC, abstractmethod
from http import HTTPStatus

# The ingest endpoint answers 201 for an accepted batch; anything else is a failure.
CREATED = HTTPStatus.CREATED


class Transport(ABC):
    """Delivers one serialized batch and reports the resulting status code."""

    @abstractmethod
    def send(self, payload: str) -> int:
        """Send a JSON payload.

        Args:
            payload: Serialized batch (JSON array of strings)

        Returns:
            HTTP status code; only ``CREATED`` counts as delivered
        """

    def get_stats(self) -> dict:
        return {}


def is_delivered(status: int) -> bool:
    """Return True when a transport status means the batch was accepted."""
    return status == CREATED
