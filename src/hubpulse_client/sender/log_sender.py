"""Fallback transport that writes batches to the log instead of the network."""

from __future__ import annotations

from loguru import logger

from .transport import CREATED, Transport


class LogSender(Transport):
    """Fire-and-forget transport for hosts without Event Hub credentials.

    Every payload is logged and reported as delivered, so batches never
    enter the retry schedule.
    """

    def __init__(self, level: str = "INFO"):
        self.level = level
        self._total_logged = 0

    def send(self, payload: str) -> int:
        logger.log(self.level, f"Telemetry batch: {payload}")
        self._total_logged += 1
        return CREATED

    def get_stats(self) -> dict:
        return {"total_logged": self._total_logged}
