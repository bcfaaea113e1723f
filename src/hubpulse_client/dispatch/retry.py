"""Retry schedule and delivery procedure for a single batch.

A batch is sent once and, on failure, retried up to ``max_retries`` more
times. Before retry ``n`` (1-based) the deliverer waits
``2 ** n * 1000 + delta_backoff_millis`` milliseconds.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..sender import Transport, is_delivered


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed exponential backoff with an additive offset."""

    max_retries: int = 4
    delta_backoff_millis: int = 1750

    def backoff_millis(self, attempt: int) -> int:
        """Delay to wait before retry number ``attempt``."""
        return 2**attempt * 1000 + self.delta_backoff_millis

    def is_exhausted(self, state: RetryState) -> bool:
        return state.attempt > self.max_retries


@dataclass
class RetryState:
    """Progress of one batch through the retry schedule."""

    attempt: int = 0

    def advance(self) -> int:
        self.attempt += 1
        return self.attempt


class BatchDeliverer:
    """Sends payloads through a transport following a retry policy."""

    def __init__(
        self,
        transport: Transport,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the deliverer.

        Args:
            transport: Collaborator that performs the actual send
            policy: Retry schedule
            sleep: Blocking sleep taking seconds, used for backoff delays
        """
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._lock = threading.Lock()

        # Statistics
        self._delivery_attempts = 0
        self._batches_delivered = 0
        self._batches_abandoned = 0

    def deliver(self, payload: str, state: Optional[RetryState] = None, batch_id: str = "batch") -> bool:
        """Deliver one payload, retrying with backoff until it is accepted or abandoned.

        Attempts are strictly sequential. Failures are logged and never raised.

        Args:
            payload: Serialized batch
            state: Retry progress to resume from (fresh state if omitted)
            batch_id: Identifier used in log messages

        Returns:
            True if the transport accepted the payload, False if the batch was abandoned
        """
        state = state or RetryState()

        while not self.policy.is_exhausted(state):
            with self._lock:
                self._delivery_attempts += 1

            if self._attempt_send(payload, batch_id, state.attempt):
                with self._lock:
                    self._batches_delivered += 1
                logger.debug(f"Delivered {batch_id} on attempt {state.attempt + 1}")
                return True

            state.advance()
            if self.policy.is_exhausted(state):
                break

            delay_millis = self.policy.backoff_millis(state.attempt)
            logger.warning(f"Delivery of {batch_id} failed, retry {state.attempt}/{self.policy.max_retries} in {delay_millis}ms")
            self._sleep(delay_millis / 1000)

        with self._lock:
            self._batches_abandoned += 1
        logger.error(f"Abandoning {batch_id} after {state.attempt} failed attempts")
        return False

    def get_stats(self) -> Dict[str, Any]:
        """Get delivery statistics."""
        with self._lock:
            return {
                "delivery_attempts": self._delivery_attempts,
                "batches_delivered": self._batches_delivered,
                "batches_abandoned": self._batches_abandoned,
                "max_retries": self.policy.max_retries,
                "delta_backoff_millis": self.policy.delta_backoff_millis,
            }

    def _attempt_send(self, payload: str, batch_id: str, attempt: int) -> bool:
        """Run one transport call; any exception counts as a failed attempt."""
        try:
            status = self.transport.send(payload)
        except Exception as e:
            logger.warning(f"Transport raised while sending {batch_id} (attempt {attempt + 1}): {e}")
            return False

        if not is_delivered(status):
            logger.debug(f"Transport returned {status} for {batch_id} (attempt {attempt + 1})")
            return False

        return True
