"""Dispatch loop that drains the event buffer and delivers batches.

This module runs the background cycle of the client:
Producers → EventBuffer → DispatchLoop → BatchDeliverer → Transport

Once per cycle the loop drains the buffer, serializes the snapshot as a JSON
array of strings and hands it to a deliverer. Each batch is delivered on its
own worker thread so a batch stuck in backoff never delays the next drain.
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..buffer import EventBuffer
from ..config import DispatchConfig
from ..sender import Transport
from .retry import BatchDeliverer, RetryPolicy, RetryState


class LoopState(str, Enum):
    """Lifecycle states of the dispatch loop."""

    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class Batch:
    """Immutable snapshot of one buffer drain."""

    identifiers: tuple[str, ...]
    batch_id: str = field(default_factory=lambda: f"batch_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=datetime.now)

    def size(self) -> int:
        """Return the number of events in this batch."""
        return len(self.identifiers)

    def to_payload(self) -> str:
        """Serialize as a compact JSON array of strings, in drain order."""
        return json.dumps(list(self.identifiers), separators=(",", ":"))


class DispatchLoop:
    """Background loop delivering buffered events on a fixed interval."""

    def __init__(
        self,
        buffer: EventBuffer,
        transport: Transport,
        config: Optional[DispatchConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the dispatch loop.

        Args:
            buffer: Buffer to drain each cycle
            transport: Collaborator that sends serialized batches
            config: Cycle interval, retry schedule and dispatch mode
            sleep: Blocking sleep taking seconds, used for the cycle wait and backoff
        """
        self.buffer = buffer
        self.config = config or DispatchConfig()
        self.policy = RetryPolicy(max_retries=self.config.max_retries, delta_backoff_millis=self.config.delta_backoff_millis)
        self.deliverer = BatchDeliverer(transport, self.policy, sleep=sleep)
        self._sleep = sleep

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._state = LoopState.STOPPED
        self._stop_token: Optional[threading.Event] = None
        self._loop_thread: Optional[threading.Thread] = None

        # Statistics
        self._cycles = 0
        self._batches_dispatched = 0
        self._batches_dropped = 0
        self._in_flight = 0

    @property
    def state(self) -> LoopState:
        with self._lock:
            return self._state

    def is_running(self) -> bool:
        return self.state is LoopState.RUNNING

    def start(self) -> bool:
        """Start the dispatch loop on a background thread.

        Returns:
            True if a loop was started, False if one was already running
        """
        with self._lock:
            if self._state is LoopState.RUNNING:
                logger.warning("Dispatch loop is already running")
                return False

            # Each run gets its own token so a thread left over from a previous
            # run exits after its current sleep instead of resuming.
            stop_token = threading.Event()
            self._stop_token = stop_token
            self._state = LoopState.RUNNING
            self._loop_thread = threading.Thread(target=self._dispatch_loop, args=(stop_token,), name="hubpulse-dispatch", daemon=True)
            self._loop_thread.start()

        logger.info(f"Started dispatch loop (interval: {self.config.process_events_millis}ms, max retries: {self.policy.max_retries})")
        return True

    def stop(self) -> None:
        """Ask the loop to exit after its current sleep.

        Never blocks: in-flight deliveries keep running on their own threads.
        """
        with self._lock:
            if self._state is LoopState.STOPPED:
                return

            self._state = LoopState.STOPPED
            if self._stop_token is not None:
                self._stop_token.set()

            cycles, dispatched, in_flight = self._cycles, self._batches_dispatched, self._in_flight

        logger.info(f"Stopped dispatch loop. Stats - Cycles: {cycles}, Batches dispatched: {dispatched}, In flight: {in_flight}")

    def run_cycle(self) -> Optional[Batch]:
        """Drain the buffer once and dispatch the snapshot.

        Returns:
            The dispatched batch, or None when there was nothing to send
        """
        identifiers = self.buffer.drain_all()

        with self._lock:
            self._cycles += 1

        if not identifiers:
            return None

        batch = Batch(identifiers=tuple(identifiers))

        try:
            payload = batch.to_payload()
        except (TypeError, ValueError) as e:
            with self._lock:
                self._batches_dropped += 1
            logger.error(f"Dropping {batch.batch_id} with {batch.size()} events, serialization failed: {e}")
            return None

        with self._lock:
            self._batches_dispatched += 1
            self._in_flight += 1

        if self.config.dispatch_async:
            worker = threading.Thread(target=self._deliver_batch, args=(batch, payload), name=f"hubpulse-{batch.batch_id}", daemon=True)
            try:
                worker.start()
            except RuntimeError:
                with self._idle:
                    self._in_flight -= 1
                    self._batches_dispatched -= 1
                    self._batches_dropped += 1
                    self._idle.notify_all()
                logger.exception(f"Dropping {batch.batch_id} with {batch.size()} events, could not start delivery thread")
                return None
        else:
            self._deliver_batch(batch, payload)

        logger.debug(f"Dispatched {batch.batch_id} with {batch.size()} events")
        return batch

    def wait_for_deliveries(self, timeout: Optional[float] = None) -> bool:
        """Block until no batch is being delivered.

        Returns:
            True if all deliveries finished, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def get_stats(self) -> Dict[str, Any]:
        """Get dispatch statistics."""
        with self._lock:
            stats = {
                "state": self._state.value,
                "running": self._state is LoopState.RUNNING,
                "cycles": self._cycles,
                "batches_dispatched": self._batches_dispatched,
                "batches_dropped": self._batches_dropped,
                "in_flight": self._in_flight,
                "process_events_millis": self.config.process_events_millis,
            }

        stats.update(self.deliverer.get_stats())
        return stats

    def _dispatch_loop(self, stop_token: threading.Event) -> None:
        """Main dispatch loop."""
        logger.debug("Started dispatch loop thread")
        interval = self.config.process_events_millis / 1000

        while not stop_token.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Error in dispatch cycle")

            self._sleep(interval)

        logger.debug("Dispatch loop thread finished")

    def _deliver_batch(self, batch: Batch, payload: str) -> None:
        """Deliver one batch with a fresh retry state."""
        try:
            delivered = self.deliverer.deliver(payload, RetryState(), batch_id=batch.batch_id)
            if delivered:
                logger.info(f"Sent {batch.batch_id} with {batch.size()} events")
        except Exception:
            logger.exception(f"Unexpected error delivering {batch.batch_id}")
        finally:
            with self._idle:
                self._in_flight -= 1
                self._idle.notify_all()
