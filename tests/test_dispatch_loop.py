"""Tests for the dispatch loop lifecycle and per-cycle batching."""

import json
import threading
import time
from http import HTTPStatus

from loguru import logger

from hubpulse_client.buffer import EventBuffer
from hubpulse_client.config import DispatchConfig
from hubpulse_client.dispatch import Batch, DispatchLoop, LoopState
from hubpulse_client.sender import CREATED, Transport


class GatedTransport(Transport):
    """Blocks every send until the gate opens."""

    def __init__(self):
        self.gate = threading.Event()
        self.payloads: list[str] = []

    def send(self, payload: str) -> int:
        self.payloads.append(payload)
        self.gate.wait(timeout=5)
        return CREATED


def inline_config(**overrides) -> DispatchConfig:
    return DispatchConfig(dispatch_async=False, **overrides)


def test_batch_serializes_as_compact_json_array():
    batch = Batch(identifiers=("GazedCube", "GazedSphere"))

    assert batch.to_payload() == '["GazedCube","GazedSphere"]'
    assert batch.size() == 2


def test_cycle_with_empty_buffer_sends_nothing(ok_transport, recording_sleep):
    loop = DispatchLoop(EventBuffer(), ok_transport, inline_config(), sleep=recording_sleep)

    assert loop.run_cycle() is None
    assert ok_transport.payloads == []
    assert loop.get_stats()["cycles"] == 1


def test_cycle_sends_drained_events_exactly_once(ok_transport, recording_sleep):
    buffer = EventBuffer()
    buffer.append("Cube")
    buffer.append("Sphere")
    loop = DispatchLoop(buffer, ok_transport, inline_config(), sleep=recording_sleep)

    batch = loop.run_cycle()

    assert batch is not None and batch.identifiers == ("Cube", "Sphere")
    assert ok_transport.payloads == ['["Cube","Sphere"]']
    assert buffer.is_empty()
    assert loop.run_cycle() is None
    assert len(ok_transport.payloads) == 1


def test_failed_batch_is_abandoned_and_loop_keeps_going(failing_transport, recording_sleep):
    buffer = EventBuffer()
    loop = DispatchLoop(buffer, failing_transport, inline_config(), sleep=recording_sleep)

    buffer.append("Cube")
    loop.run_cycle()
    buffer.append("Sphere")
    loop.run_cycle()

    stats = loop.get_stats()
    assert stats["batches_abandoned"] == 2
    assert stats["delivery_attempts"] == 10
    assert failing_transport.payloads[-1] == '["Sphere"]'


def test_unserializable_batch_is_dropped(ok_transport, recording_sleep):
    buffer = EventBuffer()
    buffer.append(object())
    loop = DispatchLoop(buffer, ok_transport, inline_config(), sleep=recording_sleep)

    assert loop.run_cycle() is None
    assert ok_transport.payloads == []
    assert loop.get_stats()["batches_dropped"] == 1

    buffer.append("Cube")
    assert loop.run_cycle() is not None
    assert ok_transport.payloads == ['["Cube"]']


def test_slow_batch_does_not_block_next_drain():
    buffer = EventBuffer()
    transport = GatedTransport()
    loop = DispatchLoop(buffer, transport, DispatchConfig(dispatch_async=True))

    buffer.append("first")
    loop.run_cycle()
    buffer.append("second")
    second = loop.run_cycle()

    assert second is not None and second.identifiers == ("second",)
    assert buffer.is_empty()

    transport.gate.set()
    assert loop.wait_for_deliveries(timeout=5)
    assert sorted(json.loads(p)[0] for p in transport.payloads) == ["first", "second"]
    assert loop.get_stats()["in_flight"] == 0


def test_recorded_event_is_in_first_batch_after_start(ok_transport):
    buffer = EventBuffer()
    buffer.append("X")
    loop = DispatchLoop(buffer, ok_transport, inline_config(process_events_millis=20))

    assert loop.start() is True
    try:
        assert ok_transport.sent.wait(timeout=2)
    finally:
        loop.stop()

    assert ok_transport.payloads[0] == '["X"]'


def test_start_twice_does_not_spawn_second_loop(ok_transport):
    loop = DispatchLoop(EventBuffer(), ok_transport, inline_config(process_events_millis=20))

    assert loop.start() is True
    first_thread = loop._loop_thread
    assert loop.start() is False
    assert loop._loop_thread is first_thread
    assert loop.state is LoopState.RUNNING

    loop.stop()
    assert loop.state is LoopState.STOPPED


def test_loop_thread_exits_after_stop(ok_transport):
    loop = DispatchLoop(EventBuffer(), ok_transport, inline_config(process_events_millis=20))
    loop.start()
    thread = loop._loop_thread

    loop.stop()
    thread.join(timeout=2)

    assert not thread.is_alive()


def test_restart_after_stop_runs_a_single_loop(ok_transport):
    buffer = EventBuffer()
    loop = DispatchLoop(buffer, ok_transport, inline_config(process_events_millis=50))

    loop.start()
    old_thread = loop._loop_thread
    loop.stop()
    assert loop.start() is True
    old_thread.join(timeout=2)

    assert not old_thread.is_alive()
    assert loop.is_running()
    loop.stop()


def test_stop_never_blocks_on_in_flight_retries(make_transport):
    transport = make_transport([HTTPStatus.SERVICE_UNAVAILABLE])
    buffer = EventBuffer()
    buffer.append("Cube")
    loop = DispatchLoop(buffer, transport, DispatchConfig(process_events_millis=20, delta_backoff_millis=60_000))

    loop.start()
    assert transport.sent.wait(timeout=2)

    started = time.monotonic()
    loop.stop()
    loop.stop()

    assert time.monotonic() - started < 0.5
    assert loop.get_stats()["in_flight"] == 1


def test_stop_on_stopped_loop_is_harmless(ok_transport):
    loop = DispatchLoop(EventBuffer(), ok_transport)

    loop.stop()

    assert loop.state is LoopState.STOPPED


class GatedSleep:
    """Sleep stand-in that records the delay and holds the caller until released."""

    def __init__(self):
        self.calls: list[float] = []
        self.finished: list[float] = []
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.entered.set()
        self.release.wait(timeout=5)
        self.finished.append(seconds)


def test_loop_sleeps_full_interval_after_empty_cycle(ok_transport):
    gated_sleep = GatedSleep()
    loop = DispatchLoop(EventBuffer(), ok_transport, inline_config(), sleep=gated_sleep)

    loop.start()
    try:
        assert gated_sleep.entered.wait(timeout=2)
        assert gated_sleep.calls == [5.0]
        assert ok_transport.payloads == []
    finally:
        loop.stop()
        gated_sleep.release.set()


def test_loop_sleeps_full_interval_after_sending_batch(ok_transport):
    buffer = EventBuffer()
    buffer.append("Cube")
    gated_sleep = GatedSleep()
    loop = DispatchLoop(buffer, ok_transport, inline_config(), sleep=gated_sleep)

    loop.start()
    try:
        assert gated_sleep.entered.wait(timeout=2)
        assert ok_transport.payloads == ['["Cube"]']
        assert gated_sleep.calls == [5.0]
    finally:
        loop.stop()
        gated_sleep.release.set()


def test_stop_during_sleep_lets_sleep_finish_before_exit(ok_transport):
    gated_sleep = GatedSleep()
    loop = DispatchLoop(EventBuffer(), ok_transport, inline_config(), sleep=gated_sleep)
    loop.start()
    thread = loop._loop_thread
    assert gated_sleep.entered.wait(timeout=2)

    loop.stop()
    thread.join(timeout=0.2)
    assert thread.is_alive()
    assert gated_sleep.finished == []

    gated_sleep.release.set()
    thread.join(timeout=2)

    assert not thread.is_alive()
    assert gated_sleep.finished == [5.0]
    assert gated_sleep.calls == [5.0]
    assert loop.get_stats()["cycles"] == 1


def test_batch_is_dropped_when_delivery_thread_cannot_start(ok_transport, monkeypatch):
    real_start = threading.Thread.start

    def refuse_delivery_threads(self):
        if self.name.startswith("hubpulse-batch"):
            raise RuntimeError("can't start new thread")
        real_start(self)

    monkeypatch.setattr(threading.Thread, "start", refuse_delivery_threads)
    buffer = EventBuffer()
    buffer.append("Cube")
    loop = DispatchLoop(buffer, ok_transport, DispatchConfig(dispatch_async=True))

    assert loop.run_cycle() is None

    stats = loop.get_stats()
    assert stats["in_flight"] == 0
    assert stats["batches_dropped"] == 1
    assert stats["batches_dispatched"] == 0
    assert loop.wait_for_deliveries(timeout=0.5) is True
    assert ok_transport.payloads == []


def test_stop_logs_counters_snapshot_with_delivery_in_flight():
    transport = GatedTransport()
    buffer = EventBuffer()
    buffer.append("Cube")
    loop = DispatchLoop(buffer, transport, DispatchConfig(process_events_millis=60_000))
    messages = []
    sink_id = logger.add(messages.append, format="{message}", level="INFO")

    try:
        loop.start()
        deadline = time.monotonic() + 2
        while not transport.payloads and time.monotonic() < deadline:
            time.sleep(0.01)

        loop.stop()
    finally:
        logger.remove(sink_id)
        transport.gate.set()

    stop_lines = [m for m in messages if m.startswith("Stopped dispatch loop")]
    assert len(stop_lines) == 1
    assert "Cycles: 1, Batches dispatched: 1, In flight: 1" in stop_lines[0]
    assert loop.wait_for_deliveries(timeout=2) is True
