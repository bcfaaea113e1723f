"""Shared fixtures: fake transports and a recording sleep."""

import os
import threading
from http import HTTPStatus

import pytest

from hubpulse_client.sender import CREATED, Transport


class ScriptedTransport(Transport):
    """Transport returning a scripted sequence of statuses, then the last one forever."""

    def __init__(self, statuses=(CREATED,)):
        self.statuses = list(statuses)
        self.payloads: list[str] = []
        self._lock = threading.Lock()
        self.sent = threading.Event()

    def send(self, payload: str) -> int:
        with self._lock:
            self.payloads.append(payload)
            index = min(len(self.payloads), len(self.statuses)) - 1
            status = self.statuses[index]
        self.sent.set()
        if isinstance(status, Exception):
            raise status
        return status


class RecordingSleep:
    """Stand-in for time.sleep that records requested delays without waiting."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def millis(self) -> list[int]:
        return [round(seconds * 1000) for seconds in self.calls]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep HUBPULSE_* variables from the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("HUBPULSE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def ok_transport():
    return ScriptedTransport([CREATED])


@pytest.fixture
def failing_transport():
    return ScriptedTransport([HTTPStatus.INTERNAL_SERVER_ERROR])


@pytest.fixture
def make_transport():
    return ScriptedTransport
