from __future__ import annotations

import time
from typing import Callable

import pytest

from errorbridge.events import EventBus

_ENV_VARS = (
    "ERRORBRIDGE_ENV",
    "ERRORBRIDGE_NOTIFIER",
    "ERRORBRIDGE_ENABLED",
    "ERRORBRIDGE_EXCLUDED_ENVIRONMENTS",
    "ERRORBRIDGE_CONFIG",
    "APP_ENV",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell environment out of config tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def bus():
    event_bus = EventBus(name="test-events")
    yield event_bus
    event_bus.shutdown(timeout=2.0)


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it returns True or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
