from __future__ import annotations

import threading
from typing import Any, List

from conftest import wait_for
from errorbridge.events import EXCEPTION_TOPIC, EventBus


def test_trigger_delivers_on_worker_thread(bus) -> None:
    seen: List[tuple[Any, str]] = []
    bus.subscribe(EXCEPTION_TOPIC, lambda payload: seen.append((payload, threading.current_thread().name)))

    bus.trigger(EXCEPTION_TOPIC, "boom")

    assert wait_for(lambda: len(seen) == 1)
    assert seen[0] == ("boom", "test-events")


def test_trigger_immediately_runs_in_caller(bus) -> None:
    seen: List[str] = []
    bus.subscribe(EXCEPTION_TOPIC, lambda payload: seen.append(threading.current_thread().name))

    bus.trigger_immediately(EXCEPTION_TOPIC, "boom")

    assert seen == [threading.current_thread().name]


def test_subscribe_replaces_existing_handler(bus) -> None:
    seen: List[Any] = []

    def handler(payload: Any) -> None:
        seen.append(payload)

    bus.subscribe(EXCEPTION_TOPIC, handler)
    bus.subscribe(EXCEPTION_TOPIC, handler)
    bus.trigger_immediately(EXCEPTION_TOPIC, 1)

    assert seen == [1]
    assert bus.subscribers(EXCEPTION_TOPIC) == [handler]


def test_unsubscribe_reports_whether_handler_was_registered(bus) -> None:
    def handler(payload: Any) -> None:
        pass

    assert bus.unsubscribe(EXCEPTION_TOPIC, handler) is False
    bus.subscribe(EXCEPTION_TOPIC, handler)
    assert bus.unsubscribe(EXCEPTION_TOPIC, handler) is True
    assert bus.subscribers(EXCEPTION_TOPIC) == []


def test_topics_are_isolated(bus) -> None:
    seen: List[Any] = []
    bus.subscribe("other", seen.append)

    bus.trigger_immediately(EXCEPTION_TOPIC, "boom")

    assert seen == []


def test_failing_subscriber_does_not_block_others(bus) -> None:
    seen: List[Any] = []

    def broken(payload: Any) -> None:
        raise RuntimeError("subscriber broke")

    bus.subscribe(EXCEPTION_TOPIC, broken)
    bus.subscribe(EXCEPTION_TOPIC, seen.append)

    bus.trigger(EXCEPTION_TOPIC, "first")
    bus.trigger(EXCEPTION_TOPIC, "second")

    assert bus.drain(timeout=2.0)
    assert seen == ["first", "second"]


def test_drain_times_out_while_handler_is_blocked(bus) -> None:
    release = threading.Event()
    bus.subscribe(EXCEPTION_TOPIC, lambda payload: release.wait(2.0))

    bus.trigger(EXCEPTION_TOPIC, "slow")

    assert bus.drain(timeout=0.05) is False
    release.set()
    assert bus.drain(timeout=2.0) is True


def test_shutdown_flushes_queue_and_drops_later_events() -> None:
    bus = EventBus()
    seen: List[Any] = []
    bus.subscribe(EXCEPTION_TOPIC, seen.append)

    bus.trigger(EXCEPTION_TOPIC, "queued")
    bus.shutdown(timeout=2.0)
    bus.trigger(EXCEPTION_TOPIC, "late")

    assert seen == ["queued"]


def test_shutdown_without_worker_is_safe() -> None:
    bus = EventBus()
    bus.shutdown()
    bus.shutdown()
