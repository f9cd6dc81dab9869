from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from queue import Empty, Queue
from typing import Any, Callable, Optional, Protocol

LOGGER = logging.getLogger(__name__)

EXCEPTION_TOPIC = "exception"

Handler = Callable[[Any], None]


class EventSubscriber(Protocol):
    """The part of an event bus the reporter relies on."""

    def subscribe(self, topic: str, handler: Handler) -> None: ...

    def unsubscribe(self, topic: str, handler: Handler) -> bool: ...


class EventBus:
    """In-process publish/subscribe bus with a background delivery worker.

    ``trigger`` queues the payload and returns immediately; a single daemon
    thread delivers queued events to subscribers in FIFO order.
    ``trigger_immediately`` delivers in the calling thread.
    """

    def __init__(self, *, name: str = "errorbridge-events") -> None:
        self._name = name
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._queue: Queue[Optional[tuple[str, Any]]] = Queue()
        self._worker: Optional[threading.Thread] = None
        self._stopping = False

    def subscribe(self, topic: str, handler: Handler) -> None:
        """Register ``handler`` for ``topic``, replacing an existing registration."""
        with self._lock:
            handlers = [existing for existing in self._subscribers[topic] if existing != handler]
            handlers.append(handler)
            self._subscribers[topic] = handlers

    def unsubscribe(self, topic: str, handler: Handler) -> bool:
        with self._lock:
            handlers = self._subscribers.get(topic, [])
            remaining = [existing for existing in handlers if existing != handler]
            if len(remaining) == len(handlers):
                return False
            self._subscribers[topic] = remaining
            return True

    def subscribers(self, topic: str) -> list[Handler]:
        with self._lock:
            return list(self._subscribers.get(topic, []))

    def trigger(self, topic: str, payload: Any) -> None:
        if self._stopping:
            LOGGER.debug("Event bus %s is shut down; dropping '%s' event", self._name, topic)
            return
        self._ensure_worker()
        self._queue.put((topic, payload))

    def trigger_immediately(self, topic: str, payload: Any) -> None:
        self._deliver(topic, payload)

    def drain(self, timeout: float = 5.0) -> bool:
        """Wait until every queued event has been delivered.

        Returns False if events are still pending when ``timeout`` expires.
        """
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def shutdown(self, timeout: float = 5.0) -> None:
        """Deliver what is queued, then stop the worker thread."""
        with self._lock:
            if self._stopping:
                return
            self._stopping = True
            worker = self._worker
        if worker is None:
            return
        self._queue.put(None)
        worker.join(timeout=timeout)
        if worker.is_alive():
            LOGGER.warning("Event bus %s worker did not stop within %ss", self._name, timeout)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._worker.start()

    def _run(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=1.0)
            except Empty:
                continue
            try:
                if item is None:
                    return
                topic, payload = item
                self._deliver(topic, payload)
            finally:
                self._queue.task_done()

    def _deliver(self, topic: str, payload: Any) -> None:
        for handler in self.subscribers(topic):
            try:
                handler(payload)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Subscriber %r failed while handling '%s' event", handler, topic)
