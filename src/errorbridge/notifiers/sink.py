from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from ..config import ReporterConfig
from .types import Notifier

LOGGER = logging.getLogger(__name__)


class SinkNotifier(Notifier):
    """In-memory notifier that keeps every exception it receives."""

    name = "sink"

    def __init__(self) -> None:
        super().__init__()
        self.initialized = False
        self.notified: Optional[Any] = None
        self.notifications: List[Any] = []
        self.contexts: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def init(self, config: ReporterConfig) -> None:
        self.initialized = True

    def notify(self, exception: Any, context: Dict[str, Any]) -> None:
        with self._lock:
            self.notifications.append(exception)
            self.contexts.append(dict(context))
            self.notified = exception
        LOGGER.debug("Recorded %s in sink notifier", type(exception).__name__)

    def clear(self) -> None:
        with self._lock:
            self.notifications.clear()
            self.contexts.clear()
            self.notified = None
