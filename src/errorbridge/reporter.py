from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

from .config import ReporterConfig
from .events import EXCEPTION_TOPIC, EventSubscriber
from .filters import should_report
from .formatting import build_context
from .logging_utils import render_fields_block
from .notifiers import NOTIFIERS, NotifierFactory, resolve_notifier
from .notifiers.types import DeliveryErrorHook, Notifier

LOGGER = logging.getLogger(__name__)


@dataclass
class DispatchStats:
    delivered: int = 0
    suppressed: int = 0
    failed: int = 0
    last_error: Optional[BaseException] = None


@dataclass(frozen=True)
class _Armed:
    """Configuration snapshot paired with the notifier built from it."""

    config: ReporterConfig
    notifier: Optional[Notifier] = None
    backend: Optional[tuple[Any, ...]] = None


class Reporter:
    """Forwards ``exception`` events from an event bus to one notifier backend.

    The reporter does nothing until ``on_init()`` runs. Each call to
    ``on_init()`` re-reads the current configuration, (re)builds the notifier
    when its backend settings changed and re-registers a single handler on
    the bus. Delivery failures are logged and counted, never raised.

    ``stats.delivered`` counts dispatches whose ``notify`` returned without
    reporting a failure on the dispatching thread. A notifier that hands
    work to its own thread and reports the failure from there is counted
    as delivered at dispatch time and as failed when the report arrives.
    """

    def __init__(
        self,
        config: ReporterConfig,
        bus: EventSubscriber,
        *,
        notifiers: Optional[Mapping[str, NotifierFactory]] = None,
        on_delivery_error: Optional[DeliveryErrorHook] = None,
    ) -> None:
        self._bus = bus
        self._registry: Dict[str, NotifierFactory] = dict(NOTIFIERS)
        if notifiers:
            self._registry.update(notifiers)
        self._on_delivery_error = on_delivery_error
        self._state = _Armed(config=config)
        self._init_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = DispatchStats()
        self._dispatch = threading.local()
        self._subscribed = False

    @property
    def config(self) -> ReporterConfig:
        return self._state.config

    @property
    def notifier(self) -> Optional[Notifier]:
        return self._state.notifier

    @property
    def ready(self) -> bool:
        return self._state.notifier is not None and self._subscribed

    @property
    def stats(self) -> DispatchStats:
        with self._stats_lock:
            return replace(self._stats)

    def configure(self, config: ReporterConfig) -> None:
        """Replace the configuration snapshot.

        Dispatch picks up the new snapshot immediately; notifier backend
        changes take effect on the next ``on_init()``.
        """
        with self._init_lock:
            self._state = replace(self._state, config=config)

    def update(self, **changes: Any) -> ReporterConfig:
        with self._init_lock:
            config = replace(self._state.config, **changes)
            self._state = replace(self._state, config=config)
        return config

    def on_init(self) -> None:
        with self._init_lock:
            state = self._state
            config = state.config
            backend = config.backend_settings()

            if state.notifier is not None and state.backend == backend:
                notifier = state.notifier
                LOGGER.debug("Notifier %s unchanged; keeping the initialized instance", notifier.name)
            else:
                factory = resolve_notifier(config.notifier, self._registry)
                notifier = factory()
                notifier.on_delivery_error = self._delivery_failed
                notifier.init(config)

            self._state = _Armed(config=config, notifier=notifier, backend=backend)
            self._bus.unsubscribe(EXCEPTION_TOPIC, self.handle_exception)
            self._bus.subscribe(EXCEPTION_TOPIC, self.handle_exception)
            self._subscribed = True

        LOGGER.info(
            render_fields_block(
                "Exception reporter ready",
                [
                    ("Notifier", notifier.name),
                    ("Application", config.app_name),
                    ("Environment", config.environment),
                    ("Excluded", config.excluded_environments or "(none)"),
                    ("Enabled", config.enabled),
                ],
            )
        )

    def shutdown(self) -> None:
        with self._init_lock:
            self._bus.unsubscribe(EXCEPTION_TOPIC, self.handle_exception)
            self._subscribed = False

    def handle_exception(self, exception: Any) -> None:
        state = self._state
        notifier = state.notifier
        config = state.config
        if notifier is None:
            LOGGER.debug("Reporter not initialized; ignoring %s", type(exception).__name__)
            return
        if not config.enabled:
            LOGGER.debug("Reporting disabled; ignoring %s", type(exception).__name__)
            return
        if not should_report(config.environment, config.excluded_environments):
            LOGGER.debug(
                "Not reporting %s because environment '%s' is excluded",
                type(exception).__name__,
                config.environment,
            )
            with self._stats_lock:
                self._stats.suppressed += 1
            return

        context = build_context(config)
        self._dispatch.failed = False
        try:
            notifier.notify(exception, context)
        except Exception as exc:  # noqa: BLE001
            self._delivery_failed(exc, exception)
            return

        # Notifiers that swallow transport errors report them through the hook.
        if not self._dispatch.failed:
            with self._stats_lock:
                self._stats.delivered += 1

    def _delivery_failed(self, error: BaseException, exception: Any) -> None:
        self._dispatch.failed = True
        LOGGER.warning(
            "Failed to report %s via %s notifier: %s",
            type(exception).__name__,
            self._state.notifier.name if self._state.notifier else "<none>",
            error,
        )
        with self._stats_lock:
            self._stats.failed += 1
            self._stats.last_error = error
        hook = self._on_delivery_error
        if hook is None:
            return
        try:
            hook(error, exception)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Delivery error hook raised while handling %s", type(exception).__name__)
