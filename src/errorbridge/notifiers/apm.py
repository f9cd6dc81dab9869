from __future__ import annotations

import logging
import os
from typing import Any, Dict, Mapping, Optional, Protocol

from ..config import ReporterConfig
from .types import Notifier

try:  # pragma: no cover - optional dependency
    import newrelic.agent as newrelic_agent
except ImportError:  # pragma: no cover - fallback when newrelic is missing
    newrelic_agent = None  # type: ignore[assignment]

LOGGER = logging.getLogger(__name__)

# Settings consumed by initialize()/register_application() rather than exported.
_RESERVED_SETTINGS = frozenset({"config_file", "environment", "startup_timeout"})


class ApmUnavailableError(RuntimeError):
    """Raised when newrelic is not installed but the APM notifier is selected."""


class ApmAgent(Protocol):
    def manual_start(self, settings: Dict[str, Any]) -> None: ...

    def notice_error(self, exception: Any) -> None: ...


def _setting_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return " ".join(str(item) for item in value)
    return str(value)


class NewRelicAgent:
    """Adapts the ``newrelic`` agent module to the manual_start/notice_error calls."""

    def __init__(self) -> None:
        if newrelic_agent is None:
            raise ApmUnavailableError(
                "The APM notifier requires the 'newrelic' dependency. Install via 'pip install errorbridge[apm]'."
            )
        self._application: Any = None

    def manual_start(self, settings: Dict[str, Any]) -> None:
        for key, value in settings.items():
            if key in _RESERVED_SETTINGS or value is None:
                continue
            os.environ[f"NEW_RELIC_{str(key).upper()}"] = _setting_value(value)

        newrelic_agent.initialize(settings.get("config_file"), settings.get("environment"))
        timeout = float(settings.get("startup_timeout", 10.0))
        self._application = newrelic_agent.register_application(timeout=timeout)
        LOGGER.debug("New Relic agent started (startup_timeout=%ss)", timeout)

    def notice_error(self, exception: Any) -> None:
        if isinstance(exception, BaseException):
            error = (type(exception), exception, exception.__traceback__)
        else:
            error = None
        newrelic_agent.notice_error(error=error, application=self._application)


class ApmNotifier(Notifier):
    """Hands exceptions straight to an APM agent."""

    name = "apm"

    def __init__(self, agent: Optional[ApmAgent] = None) -> None:
        super().__init__()
        self.agent: ApmAgent = agent if agent is not None else NewRelicAgent()
        self.settings: Mapping[str, Any] = {}

    def init(self, config: ReporterConfig) -> None:
        self.settings = dict(config.apm)
        self.agent.manual_start(dict(self.settings))

    def notify(self, exception: Any, context: Dict[str, Any]) -> None:
        self.agent.notice_error(exception)
