"""errorbridge: forward application exceptions to a reporting backend.

The package is organized into focused modules:

- **reporter**: ``Reporter`` controller with the ``on_init()`` lifecycle hook
- **notifiers**: backend implementations (sink, tracking, apm, email)
- **filters**: environment-based suppression
- **formatting**: exception descriptions, dispatch context and payloads
- **events**: in-process event bus delivering ``exception`` events
- **config** / **validation**: YAML configuration loading and checking

Typical use::

    bus = EventBus()
    reporter = Reporter(load_config(path), bus)
    reporter.on_init()
    bus.trigger(EXCEPTION_TOPIC, exc)
"""

from .version import __version__
from .config import ConfigurationError, ReporterConfig, build_config, load_config
from .events import EXCEPTION_TOPIC, EventBus
from .reporter import DispatchStats, Reporter

__all__ = [
    "__version__",
    "ConfigurationError",
    "DispatchStats",
    "EXCEPTION_TOPIC",
    "EventBus",
    "Reporter",
    "ReporterConfig",
    "build_config",
    "load_config",
]
