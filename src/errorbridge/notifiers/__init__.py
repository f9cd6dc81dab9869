"""
Notifier backends for errorbridge.

Public API:
    - Notifier: Base class for notifier backends
    - SinkNotifier: In-memory recorder, used for tests and as the default
    - TrackingNotifier / TrackingClient: Airbrake-compatible error tracking
    - ApmNotifier / NewRelicAgent: New Relic APM agent
    - EmailNotifier: Email via SMTP or sendmail
    - NOTIFIERS / resolve_notifier: Registry of notifier factories by identifier
"""

from __future__ import annotations

import importlib
from typing import Callable, Dict, Mapping, Optional

from ..config import ConfigurationError
from .apm import ApmNotifier, ApmUnavailableError, NewRelicAgent
from .email import EmailNotifier, SendmailTransport, SmtpTransport
from .sink import SinkNotifier
from .tracking import TrackingClient, TrackingNotifier, TrackingResponse
from .types import Notifier

NotifierFactory = Callable[[], Notifier]

NOTIFIERS: Dict[str, NotifierFactory] = {
    "sink": SinkNotifier,
    "tracking": TrackingNotifier,
    "apm": ApmNotifier,
    "email": EmailNotifier,
}

ALIASES: Dict[str, str] = {
    "memory": "sink",
    "test": "sink",
    "airbrake": "tracking",
    "errbit": "tracking",
    "newrelic": "apm",
    "mail": "email",
}


def _import_notifier(path: str) -> NotifierFactory:
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Notifier path '{path}' must look like 'package.module:ClassName'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Unable to import notifier module '{module_name}': {exc}") from exc
    factory = getattr(module, attribute, None)
    if factory is None or not callable(factory):
        raise ConfigurationError(f"Notifier '{attribute}' not found in module '{module_name}'")
    return factory


def resolve_notifier(
    identifier: str,
    registry: Optional[Mapping[str, NotifierFactory]] = None,
) -> NotifierFactory:
    """Return the factory for a notifier identifier, alias or import path."""
    registry = NOTIFIERS if registry is None else registry
    key = identifier.strip()
    if ":" in key:
        return _import_notifier(key)
    normalized = key.lower()
    normalized = ALIASES.get(normalized, normalized)
    if normalized in registry:
        return registry[normalized]
    if key in registry:
        return registry[key]
    known = ", ".join(sorted(set(registry) | set(ALIASES)))
    raise ConfigurationError(f"Unknown notifier '{identifier}' (expected one of: {known})")


__all__ = [
    "ALIASES",
    "ApmNotifier",
    "ApmUnavailableError",
    "EmailNotifier",
    "NOTIFIERS",
    "NewRelicAgent",
    "Notifier",
    "NotifierFactory",
    "SendmailTransport",
    "SinkNotifier",
    "SmtpTransport",
    "TrackingClient",
    "TrackingNotifier",
    "TrackingResponse",
    "resolve_notifier",
]
