from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .utils import load_yaml_file, parse_env_bool, split_csv, validate_url

DEFAULT_NOTIFIER = "sink"
DEFAULT_APP_NAME = "Application"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_EXCLUDED_ENVIRONMENTS = frozenset({"development", "test"})
DEFAULT_TRACKING_URL = "https://api.airbrake.io"
DEFAULT_SENDMAIL_PATH = "/usr/sbin/sendmail"
EMAIL_TRANSPORTS = ("sendmail", "smtp")


class ConfigurationError(ValueError):
    """Raised when the reporter configuration is missing or invalid."""


@dataclass(frozen=True)
class TrackingSettings:
    api_key: str | None = None
    url: str = DEFAULT_TRACKING_URL
    project_id: str = "1"
    timeout: float = 10.0


@dataclass(frozen=True)
class SmtpSettings:
    host: str | None = None
    port: int = 587
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    timeout: float = 10.0


@dataclass(frozen=True)
class EmailSettings:
    transport: str = "sendmail"  # sendmail | smtp
    recipient: tuple[str, ...] = ()
    sender: str | None = None
    smtp: SmtpSettings = field(default_factory=SmtpSettings)
    sendmail_path: str = DEFAULT_SENDMAIL_PATH


@dataclass(frozen=True)
class ReporterConfig:
    """Configuration snapshot consumed by the reporter.

    Instances are never mutated; reconfiguration builds a new snapshot
    (see ``dataclasses.replace``) and hands it to ``Reporter.configure``.
    """

    notifier: str = DEFAULT_NOTIFIER
    enabled: bool = True
    app_name: str = DEFAULT_APP_NAME
    environment: str = DEFAULT_ENVIRONMENT
    excluded_environments: frozenset[str] = DEFAULT_EXCLUDED_ENVIRONMENTS
    project_root: str | None = None
    tracking: TrackingSettings = field(default_factory=TrackingSettings)
    apm: Mapping[str, Any] = field(default_factory=dict)
    email: EmailSettings = field(default_factory=EmailSettings)

    def backend_settings(self) -> tuple[Any, ...]:
        """Everything that affects how the active notifier is initialized."""
        return (self.notifier, self.tracking, dict(self.apm), self.email)


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _ensure_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{field_name}' must be provided as a mapping when specified")
    return value


def _ensure_string_list(value: Any, *, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return split_csv(value)
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError(f"'{field_name}' must be provided as a list of strings")
    result: list[str] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, str):
            raise ConfigurationError(f"'{field_name}[{index}]' must be a string")
        cleaned = entry.strip()
        if cleaned:
            result.append(cleaned)
    return result


def _parse_float(value: Any, default: float, *, field_name: str) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:  # noqa: PERF203
        raise ConfigurationError(f"'{field_name}' must be a number") from exc
    if parsed <= 0:
        raise ConfigurationError(f"'{field_name}' must be greater than 0")
    return parsed


def normalize_environment(value: Any) -> str:
    return str(value).strip().lower()


def _build_tracking_settings(data: dict[str, Any]) -> TrackingSettings:
    data = _ensure_mapping(data, field_name="tracking")
    url = _clean_str(data.get("url")) or DEFAULT_TRACKING_URL
    if not validate_url(url):
        raise ConfigurationError(f"'tracking.url' must be a valid http/https URL, got: {url}")
    return TrackingSettings(
        api_key=_clean_str(data.get("api_key")),
        url=url.rstrip("/"),
        project_id=_clean_str(data.get("project_id")) or "1",
        timeout=_parse_float(data.get("timeout"), 10.0, field_name="tracking.timeout"),
    )


def _build_smtp_settings(data: dict[str, Any]) -> SmtpSettings:
    data = _ensure_mapping(data, field_name="email.smtp")
    try:
        port = int(data.get("port", 587))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("'email.smtp.port' must be an integer") from exc
    return SmtpSettings(
        host=_clean_str(data.get("host")),
        port=port,
        username=_clean_str(data.get("username")),
        password=_clean_str(data.get("password")),
        use_tls=bool(data.get("use_tls", True)),
        timeout=_parse_float(data.get("timeout"), 10.0, field_name="email.smtp.timeout"),
    )


def _build_email_settings(data: dict[str, Any]) -> EmailSettings:
    data = _ensure_mapping(data, field_name="email")
    # "via" is accepted for configs written for the original mail options.
    transport = (_clean_str(data.get("transport") or data.get("via")) or "sendmail").lower()
    if transport not in EMAIL_TRANSPORTS:
        raise ConfigurationError(
            f"'email.transport' must be one of {', '.join(EMAIL_TRANSPORTS)}, got: {transport}"
        )
    recipients_raw = data.get("to", data.get("recipient"))
    recipients = _ensure_string_list(recipients_raw, field_name="email.to")
    return EmailSettings(
        transport=transport,
        recipient=tuple(recipients),
        sender=_clean_str(data.get("from", data.get("sender"))),
        smtp=_build_smtp_settings(data.get("smtp")),
        sendmail_path=_clean_str(data.get("sendmail_path")) or DEFAULT_SENDMAIL_PATH,
    )


def _default_environment() -> str:
    for name in ("ERRORBRIDGE_ENV", "APP_ENV"):
        value = _clean_str(os.environ.get(name))
        if value:
            return normalize_environment(value)
    return DEFAULT_ENVIRONMENT


def build_config(data: dict[str, Any] | None) -> ReporterConfig:
    """Build a ReporterConfig from a raw mapping.

    Accepts either the reporter block itself or a document with a top-level
    ``reporter`` key. Environment variables override the file values.
    """
    data = _ensure_mapping(data, field_name="reporter")
    if "reporter" in data:
        data = _ensure_mapping(data["reporter"], field_name="reporter")

    notifier = _clean_str(os.environ.get("ERRORBRIDGE_NOTIFIER")) or _clean_str(data.get("notifier"))
    enabled = parse_env_bool(os.environ.get("ERRORBRIDGE_ENABLED"))
    if enabled is None:
        enabled = bool(data.get("enabled", True))

    env_override = _clean_str(os.environ.get("ERRORBRIDGE_ENV"))
    if env_override:
        environment = normalize_environment(env_override)
    elif _clean_str(data.get("environment")):
        environment = normalize_environment(data["environment"])
    else:
        environment = _default_environment()

    excluded_raw: Any = os.environ.get("ERRORBRIDGE_EXCLUDED_ENVIRONMENTS")
    if excluded_raw is None:
        excluded_raw = data.get("excluded_environments", sorted(DEFAULT_EXCLUDED_ENVIRONMENTS))
    excluded = frozenset(
        normalize_environment(item)
        for item in _ensure_string_list(excluded_raw, field_name="excluded_environments")
    )

    apm = _ensure_mapping(data.get("apm"), field_name="apm")

    return ReporterConfig(
        notifier=(notifier or DEFAULT_NOTIFIER),
        enabled=enabled,
        app_name=_clean_str(data.get("app_name")) or DEFAULT_APP_NAME,
        environment=environment,
        excluded_environments=excluded,
        project_root=_clean_str(data.get("project_root")),
        tracking=_build_tracking_settings(data.get("tracking")),
        apm={str(key): value for key, value in apm.items()},
        email=_build_email_settings(data.get("email")),
    )


def load_config(path: Path) -> ReporterConfig:
    try:
        data = load_yaml_file(path)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to read configuration {path}: {exc}") from exc
    return build_config(data)
