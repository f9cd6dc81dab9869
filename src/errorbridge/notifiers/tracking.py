from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import RequestException

from ..config import ConfigurationError, ReporterConfig
from ..formatting import build_tracking_notice, describe_exception
from ..utils import validate_url
from ..version import __version__
from .types import Notifier

LOGGER = logging.getLogger(__name__)

# Longest slice of a tracking-service response body kept for log lines.
RESPONSE_EXCERPT_LIMIT = 200


def _shorten(text: str, limit: int = RESPONSE_EXCERPT_LIMIT) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3] + "..."


def _response_excerpt(response: requests.Response) -> str:
    """Short, log-safe slice of what the tracking service answered."""
    return _shorten(response.text or "<empty body>")


@dataclass
class TrackingResponse:
    status: Optional[int]
    body: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TrackingClient:
    """Minimal client for Airbrake-compatible notice endpoints (Airbrake, Errbit)."""

    def __init__(
        self,
        api_key: str,
        *,
        notify_host: str,
        project_id: str = "1",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.notify_host = notify_host.rstrip("/")
        self.project_id = project_id
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.notify_host}/api/v3/projects/{self.project_id}/notices"

    def post(self, exception: Any, context: Dict[str, Any]) -> TrackingResponse:
        """Post one notice. Raises ``RequestException`` on transport failure."""
        payload = build_tracking_notice(describe_exception(exception), context)
        response = self._session.post(
            self.endpoint,
            params={"key": self.api_key},
            json=payload,
            headers={"User-Agent": f"errorbridge/{__version__}"},
            timeout=self.timeout,
        )
        body = _response_excerpt(response)
        errors: List[str] = []
        if response.status_code >= 400:
            errors.append(f"HTTP {response.status_code}: {body}")
        return TrackingResponse(status=response.status_code, body=body, errors=errors)


class TrackingNotifier(Notifier):
    """Forwards exceptions to an Airbrake-compatible error-tracking service."""

    name = "tracking"

    def __init__(self) -> None:
        super().__init__()
        self.client: Optional[TrackingClient] = None
        self.url: Optional[str] = None

    def init(self, config: ReporterConfig) -> None:
        settings = config.tracking
        if not settings.api_key:
            raise ConfigurationError("'tracking.api_key' is required for the tracking notifier")
        if not validate_url(settings.url):
            raise ConfigurationError(f"'tracking.url' must be a valid http/https URL, got: {settings.url}")
        self.url = settings.url
        self.client = TrackingClient(
            settings.api_key,
            notify_host=settings.url,
            project_id=settings.project_id,
            timeout=settings.timeout,
        )

    def notify(self, exception: Any, context: Dict[str, Any]) -> None:
        if self.client is None:
            LOGGER.debug("Tracking notifier used before init; dropping %s", type(exception).__name__)
            return
        try:
            response = self.client.post(exception, context)
        except RequestException as exc:
            self._delivery_failed(exception, exc)
            return

        if response.errors:
            LOGGER.error("Error posting exception to %s! Response code %s", self.url, response.status)
            for error in response.errors:
                LOGGER.error(error)
            self._delivery_failed(exception, RuntimeError("; ".join(response.errors)))
