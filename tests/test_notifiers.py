from __future__ import annotations

import json
import subprocess
from email.message import EmailMessage
from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest
import requests

from errorbridge.config import ConfigurationError, EmailSettings, ReporterConfig, SmtpSettings, TrackingSettings
from errorbridge.notifiers import (
    ApmNotifier,
    ApmUnavailableError,
    EmailNotifier,
    NewRelicAgent,
    SendmailTransport,
    SinkNotifier,
    SmtpTransport,
    TrackingClient,
    TrackingNotifier,
    resolve_notifier,
)
from errorbridge.notifiers.email import build_transport
from errorbridge.notifiers.tracking import _response_excerpt, _shorten


class FakeResponse:
    def __init__(self, status_code: int, payload: Dict[str, Any] | None = None):
        self.status_code = status_code
        self.text = json.dumps(payload) if payload is not None else ""


class FakeSession:
    def __init__(self, response: FakeResponse) -> None:
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def post(self, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "json": json, "headers": headers, "timeout": timeout})
        return self.response


class RecordingTransport:
    def __init__(self) -> None:
        self.messages: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.messages.append(message)


class BrokenTransport:
    def send(self, message: EmailMessage) -> None:
        raise OSError("connection refused")


def _raise(error: BaseException) -> BaseException:
    try:
        raise error
    except BaseException as exc:  # noqa: BLE001
        return exc


_CONTEXT = {"framework_env": "production", "app_name": "App", "project_root": "/srv/app", "hostname": "web-1"}


def _email_config(**email: Any) -> ReporterConfig:
    settings = {"recipient": ("ops@example.com",), "sender": "app@example.com"}
    settings.update(email)
    return ReporterConfig(notifier="email", app_name="App", email=EmailSettings(**settings))


# Tracking


def test_tracking_client_posts_notice() -> None:
    session = FakeSession(FakeResponse(201, {"id": "abc"}))
    client = TrackingClient("secret", notify_host="https://errbit.test/", project_id="7", session=session)

    response = client.post(_raise(ValueError("bad value")), _CONTEXT)

    assert response.ok
    assert response.status == 201
    call = session.calls[0]
    assert call["url"] == "https://errbit.test/api/v3/projects/7/notices"
    assert call["params"] == {"key": "secret"}
    assert call["headers"]["User-Agent"].startswith("errorbridge/")
    error = call["json"]["errors"][0]
    assert error["type"] == "ValueError"
    assert error["message"] == "bad value"
    assert error["backtrace"][0]["function"] == "_raise"
    assert call["json"]["context"]["environment"] == "production"


def test_tracking_client_reports_http_errors() -> None:
    session = FakeSession(FakeResponse(422, {"error": "invalid"}))
    client = TrackingClient("secret", notify_host="https://errbit.test", session=session)

    response = client.post(RuntimeError("boom"), _CONTEXT)

    assert not response.ok
    assert response.errors[0].startswith("HTTP 422")


def test_tracking_notifier_rejects_invalid_url() -> None:
    config = ReporterConfig(notifier="tracking", tracking=TrackingSettings(api_key="secret", url="ftp://errbit"))

    with pytest.raises(ConfigurationError, match="tracking.url"):
        TrackingNotifier().init(config)


def test_tracking_notifier_swallows_transport_errors(monkeypatch) -> None:
    class UnreachableClient:
        def __init__(self, api_key: str, **kwargs: Any) -> None:
            pass

        def post(self, exception: Any, context: Dict[str, Any]) -> None:
            raise requests.ConnectionError("unreachable")

    monkeypatch.setattr("errorbridge.notifiers.tracking.TrackingClient", UnreachableClient)
    observed: List[tuple[BaseException, Any]] = []
    notifier = TrackingNotifier()
    notifier.on_delivery_error = lambda error, exc: observed.append((error, exc))
    notifier.init(ReporterConfig(notifier="tracking", tracking=TrackingSettings(api_key="secret")))

    error = RuntimeError("boom")
    notifier.notify(error, _CONTEXT)

    assert isinstance(observed[0][0], requests.ConnectionError)
    assert observed[0][1] is error


def test_tracking_notifier_logs_error_responses(monkeypatch, caplog) -> None:
    session = FakeSession(FakeResponse(500, {"error": "oops"}))
    monkeypatch.setattr(
        "errorbridge.notifiers.tracking.TrackingClient",
        lambda api_key, **kwargs: TrackingClient(api_key, session=session, **kwargs),
    )
    notifier = TrackingNotifier()
    notifier.init(ReporterConfig(notifier="tracking", tracking=TrackingSettings(api_key="secret")))

    with caplog.at_level("ERROR"):
        notifier.notify(RuntimeError("boom"), _CONTEXT)

    assert "Response code 500" in caplog.text


# APM


def test_newrelic_agent_requires_dependency(monkeypatch) -> None:
    monkeypatch.setattr("errorbridge.notifiers.apm.newrelic_agent", None)

    with pytest.raises(ApmUnavailableError):
        NewRelicAgent()
    with pytest.raises(ApmUnavailableError):
        ApmNotifier()


def test_newrelic_agent_exports_settings_and_notices_errors(monkeypatch) -> None:
    module = MagicMock()
    environ: Dict[str, str] = {}
    monkeypatch.setattr("errorbridge.notifiers.apm.newrelic_agent", module)
    monkeypatch.setattr("errorbridge.notifiers.apm.os.environ", environ)

    agent = NewRelicAgent()
    agent.manual_start(
        {"license_key": "abc123", "app_name": "App", "monitor_mode": True, "environment": "staging", "startup_timeout": 2}
    )

    assert environ == {"NEW_RELIC_LICENSE_KEY": "abc123", "NEW_RELIC_APP_NAME": "App", "NEW_RELIC_MONITOR_MODE": "true"}
    module.initialize.assert_called_once_with(None, "staging")
    module.register_application.assert_called_once_with(timeout=2.0)

    error = _raise(KeyError("missing"))
    agent.notice_error(error)

    kwargs = module.notice_error.call_args.kwargs
    assert kwargs["error"][1] is error
    assert kwargs["application"] is module.register_application.return_value


# Email


def test_email_notifier_requires_sender() -> None:
    with pytest.raises(ConfigurationError, match="from"):
        EmailNotifier(transport=RecordingTransport()).init(_email_config(sender=None))


def test_email_mail_builds_message() -> None:
    transport = RecordingTransport()
    notifier = EmailNotifier(transport=transport)
    notifier.init(_email_config(recipient=("a@example.com", "b@example.com")))

    notifier.mail("[App] Exception: Boom (bad)", "details")

    message = transport.messages[0]
    assert message["From"] == "app@example.com"
    assert message["To"] == "a@example.com, b@example.com"
    assert message["Subject"] == "[App] Exception: Boom (bad)"
    assert message.get_content().strip() == "details"


def test_email_notifier_reports_live_exception() -> None:
    transport = RecordingTransport()
    notifier = EmailNotifier(transport=transport)
    notifier.init(_email_config())

    notifier.notify(_raise(ValueError("bad value")), _CONTEXT)

    message = transport.messages[0]
    assert message["Subject"] == "[App] Exception: ValueError (bad value)"
    body = message.get_content()
    assert body.startswith("App reported an exception at ")
    assert "ValueError (bad value):\n" in body
    assert "in `_raise'" in body


def test_email_notifier_folds_multiline_message_into_subject() -> None:
    transport = RecordingTransport()
    observed: List[tuple[BaseException, Any]] = []
    notifier = EmailNotifier(transport=transport)
    notifier.on_delivery_error = lambda error, exc: observed.append((error, exc))
    notifier.init(_email_config())

    notifier.notify(ValueError("line one\nline two\r\nline three"), {"app_name": "App"})

    assert observed == []
    message = transport.messages[0]
    assert message["Subject"] == "[App] Exception: ValueError (line one line two line three)"
    assert "ValueError (line one\nline two\nline three):\n" in message.get_content()


def test_email_notifier_contains_transport_failures() -> None:
    observed: List[tuple[BaseException, Any]] = []
    notifier = EmailNotifier(transport=BrokenTransport())
    notifier.on_delivery_error = lambda error, exc: observed.append((error, exc))
    notifier.init(_email_config())

    error = RuntimeError("boom")
    notifier.notify(error, _CONTEXT)

    assert isinstance(observed[0][0], OSError)
    assert observed[0][1] is error


def test_build_transport_selects_backend() -> None:
    sendmail = build_transport(EmailSettings(transport="sendmail", sendmail_path="/usr/bin/sendmail"))
    smtp = build_transport(EmailSettings(transport="smtp", smtp=SmtpSettings(host="mail.example.com")))

    assert isinstance(sendmail, SendmailTransport)
    assert sendmail.path == "/usr/bin/sendmail"
    assert isinstance(smtp, SmtpTransport)
    with pytest.raises(ConfigurationError, match="smtp.host"):
        build_transport(EmailSettings(transport="smtp"))


def test_smtp_transport_uses_tls_and_login(monkeypatch) -> None:
    server = MagicMock()
    smtp_factory = MagicMock()
    smtp_factory.return_value.__enter__.return_value = server
    monkeypatch.setattr("errorbridge.notifiers.email.smtplib.SMTP", smtp_factory)

    transport = SmtpTransport(SmtpSettings(host="mail.example.com", port=2525, username="user", password="pw"))
    message = EmailMessage()
    transport.send(message)

    smtp_factory.assert_called_once_with("mail.example.com", 2525, timeout=10.0)
    server.starttls.assert_called_once_with()
    server.login.assert_called_once_with("user", "pw")
    server.send_message.assert_called_once_with(message)


def test_sendmail_transport_pipes_message(monkeypatch) -> None:
    calls: List[Dict[str, Any]] = []

    def fake_run(args, **kwargs):
        calls.append({"args": args, **kwargs})
        return subprocess.CompletedProcess(args, 0)

    monkeypatch.setattr("errorbridge.notifiers.email.subprocess.run", fake_run)
    message = EmailMessage()
    message["Subject"] = "hello"
    message.set_content("body")

    SendmailTransport("/usr/sbin/sendmail").send(message)

    assert calls[0]["args"] == ["/usr/sbin/sendmail", "-t", "-i"]
    assert b"Subject: hello" in calls[0]["input"]
    assert calls[0]["check"] is True


# Registry


@pytest.mark.parametrize(
    "identifier, expected",
    [
        ("sink", SinkNotifier),
        ("Memory", SinkNotifier),
        ("airbrake", TrackingNotifier),
        ("errbit", TrackingNotifier),
        ("newrelic", ApmNotifier),
        ("mail", EmailNotifier),
        ("errorbridge.notifiers.email:EmailNotifier", EmailNotifier),
    ],
)
def test_resolve_notifier(identifier: str, expected: type) -> None:
    assert resolve_notifier(identifier) is expected


@pytest.mark.parametrize(
    "identifier, message",
    [
        ("pigeon", "Unknown notifier"),
        ("errorbridge.no_such_module:Thing", "Unable to import"),
        ("errorbridge.notifiers.sink:Missing", "not found"),
        ("errorbridge.notifiers.sink:", "must look like"),
    ],
)
def test_resolve_notifier_errors(identifier: str, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        resolve_notifier(identifier)


def test_response_excerpt_shortens_long_bodies() -> None:
    assert _shorten("  short  ", 10) == "short"
    assert _shorten("abcdefghij", 6) == "abc..."
    assert _shorten("abcdef", 2) == "ab"
    assert _response_excerpt(FakeResponse(500)) == "<empty body>"
    assert len(_response_excerpt(FakeResponse(500, {"error": "x" * 500}))) == 200
