from __future__ import annotations

import logging
import smtplib
import subprocess
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from ..config import ConfigurationError, EmailSettings, ReporterConfig, SmtpSettings
from ..formatting import describe_exception, format_email_body, format_email_subject
from .types import Notifier

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class MailTransport(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class SmtpTransport:
    """Delivers messages through an SMTP relay."""

    def __init__(self, settings: SmtpSettings) -> None:
        if not settings.host:
            raise ConfigurationError("'email.smtp.host' is required when email.transport is smtp")
        self.host = settings.host
        self.port = settings.port
        self.username = settings.username
        self.password = settings.password
        self.use_tls = settings.use_tls
        self.timeout = settings.timeout

    def send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)


class SendmailTransport:
    """Pipes messages to a local sendmail-compatible binary."""

    def __init__(self, path: str, *, arguments: Sequence[str] = ("-t", "-i"), timeout: float = 30.0) -> None:
        self.path = path
        self.arguments = tuple(arguments)
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        subprocess.run(
            [self.path, *self.arguments],
            input=message.as_bytes(),
            capture_output=True,
            timeout=self.timeout,
            check=True,
        )


def build_transport(settings: EmailSettings) -> MailTransport:
    if settings.transport == "smtp":
        return SmtpTransport(settings.smtp)
    if settings.transport == "sendmail":
        return SendmailTransport(settings.sendmail_path)
    raise ConfigurationError(f"Unknown email transport '{settings.transport}'")


class EmailNotifier(Notifier):
    """Sends one plain-text email per exception."""

    name = "email"

    def __init__(self, transport: Optional[MailTransport] = None, clock: Clock = datetime.now) -> None:
        super().__init__()
        self._transport_override = transport
        self.transport: Optional[MailTransport] = transport
        self.clock = clock
        self.sender: Optional[str] = None
        self.recipients: tuple[str, ...] = ()

    def init(self, config: ReporterConfig) -> None:
        settings = config.email
        if not settings.recipient:
            raise ConfigurationError("'email.to' must list at least one recipient for the email notifier")
        if not settings.sender:
            raise ConfigurationError("'email.from' is required for the email notifier")
        self.sender = settings.sender
        self.recipients = settings.recipient
        self.transport = self._transport_override or build_transport(settings)

    def notify(self, exception: Any, context: Dict[str, Any]) -> None:
        app_name = str(context.get("app_name", ""))
        record = describe_exception(exception)
        subject = format_email_subject(app_name, record)
        body = format_email_body(app_name, record, self.clock())
        try:
            self.mail(subject, body)
        except (smtplib.SMTPException, OSError, subprocess.SubprocessError) as exc:
            self._delivery_failed(exception, exc)

    def mail(self, subject: str, body: str) -> None:
        if self.transport is None:
            LOGGER.debug("Email notifier used before init; dropping message %r", subject)
            return
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(self.recipients)
        # Header values may not contain CR/LF; multi-line messages are folded.
        message["Subject"] = " ".join(subject.splitlines())
        message.set_content(body)
        self.transport.send(message)
        LOGGER.debug("Sent exception email to %s", ", ".join(self.recipients))
