from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .version import __version__
from .config import ReporterConfig
from .filters import should_report
from .utils import mask_secret


@dataclass
class StatusInfo:
    version: str
    notifier: str
    app_name: str
    environment: str
    excluded_environments: list[str]
    enabled: bool
    reporting: bool
    backend: list[tuple[str, str]]


def _backend_rows(config: ReporterConfig) -> list[tuple[str, str]]:
    notifier = config.notifier.lower()
    if notifier in ("tracking", "airbrake", "errbit"):
        return [
            ("URL", config.tracking.url),
            ("Project", config.tracking.project_id),
            ("API key", mask_secret(config.tracking.api_key)),
        ]
    if notifier in ("email", "mail"):
        email = config.email
        rows = [
            ("Transport", email.transport),
            ("To", ", ".join(email.recipient) or "<unset>"),
            ("From", email.sender or "<unset>"),
        ]
        if email.transport == "smtp":
            rows.append(("SMTP", f"{email.smtp.host or '<unset>'}:{email.smtp.port}"))
        return rows
    if notifier in ("apm", "newrelic"):
        keys = sorted(config.apm)
        return [("APM settings", ", ".join(keys) or "<none>")]
    return []


def build_status_info(config: ReporterConfig) -> StatusInfo:
    """Build a StatusInfo instance from a configuration snapshot."""
    return StatusInfo(
        version=__version__,
        notifier=config.notifier,
        app_name=config.app_name,
        environment=config.environment,
        excluded_environments=sorted(config.excluded_environments),
        enabled=config.enabled,
        reporting=config.enabled and should_report(config.environment, config.excluded_environments),
        backend=_backend_rows(config),
    )


def print_status(info: StatusInfo, console: Console) -> None:
    """Print a styled panel describing the effective reporter configuration."""
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="cyan bold", no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("Version", f"[bold]{info.version}[/bold]")
    table.add_row("Notifier", f"[bold]{info.notifier}[/bold]")
    table.add_row("Application", info.app_name)
    table.add_row("Environment", info.environment)
    table.add_row("Excluded", ", ".join(info.excluded_environments) or "(none)")

    for label, value in info.backend:
        table.add_row(label, value)

    if not info.enabled:
        state = "[yellow]DISABLED[/yellow]"
    elif info.reporting:
        state = "[green]REPORTING[/green]"
    else:
        state = "[yellow]SUPPRESSED[/yellow] (environment excluded)"
    table.add_row("State", state)

    panel = Panel(
        table,
        title="[bold white]ERRORBRIDGE[/bold white]",
        border_style="blue",
        padding=(1, 2),
    )

    console.print()
    console.print(panel)
    console.print()
