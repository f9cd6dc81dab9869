from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console

from .banner import build_status_info, print_status
from .config import ConfigurationError, ReporterConfig, load_config
from .events import EXCEPTION_TOPIC, EventBus
from .logging_utils import configure_logging
from .notifiers import ApmUnavailableError
from .reporter import Reporter
from .utils import load_yaml_file
from .validation import validate_config_data
from .validation_output import ValidationFormatter
from .version import __version__

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "errorbridge.yaml"


class ErrorbridgeTestException(Exception):
    """Raised and reported by ``errorbridge send-test``."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="errorbridge", description="Forward application exceptions to a reporting backend.")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.getenv("ERRORBRIDGE_CONFIG", DEFAULT_CONFIG_PATH)),
        help="Path to the errorbridge YAML config",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-level", default=None, help="Console log level (overrides --verbose)")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("validate", help="Validate the configuration file")
    subparsers.add_parser("status", help="Show the effective reporter configuration")
    send_test = subparsers.add_parser("send-test", help="Report a test exception through the configured notifier")
    send_test.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait for delivery")
    return parser


def _load(args: argparse.Namespace) -> Optional[ReporterConfig]:
    try:
        return load_config(args.config)
    except FileNotFoundError:
        LOGGER.error("Configuration file %s does not exist", args.config)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
    return None


def run_validate(args: argparse.Namespace, console: Console) -> int:
    try:
        data = load_yaml_file(args.config)
    except FileNotFoundError:
        LOGGER.error("Configuration file %s does not exist", args.config)
        return 1
    except Exception as exc:  # noqa: BLE001
        LOGGER.error("Failed to read %s: %s", args.config, exc)
        return 1

    report = validate_config_data(data)
    ValidationFormatter(console).format_report(report)
    return 0 if report.is_valid else 1


def run_status(args: argparse.Namespace, console: Console) -> int:
    config = _load(args)
    if config is None:
        return 1
    print_status(build_status_info(config), console)
    return 0


def run_send_test(args: argparse.Namespace, console: Console) -> int:
    config = _load(args)
    if config is None:
        return 1

    bus = EventBus()
    reporter = Reporter(config, bus)
    try:
        reporter.on_init()
    except (ConfigurationError, ApmUnavailableError) as exc:
        LOGGER.error("Unable to initialize the %s notifier: %s", config.notifier, exc)
        return 1

    try:
        raise ErrorbridgeTestException(f"Test exception from {config.app_name}")
    except ErrorbridgeTestException as exc:
        bus.trigger(EXCEPTION_TOPIC, exc)

    drained = bus.drain(timeout=args.timeout)
    bus.shutdown()
    reporter.shutdown()

    stats = reporter.stats
    if not drained:
        console.print(f"[bold red]✗ Delivery did not finish within {args.timeout}s[/bold red]")
        return 1
    if stats.failed:
        console.print(f"[bold red]✗ Delivery via {config.notifier} failed:[/bold red] {stats.last_error}")
        return 1
    if stats.delivered:
        console.print(f"[bold green]✓ Test exception delivered via {config.notifier}.[/bold green]")
        return 0
    console.print(
        f"[bold yellow]Test exception was not reported[/bold yellow] "
        f"(enabled={config.enabled}, environment={config.environment})"
    )
    return 2


COMMANDS = {
    "validate": run_validate,
    "status": run_status,
    "send-test": run_send_test,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = args.log_level or ("DEBUG" if args.verbose else "INFO")
    configure_logging(level, log_file=args.log_file)

    console = Console()
    return COMMANDS[args.command](args, console)


if __name__ == "__main__":
    sys.exit(main())
