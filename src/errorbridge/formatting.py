"""Payload construction for the notifier backends.

Every backend receives the original exception object. The helpers here turn
it into the shapes each backend needs: a plain description
(``ExceptionRecord``), the per-event dispatch context, the email
subject/body pair and the tracking-service notice document.
"""

from __future__ import annotations

import os
import socket
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .config import ReporterConfig
from .version import __version__

NOTIFIER_NAME = "errorbridge"
NOTIFIER_URL = "https://pypi.org/project/errorbridge/"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class StackFrame:
    file: str
    line: Optional[int]
    function: str

    def __str__(self) -> str:
        location = f"{self.file}:{self.line}" if self.line is not None else self.file
        return f"{location}:in `{self.function}'"


@dataclass(frozen=True)
class ExceptionRecord:
    """Backend-neutral description of an exception."""

    type_name: str
    message: str
    backtrace: Tuple[str, ...] = ()
    qualified_name: Optional[str] = None
    frames: Tuple[StackFrame, ...] = ()

    @classmethod
    def from_exception(cls, exception: BaseException) -> "ExceptionRecord":
        exc_type = type(exception)
        frames = tuple(
            StackFrame(file=summary.filename, line=summary.lineno, function=summary.name)
            for summary in traceback.extract_tb(exception.__traceback__)
        )
        module = exc_type.__module__
        qualified = exc_type.__qualname__ if module == "builtins" else f"{module}.{exc_type.__qualname__}"
        return cls(
            type_name=exc_type.__name__,
            # Message-less exceptions report their type name as the message.
            message=str(exception) or exc_type.__name__,
            backtrace=tuple(str(frame) for frame in frames),
            qualified_name=qualified,
            frames=frames,
        )


def describe_exception(exception: Any) -> ExceptionRecord:
    if isinstance(exception, ExceptionRecord):
        return exception
    if isinstance(exception, BaseException):
        return ExceptionRecord.from_exception(exception)
    text = str(exception)
    return ExceptionRecord(type_name=type(exception).__name__, message=text or type(exception).__name__)


def build_context(config: ReporterConfig) -> Dict[str, Any]:
    """Build the dispatch context for one event from the current snapshot."""
    return {
        "framework_env": config.environment,
        "app_name": config.app_name,
        "notifier_name": NOTIFIER_NAME,
        "notifier_version": __version__,
        "project_root": config.project_root or os.getcwd(),
        "hostname": socket.gethostname(),
    }


def format_email_subject(app_name: str, record: ExceptionRecord) -> str:
    return f"[{app_name}] Exception: {record.type_name} ({record.message})"


def format_email_body(app_name: str, record: ExceptionRecord, timestamp: datetime) -> str:
    backtrace = "\n".join(record.backtrace)
    return (
        f"{app_name} reported an exception at {timestamp.strftime(TIMESTAMP_FORMAT)}\n\n"
        f"{record.type_name} ({record.message}):\n"
        f"{backtrace}\n\n"
    )


def _frame_payload(record: ExceptionRecord) -> List[Dict[str, Any]]:
    if record.frames:
        # Airbrake expects the innermost frame first.
        return [
            {"file": frame.file, "line": frame.line, "function": frame.function}
            for frame in reversed(record.frames)
        ]
    return [{"file": line, "line": None, "function": ""} for line in record.backtrace]


def build_tracking_notice(record: ExceptionRecord, context: Dict[str, Any]) -> Dict[str, Any]:
    """Build an Airbrake v3 notice document."""
    return {
        "errors": [
            {
                "type": record.qualified_name or record.type_name,
                "message": record.message,
                "backtrace": _frame_payload(record),
            }
        ],
        "context": {
            "notifier": {
                "name": context.get("notifier_name", NOTIFIER_NAME),
                "version": context.get("notifier_version", __version__),
                "url": NOTIFIER_URL,
            },
            "environment": context.get("framework_env"),
            "rootDirectory": context.get("project_root"),
            "hostname": context.get("hostname"),
            "component": context.get("app_name"),
        },
        "environment": {str(key): value for key, value in context.items()},
        "params": {},
    }
