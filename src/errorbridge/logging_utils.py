from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from textwrap import wrap
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_WRAP_WIDTH = 110
DEFAULT_LABEL_WIDTH = 22
DEFAULT_INDENT = "    "
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s\n%(message)s\n"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

FieldMapping = Union[Mapping[str, object], Sequence[tuple[str, object]]]


def _coerce_items(fields: FieldMapping) -> list[tuple[str, object]]:
    if isinstance(fields, Mapping):
        return list(fields.items())
    return list(fields)


def _stringify(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (set, frozenset)):
        return ", ".join(sorted(_stringify(item) for item in value))
    if isinstance(value, (list, tuple)):
        return ", ".join(_stringify(item) for item in value)
    return str(value)


def render_fields_block(title: str, fields: FieldMapping, *, pad_top: bool = True) -> str:
    """Render ``fields`` as an aligned ``label: value`` block under ``title``."""
    lines: list[str] = [""] if pad_top else []
    lines.append(title)
    lines.append("-" * len(title))

    items = _coerce_items(fields)
    computed_width = max((len(str(key)) for key, _ in items), default=0)
    label_width = max(min(computed_width, DEFAULT_LABEL_WIDTH), 8)
    value_width = max(DEFAULT_WRAP_WIDTH - len(DEFAULT_INDENT) - label_width - 4, 32)

    for key, value in items:
        wrapped = wrap(_stringify(value), width=value_width) or [""]
        lines.append(f"{DEFAULT_INDENT}{str(key):<{label_width}}: {wrapped[0]}")
        for continuation in wrapped[1:]:
            lines.append(f"{DEFAULT_INDENT}{'':<{label_width}}  {continuation}")
    return "\n".join(lines).rstrip()


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    log_file: Optional[Path] = None,
    console: Optional[Console] = None,
) -> None:
    """Install a rich console handler and an optional plain-text file handler."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
        level = resolved

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format="[%X]",
    )
    console_handler.setLevel(level)
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt=FILE_DATE_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

    root.setLevel(min(level, logging.DEBUG) if log_file is not None else level)
    # urllib3 is chatty at DEBUG level.
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
