from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from jsonschema import Draft7Validator

from .config import EMAIL_TRANSPORTS, normalize_environment
from .notifiers import ALIASES, NOTIFIERS
from .utils import split_csv, validate_url


@dataclass(slots=True)
class ValidationIssue:
    """Represents a single validation problem."""

    severity: str
    path: str
    message: str
    code: str
    fix_suggestion: Optional[str] = None


@dataclass(slots=True)
class ValidationReport:
    """Aggregates validation warnings and errors."""

    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


_STRING_LIST = {
    "oneOf": [
        {"type": "array", "items": {"type": "string"}},
        {"type": "string"},
    ]
}

REPORTER_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "notifier": {"type": "string", "minLength": 1},
        "enabled": {"type": "boolean"},
        "app_name": {"type": "string"},
        "environment": {"type": "string"},
        "excluded_environments": _STRING_LIST,
        "project_root": {"type": "string"},
        "tracking": {
            "type": "object",
            "properties": {
                "api_key": {"type": "string"},
                "url": {"type": "string"},
                "project_id": {"type": ["string", "integer"]},
                "timeout": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "apm": {"type": "object"},
        "email": {
            "type": "object",
            "properties": {
                "transport": {"type": "string", "enum": list(EMAIL_TRANSPORTS)},
                "via": {"type": "string", "enum": list(EMAIL_TRANSPORTS)},
                "to": _STRING_LIST,
                "recipient": _STRING_LIST,
                "from": {"type": "string"},
                "sender": {"type": "string"},
                "sendmail_path": {"type": "string"},
                "smtp": {
                    "type": "object",
                    "properties": {
                        "host": {"type": "string"},
                        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                        "username": {"type": "string"},
                        "password": {"type": "string"},
                        "use_tls": {"type": "boolean"},
                        "timeout": {"type": "number", "exclusiveMinimum": 0},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

# Type alias for fix suggestion functions
FixSuggestionGenerator = Callable[[str, str, str], Optional[str]]


def _suggest_schema_fix(path: str, message: str, code: str) -> Optional[str]:
    """Generate fix suggestion for schema validation errors."""
    if "Additional properties are not allowed" in message:
        return "Remove the unknown key or check it for typos"
    if "is not of type" in message:
        return "Change this field to the type shown in the message"
    if "is not one of" in message or "is not valid under any of the given schemas" in message:
        return "Check the allowed values/formats for this field in the documentation"
    return "Review the configuration schema requirements for this field"


def _suggest_notifier_fix(path: str, message: str, code: str) -> Optional[str]:
    known = ", ".join(sorted(set(NOTIFIERS) | set(ALIASES)))
    return f"Use one of: {known}, or an import path such as 'package.module:ClassName'"


def _suggest_missing_setting_fix(path: str, message: str, code: str) -> Optional[str]:
    return f"Set '{path}' or choose a different notifier"


def _suggest_url_fix(path: str, message: str, code: str) -> Optional[str]:
    return "Provide an absolute http(s) URL (e.g., 'https://errbit.example.com')"


FIX_SUGGESTION_REGISTRY: Dict[str, FixSuggestionGenerator] = {
    "schema": _suggest_schema_fix,
    "unknown-notifier": _suggest_notifier_fix,
    "missing-setting": _suggest_missing_setting_fix,
    "invalid-url": _suggest_url_fix,
}


def get_fix_suggestion(issue: ValidationIssue) -> Optional[str]:
    generator = FIX_SUGGESTION_REGISTRY.get(issue.code)
    if generator:
        return generator(issue.path, issue.message, issue.code)
    return None


def _format_jsonschema_path(path: Sequence[Any], prefix: str) -> str:
    tokens: List[str] = [prefix] if prefix else []
    for part in path:
        if isinstance(part, int):
            if tokens:
                tokens[-1] = f"{tokens[-1]}[{part}]"
            else:
                tokens.append(f"[{part}]")
        else:
            tokens.append(str(part))
    return ".".join(tokens) if tokens else "<root>"


def _add_issue(report: ValidationReport, severity: str, path: str, message: str, code: str) -> None:
    issue = ValidationIssue(severity=severity, path=path, message=message, code=code)
    issue.fix_suggestion = get_fix_suggestion(issue)
    if severity == "error":
        report.errors.append(issue)
    else:
        report.warnings.append(issue)


def validate_config_data(data: Dict[str, Any]) -> ValidationReport:
    """Validate a raw configuration mapping against schema and semantic rules."""
    report = ValidationReport()
    prefix = ""
    block: Any = data
    if isinstance(data, dict) and "reporter" in data:
        prefix = "reporter"
        block = data["reporter"]

    validator = Draft7Validator(REPORTER_SCHEMA)
    schema_errors = sorted(validator.iter_errors(block), key=lambda exc: list(exc.path))
    for error in schema_errors:
        _add_issue(report, "error", _format_jsonschema_path(error.absolute_path, prefix), error.message, "schema")

    if isinstance(block, dict) and not schema_errors:
        _validate_semantics(block, report, prefix)
    return report


def _validate_semantics(block: Dict[str, Any], report: ValidationReport, prefix: str) -> None:
    def path(name: str) -> str:
        return f"{prefix}.{name}" if prefix else name

    notifier = str(block.get("notifier") or "sink").strip()
    normalized = ALIASES.get(notifier.lower(), notifier.lower())
    if ":" not in notifier and normalized not in NOTIFIERS:
        _add_issue(report, "error", path("notifier"), f"Unknown notifier '{notifier}'", "unknown-notifier")

    tracking = block.get("tracking") or {}
    url = tracking.get("url")
    if url is not None and not validate_url(url):
        _add_issue(report, "error", path("tracking.url"), f"Invalid URL '{url}'", "invalid-url")
    if normalized == "tracking" and not tracking.get("api_key"):
        _add_issue(
            report,
            "error",
            path("tracking.api_key"),
            "The tracking notifier requires an api_key",
            "missing-setting",
        )

    email = block.get("email") or {}
    if normalized == "email":
        if not (email.get("to") or email.get("recipient")):
            _add_issue(report, "error", path("email.to"), "The email notifier requires a recipient", "missing-setting")
        if not (email.get("from") or email.get("sender")):
            _add_issue(report, "error", path("email.from"), "The email notifier requires a sender", "missing-setting")
        transport = email.get("transport") or email.get("via") or "sendmail"
        if transport == "smtp" and not (email.get("smtp") or {}).get("host"):
            _add_issue(
                report,
                "error",
                path("email.smtp.host"),
                "SMTP transport requires a host",
                "missing-setting",
            )

    if normalized == "apm" and not block.get("apm"):
        _add_issue(
            report,
            "warning",
            path("apm"),
            "No APM settings provided; the agent will rely on its own config file or environment",
            "apm-settings",
        )

    environment = block.get("environment")
    excluded = block.get("excluded_environments")
    if isinstance(excluded, str):
        excluded = split_csv(excluded)
    if isinstance(environment, str) and isinstance(excluded, list):
        if normalize_environment(environment) in {normalize_environment(item) for item in excluded}:
            _add_issue(
                report,
                "warning",
                path("environment"),
                f"Environment '{environment}' is excluded; exceptions will not be reported",
                "environment-excluded",
            )
