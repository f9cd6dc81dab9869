from __future__ import annotations

import datetime as dt

from errorbridge.config import ReporterConfig
from errorbridge.formatting import (
    ExceptionRecord,
    StackFrame,
    build_context,
    build_tracking_notice,
    describe_exception,
    format_email_body,
    format_email_subject,
)


class ExceptionClass(Exception):
    pass


def _raised(error: BaseException) -> BaseException:
    try:
        raise error
    except BaseException as exc:  # noqa: BLE001
        return exc


def test_record_from_live_exception() -> None:
    record = describe_exception(_raised(ExceptionClass("Something bad")))

    assert record.type_name == "ExceptionClass"
    assert record.message == "Something bad"
    assert record.qualified_name == f"{__name__}.ExceptionClass"
    assert record.frames[-1].function == "_raised"
    assert record.backtrace[-1].endswith(":in `_raised'")


def test_record_without_message_uses_type_name() -> None:
    record = describe_exception(ExceptionClass())

    assert record.message == "ExceptionClass"
    assert record.backtrace == ()


def test_builtin_exception_has_short_qualified_name() -> None:
    assert describe_exception(ValueError("x")).qualified_name == "ValueError"


def test_describe_passes_records_through_and_wraps_other_values() -> None:
    record = ExceptionRecord(type_name="Boom", message="bad")

    assert describe_exception(record) is record
    described = describe_exception("disk full")
    assert described.type_name == "str"
    assert described.message == "disk full"


def test_stack_frame_rendering() -> None:
    assert str(StackFrame(file="app.py", line=12, function="run")) == "app.py:12:in `run'"
    assert str(StackFrame(file="app.py", line=None, function="run")) == "app.py:in `run'"


def test_email_subject_and_body() -> None:
    record = ExceptionRecord(type_name="ExceptionClass", message="Something bad", backtrace=("1: foo", "2: bar"))

    subject = format_email_subject("App", record)
    body = format_email_body("App", record, dt.datetime(2014, 7, 24, 17, 30, 0))

    assert subject == "[App] Exception: ExceptionClass (Something bad)"
    assert body == (
        "App reported an exception at 2014-07-24 17:30:00\n\n"
        "ExceptionClass (Something bad):\n"
        "1: foo\n2: bar\n\n"
    )


def test_build_context_reads_snapshot() -> None:
    config = ReporterConfig(app_name="Billing", environment="staging", project_root="/srv/billing")

    context = build_context(config)

    assert context["framework_env"] == "staging"
    assert context["app_name"] == "Billing"
    assert context["project_root"] == "/srv/billing"
    assert context["notifier_name"] == "errorbridge"
    assert context["hostname"]


def test_tracking_notice_lists_innermost_frame_first() -> None:
    frames = (
        StackFrame(file="main.py", line=1, function="main"),
        StackFrame(file="worker.py", line=20, function="work"),
    )
    record = ExceptionRecord(type_name="Boom", message="bad", qualified_name="app.Boom", frames=frames)
    context = {"framework_env": "production", "app_name": "App", "project_root": "/srv", "hostname": "h"}

    notice = build_tracking_notice(record, context)

    error = notice["errors"][0]
    assert error["type"] == "app.Boom"
    assert [frame["function"] for frame in error["backtrace"]] == ["work", "main"]
    assert notice["context"]["environment"] == "production"
    assert notice["context"]["component"] == "App"
    assert notice["environment"]["framework_env"] == "production"


def test_tracking_notice_falls_back_to_backtrace_lines() -> None:
    record = ExceptionRecord(type_name="Boom", message="bad", backtrace=("1: foo",))

    notice = build_tracking_notice(record, {})

    assert notice["errors"][0]["type"] == "Boom"
    assert notice["errors"][0]["backtrace"] == [{"file": "1: foo", "line": None, "function": ""}]
