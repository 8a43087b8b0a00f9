from __future__ import annotations

import json
import logging

from punchgate.observability import (
    ContextFilter,
    JsonFormatter,
    JsonLogConfig,
    TextFormatter,
    branch_context,
    configure_logging,
    get_branch_id,
)


def _record(message: str) -> logging.LogRecord:
    record = logging.LogRecord("punchgate.fetch", logging.INFO, __file__, 1, message, None, None)
    ContextFilter().filter(record)
    return record


def test_branch_context_is_scoped() -> None:
    assert get_branch_id() is None
    with branch_context("B1"):
        assert get_branch_id() == "B1"
        with branch_context("B2"):
            assert get_branch_id() == "B2"
        assert get_branch_id() == "B1"
    assert get_branch_id() is None


def test_json_formatter_includes_branch_and_fields() -> None:
    with branch_context("B1"):
        record = _record("2 new punches")
    record.fields = {"forwarded": 2}

    payload = json.loads(JsonFormatter(JsonLogConfig()).format(record))

    assert payload["message"] == "2 new punches"
    assert payload["severity"] == "INFO"
    assert payload["logger"] == "punchgate.fetch"
    assert payload["service"] == "punchgate"
    assert payload["branch_id"] == "B1"
    assert payload["fields"] == {"forwarded": 2}


def test_text_formatter_appends_branch_only_inside_cycle() -> None:
    outside = TextFormatter().format(_record("pass complete"))
    with branch_context("B7"):
        inside = TextFormatter().format(_record("no new punches"))

    assert "[branch=" not in outside
    assert inside.endswith("[branch=B7]")


def test_configure_logging_replaces_handlers() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(level=logging.DEBUG, log_format="json")
        configure_logging(level=logging.WARNING, log_format="json")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
