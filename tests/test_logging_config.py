from __future__ import annotations

import json
import logging

from site_copilot.logging_config import StructuredFormatter, get_trace_id, record_extras, set_trace_id


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("site_copilot.tools", logging.INFO, __file__, 10, "Applied tool", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_extras_are_attributes_added_by_the_caller():
    assert record_extras(_record(tool="applyTheme", site_id="site_1")) == {"tool": "applyTheme", "site_id": "site_1"}
    assert record_extras(_record()) == {}


def test_formatter_writes_one_json_object():
    set_trace_id("trace-123")
    try:
        line = StructuredFormatter().format(_record(tool="applyTheme", attempts=2))
    finally:
        set_trace_id(None)

    payload = json.loads(line)
    assert payload["severity"] == "INFO"
    assert payload["message"] == "Applied tool"
    assert payload["logger"] == "site_copilot.tools"
    assert payload["logging.googleapis.com/trace"] == "trace-123"
    assert payload["tool"] == "applyTheme"
    assert payload["attempts"] == 2
    assert payload["timestamp"].endswith("Z")
    assert get_trace_id() is None


def test_formatter_omits_trace_when_unset():
    payload = json.loads(StructuredFormatter().format(_record()))

    assert "logging.googleapis.com/trace" not in payload


def test_conversation_and_site_become_labels():
    formatter = StructuredFormatter(environment="prod")

    payload = json.loads(formatter.format(_record(conversation_id="conv_1", site_id="site_1", mode="builder")))

    assert payload["logging.googleapis.com/labels"] == {
        "service": "site-copilot",
        "environment": "prod",
        "conversation_id": "conv_1",
        "site_id": "site_1",
    }
    assert payload["mode"] == "builder"
    assert payload["logging.googleapis.com/sourceLocation"]["line"] == 10


def test_trace_is_qualified_with_the_project():
    set_trace_id("abc123")
    try:
        payload = json.loads(StructuredFormatter(project_id="demo").format(_record()))
    finally:
        set_trace_id(None)

    assert payload["logging.googleapis.com/trace"] == "projects/demo/traces/abc123"
