"""Structured logger output and redaction."""

import io
import json

from imapsession.utils.logging import JsonLogger, get_logger


def _records(stream: io.StringIO):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_entries_are_single_line_json_with_redaction():
    stream = io.StringIO()
    logger = JsonLogger(stream=stream, component="imapsession.test")

    logger.info("login", password="hunter2", method="login", extra={"token": "t", "ok": True})

    (record,) = _records(stream)
    assert record["lvl"] == "INFO"
    assert record["msg"] == "login"
    assert record["component"] == "imapsession.test"
    assert record["password"] == "[redacted]"
    assert record["method"] == "login"
    assert record["extra"] == {"token": "[redacted]", "ok": True}


def test_threshold_suppresses_lower_levels():
    stream = io.StringIO()
    logger = JsonLogger(stream=stream, min_level="WARN")

    logger.debug("hidden")
    logger.info("hidden")
    logger.warning("shown")
    logger.error("shown too")

    assert [r["lvl"] for r in _records(stream)] == ["WARN", "ERROR"]


def test_child_shares_stream_and_threshold():
    stream = io.StringIO()
    parent = JsonLogger(stream=stream, component="parent", min_level="DEBUG")

    parent.child("kid").debug("hello")

    (record,) = _records(stream)
    assert record["component"] == "kid"


def test_get_logger_defaults():
    logger = get_logger("imapsession.x")

    assert logger.component == "imapsession.x"
    assert logger.min_level == "INFO"


def test_loggers_on_one_stream_share_a_write_lock():
    stream = io.StringIO()
    first = JsonLogger(stream=stream, component="engine")
    second = JsonLogger(stream=stream, component="idle")

    assert first._lock is second._lock
    assert first.child("session")._lock is first._lock
    assert JsonLogger(stream=io.StringIO())._lock is not first._lock
