"""Tests for lakeorch.utils helpers."""

import json
import logging

import pytest

from lakeorch.utils import StructuredFormatter, format_duration, head_lines, setup_logging, truncate


class TestTextHelpers:
    def test_truncate(self):
        assert truncate("abc", 10) == "abc"
        assert truncate("abcdef", 3) == "abc"
        assert truncate(None) == ""
        assert truncate("ab   \n  cd", 5) == "ab"

    def test_head_lines(self):
        assert head_lines("a\nb\nc", 2) == "a\nb"
        assert head_lines("", 5) == ""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(45, "45s"), (83, "1m 23s"), (3725, "1h 2m 5s")],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestStructuredFormatter:
    def test_includes_extra_fields(self):
        record = logging.LogRecord("lakeorch.gates", logging.INFO, __file__, 1, "Gate a: met", None, None)
        record.event = "gate_evaluated"
        record.phase = "core"
        record.metadata = {"name": "a"}

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["message"] == "Gate a: met"
        assert data["event"] == "gate_evaluated"
        assert data["phase"] == "core"
        assert data["metadata"] == {"name": "a"}


def test_setup_logging_writes_structured_file(tmp_path):
    log_file = tmp_path / "logs" / "lakeorch.log"
    logger = setup_logging(log_file, "INFO", "structured", console_output=False)

    logging.getLogger("lakeorch.test").info("hello", extra={"event": "test_event"})
    for handler in logger.handlers:
        handler.flush()

    line = json.loads(log_file.read_text().splitlines()[0])
    assert line["event"] == "test_event"
    assert line["logger"] == "lakeorch.test"

    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
