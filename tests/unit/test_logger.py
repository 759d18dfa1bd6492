"""Unit tests for log formatting helpers."""

import json
import logging

import pytest

from linkdok.utils.logger import JsonFormatter, parse_size

def make_record(**extra):
    record = logging.LogRecord("linkdok.test", logging.INFO, __file__, 10, "hello %s", ("tutor",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record

def test_json_formatter_includes_known_extras():
    line = JsonFormatter().format(make_record(model="devstral", latency_ms=42, unrelated="x"))
    entry = json.loads(line)

    assert entry["message"] == "hello tutor"
    assert entry["level"] == "INFO"
    assert entry["model"] == "devstral"
    assert entry["latency_ms"] == 42
    assert "unrelated" not in entry

@pytest.mark.parametrize("value,expected", [
    ("50MB", 50 * 1024 ** 2),
    ("512kb", 512 * 1024),
    ("1GB", 1024 ** 3),
    ("2048", 2048),
    (4096, 4096),
])
def test_parse_size(value, expected):
    assert parse_size(value) == expected
