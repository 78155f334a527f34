"""Tests for structured logging configuration."""

import json
import logging

import pytest

from sigv4_middleware.logging_config import (
    REDACTED,
    JSONFormatter,
    SecretRedactionFilter,
    configure_logging,
)


def _record(msg: str, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("sigv4_middleware.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record("hello %s", "world")))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "sigv4_middleware.test"
        assert entry["message"] == "hello world"
        assert "timestamp" in entry

    def test_signing_extras_included(self):
        record = _record(
            "signed", method="GET", path="/health", service="lambda", region="us-east-1"
        )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["method"] == "GET"
        assert entry["path"] == "/health"
        assert entry["service"] == "lambda"
        assert entry["region"] == "us-east-1"

    def test_absent_extras_omitted(self):
        entry = json.loads(JSONFormatter().format(_record("plain")))
        assert "method" not in entry
        assert "signed_headers" not in entry


class TestSecretRedactionFilter:
    def test_secret_masked_in_args(self):
        record = _record("key=%s", "s3cr3t")
        assert SecretRedactionFilter(["s3cr3t"]).filter(record) is True
        assert record.getMessage() == f"key={REDACTED}"

    def test_no_secrets_leaves_record(self):
        record = _record("key=%s", "value")
        SecretRedactionFilter([""]).filter(record)
        assert record.args == ("value",)


@pytest.mark.usefixtures("restore_root_logger")
class TestConfigureLogging:
    def test_json_handler_installed(self):
        configure_logging(level="DEBUG", fmt="json", secrets=["abc"])
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert any(isinstance(f, SecretRedactionFilter) for f in root.handlers[0].filters)

    def test_text_handler_installed(self):
        configure_logging(level="WARNING", fmt="text")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)
