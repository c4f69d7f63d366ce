"""
Tests for ParamGuard log redaction
"""

import logging

from paramguard.utils.redaction import (
    RedactingFilter,
    SensitiveDataRedactor,
    configure_logging,
)


class TestSensitiveDataRedactor:
    """Tests for secret scrubbing."""

    def test_env_assignment(self):
        redactor = SensitiveDataRedactor()
        assert redactor.redact("API_KEY=12345abc") == "API_KEY=[REDACTED]"

    def test_password_field(self):
        redactor = SensitiveDataRedactor()
        assert "hunter2" not in redactor.redact("db password: hunter2")

    def test_connection_string(self):
        redactor = SensitiveDataRedactor()
        result = redactor.redact("postgresql://admin:s3cret@db:5432/app")
        assert "s3cret" not in result
        assert "db:5432/app" in result

    def test_plain_text_unchanged(self):
        redactor = SensitiveDataRedactor()
        assert redactor.redact("Archived record 4") == "Archived record 4"

    def test_redact_dict(self):
        redactor = SensitiveDataRedactor()
        result = redactor.redact_dict(
            {"name": "API_KEY", "payload": "12345", "meta": {"password": "x"}}
        )
        assert result == {
            "name": "API_KEY",
            "payload": "[REDACTED]",
            "meta": {"password": "[REDACTED]"},
        }


class TestRedactingFilter:
    """Tests for the logging filter."""

    def test_filter_rewrites_message(self):
        record = logging.LogRecord(
            "paramguard", logging.INFO, __file__, 1, "loaded %s", ("SECRET_TOKEN=abc",), None
        )
        assert RedactingFilter().filter(record) is True
        assert record.getMessage() == "loaded SECRET_TOKEN=[REDACTED]"

    def test_configure_logging_installs_filter(self):
        configure_logging("DEBUG")
        handlers = logging.getLogger().handlers
        assert handlers
        assert all(
            any(isinstance(f, RedactingFilter) for f in handler.filters)
            for handler in handlers
        )
