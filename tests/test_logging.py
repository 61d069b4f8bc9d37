"""
Tests for the logging utilities

Tests cover:
- Credential and address masking
- JSON records with extra context
- Logger naming under the package root
"""
import json
import logging

from mailbridge.utils.logging import (
    REDACTED,
    JSONFormatter,
    SensitiveDataFilter,
    get_logger,
    mask_text,
)


def make_record(msg, **extra):
    record = logging.LogRecord("mailbridge.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMasking:
    """Tests for sensitive data masking"""

    def test_password_assignment_redacted(self):
        """Test a password in free text is replaced"""
        masked = mask_text("login failed password=hunter2 for host")

        assert "hunter2" not in masked
        assert f"password={REDACTED}" in masked

    def test_address_shortened(self):
        assert mask_text("sent to alice@example.com") == "sent to a***@e***"

    def test_filter_masks_extra_fields(self):
        """Test sensitive extra fields are redacted and addresses masked"""
        record = make_record(
            "Connecting",
            password="abcd efgh",
            username="user@test.com",
            server="imap.test.com",
        )

        assert SensitiveDataFilter().filter(record)
        assert record.password == REDACTED
        assert record.username == "u***@t***"
        assert record.server == "imap.test.com"


class TestJSONFormatter:
    """Tests for JSON log lines"""

    def test_extra_goes_to_context(self):
        """Test extra attributes land under context"""
        record = make_record("SMTP connection closed", event_type="session_closed", emails_sent=2)

        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["message"] == "SMTP connection closed"
        assert entry["context"] == {"event_type": "session_closed", "emails_sent": 2}

    def test_no_context_without_extra(self):
        entry = json.loads(JSONFormatter().format(make_record("plain")))

        assert "context" not in entry


class TestGetLogger:
    """Tests for logger naming"""

    def test_module_name_kept(self):
        """Test package module names are used as-is"""
        assert get_logger("mailbridge.core.bridge").name == "mailbridge.core.bridge"

    def test_short_name_prefixed(self):
        assert get_logger("cli").name == "mailbridge.cli"

    def test_root(self):
        assert get_logger().name == "mailbridge"
