"""
Tests for input validation and error results

Tests cover:
- Limits and message identifiers
- Address list handling
- ErrorHandler result dictionaries
"""
import pytest

from mailbridge.core.validation import (
    envelope_address,
    join_addresses,
    require_recipients,
    split_addresses,
    validate_limit,
    validate_message_number,
)
from mailbridge.utils.errors import (
    ErrorHandler,
    MissingRequiredFieldError,
    NetworkTimeoutError,
    ValidationError,
    format_error_message,
)


class TestValidateLimit:
    """Tests for listing limits"""

    def test_positive_int(self):
        assert validate_limit(20) == 20

    def test_numeric_string(self):
        """Test numeric strings are accepted"""
        assert validate_limit("5") == 5

    @pytest.mark.parametrize("value", [0, -1, True, None, "ten"])
    def test_rejected(self, value):
        """Test non-positive and non-integer limits are rejected"""
        with pytest.raises(ValidationError):
            validate_limit(value)


class TestValidateMessageNumber:
    """Tests for sequence numbers and ordinals"""

    def test_int_and_string(self):
        assert validate_message_number(3) == 3
        assert validate_message_number(" 12 ") == 12

    @pytest.mark.parametrize("value", [0, "0", "-1", "1.5", "abc", False, None])
    def test_rejected(self, value):
        """Test anything but a positive integer is rejected"""
        with pytest.raises(ValidationError):
            validate_message_number(value)


class TestAddresses:
    """Tests for address list helpers"""

    def test_split_string(self):
        """Test comma separated strings are split and trimmed"""
        assert split_addresses(" a@x.com, b@x.com ,,") == ["a@x.com", "b@x.com"]

    def test_split_list(self):
        assert split_addresses(["a@x.com", " ", "b@x.com"]) == ["a@x.com", "b@x.com"]

    def test_split_keeps_quoted_commas(self):
        """Test a comma inside a quoted display name does not split the entry"""
        assert split_addresses('"Smith, Carol" <c@x.com>, b@x.com') == [
            '"Smith, Carol" <c@x.com>',
            "b@x.com",
        ]

    def test_envelope_address(self):
        """Test display names are dropped for the envelope"""
        assert envelope_address('"Doe, Alice" <a@x.com>') == "a@x.com"
        assert envelope_address(" b@x.com ") == "b@x.com"

    def test_join_groups(self):
        """Test several groups flatten into one list"""
        assert join_addresses("a@x.com", "b@x.com, c@x.com", None) == "a@x.com,b@x.com,c@x.com"

    def test_require_recipients(self):
        """Test an empty recipient list is a missing field"""
        with pytest.raises(MissingRequiredFieldError):
            require_recipients("")


class TestErrorHandler:
    """Tests for failure result dictionaries"""

    def test_mailbridge_error(self):
        """Test a known error keeps its type, category and details"""
        result = ErrorHandler.handle(
            ValidationError("Bad limit", details={"limit": "0"}), context="imap.inbox"
        )

        assert result["success"] is False
        assert result["error"] == "Bad limit"
        assert result["error_type"] == "ValidationError"
        assert result["category"] == "validation"
        assert result["details"] == {"limit": "0"}

    def test_unknown_error(self):
        """Test an unexpected exception becomes an UnknownError result"""
        result = ErrorHandler.handle(KeyError("x"), context="pop3.info")

        assert result["success"] is False
        assert result["error_type"] == "UnknownError"
        assert result["details"] == {"context": "pop3.info"}

    def test_timeout_is_builtin_timeout(self):
        """Test network timeouts can be caught as TimeoutError"""
        assert isinstance(NetworkTimeoutError(), TimeoutError)

    def test_format_error_message(self):
        """Test unexpected errors are not shown verbatim"""
        assert format_error_message(ValidationError("Bad limit")) == "Bad limit"
        assert "unexpected" in format_error_message(RuntimeError("secret"))
