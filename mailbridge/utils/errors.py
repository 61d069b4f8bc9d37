"""Centralized error definitions for MailBridge."""

from enum import Enum
from typing import Any, Dict

from mailbridge.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    PROTOCOL = "protocol"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    FILE_SYSTEM = "file_system"
    UNKNOWN = "unknown"


## Custom Exceptions


class MailBridgeError(Exception):
    """Base exception for all MailBridge errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise MailBridgeError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


## Network Errors


class NetworkError(MailBridgeError):
    """Base exception for network-related errors."""

    category = ErrorCategory.NETWORK
    user_message = "A network error occurred"


class ConnectError(NetworkError):
    """Socket or DNS failure while reaching a mail server."""

    user_message = "Failed to connect to the mail server"


class NetworkTimeoutError(NetworkError, TimeoutError):
    """A connect, authenticate or mailbox phase exceeded its deadline."""

    user_message = "The connection timed out"


## Protocol Errors


class ProtocolError(MailBridgeError):
    """The server answered a command with a failure status."""

    category = ErrorCategory.PROTOCOL
    user_message = "The mail server rejected the request"


class IMAPError(ProtocolError):
    """Exception for IMAP protocol errors."""

    user_message = "IMAP command failed"


class POP3Error(ProtocolError):
    """Exception for POP3 protocol errors."""

    user_message = "POP3 command failed"


class SMTPError(ProtocolError):
    """Exception for SMTP protocol errors."""

    user_message = "Failed to send email"


## Authentication Errors


class AuthenticationError(MailBridgeError):
    """Base exception for authentication-related errors."""

    category = ErrorCategory.AUTHENTICATION
    user_message = "An authentication error occurred"


class InvalidCredentialsError(AuthenticationError):
    """Exception for rejected login credentials."""

    user_message = "Invalid email or password"


## Validation Errors


class ValidationError(MailBridgeError):
    """Base exception for validation-related errors."""

    category = ErrorCategory.VALIDATION
    user_message = "Invalid input"


class ParseError(ValidationError):
    """Raw message bytes could not be parsed."""

    user_message = "Failed to parse email message"


class MissingRequiredFieldError(ValidationError):
    """Exception for missing required fields."""

    user_message = "A required field is missing"


## File System Errors


class FileSystemError(MailBridgeError):
    """Base exception for file system-related errors."""

    category = ErrorCategory.FILE_SYSTEM
    user_message = "A file system error occurred"


## Configuration Errors


class ConfigurationError(MailBridgeError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class MissingConfigError(ConfigurationError):
    """Exception for missing configuration settings."""

    user_message = "Missing configuration settings"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    user_message = "Invalid configuration settings"


## Error Handler


class ErrorHandler:
    """Centralized error handling and logging."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = False
    ) -> Dict[str, Any]:
        """Log an error and convert it to a failed-result dictionary."""
        if isinstance(error, MailBridgeError):
            _get_logger().error(
                f"{context}: {error.message}", extra={"details": error.details}
            )
            if log_traceback:
                _get_logger().exception(error)
            return {"success": False, "error": error.message, **error.to_dict()}

        _get_logger().error(f"{context}: {str(error)}")
        if log_traceback:
            _get_logger().exception(error)
        return {
            "success": False,
            "error": str(error),
            "error_type": "UnknownError",
            "category": ErrorCategory.UNKNOWN.value,
            "message": str(error),
            "details": {"context": context},
        }


## Utility Functions


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, MailBridgeError):
        return error.message
    else:
        return "An unexpected error occurred - check logs for details."
