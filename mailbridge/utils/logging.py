"""Logging utility for MailBridge

Three handlers hang off the ``mailbridge`` logger:
- a rich console handler (WARNING and up unless changed with set_level)
- ``app.log``: every record as one JSON object per line
- ``events.log``: only records logged through ``log_event``

Credentials and mail addresses are masked before any handler sees them.
"""

import json
import logging
import re
from datetime import datetime, timezone
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler

from .paths import LOGS_DIR

ROOT_LOGGER_NAME = "mailbridge"
REDACTED = "[REDACTED]"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def _get_log_dir() -> Path:
    """Create the log directory if needed and return it."""

    from .errors import FileSystemError

    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileSystemError(f"Failed to create log directory: {LOGS_DIR}") from e

    return LOGS_DIR


## JSON Formatter


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra`` fields go under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        }
        if context:
            log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


## Log Masking


_CREDENTIAL_RE = re.compile(
    r'((?:pass(?:word)?|secret|authorization)["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)',
    re.IGNORECASE,
)
_ADDRESS_RE = re.compile(r"([a-zA-Z0-9._%+-]+)@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")

SENSITIVE_FIELDS = {"password", "passwd", "pass_", "secret", "token", "authorization"}


def mask_address(match: re.Match) -> str:
    """``alice@example.com`` -> ``a***@e***``"""
    username, domain = match.group(1), match.group(2)
    return f"{username[0]}***@{domain[0]}***"


def mask_text(text: str) -> str:
    """Redact credential assignments and shorten mail addresses."""
    masked = _CREDENTIAL_RE.sub(lambda m: m.group(1) + REDACTED, text)
    return _ADDRESS_RE.sub(mask_address, masked)


def mask_value(key: str, value: Any) -> Any:
    if str(key).lower() in SENSITIVE_FIELDS:
        return REDACTED
    if isinstance(value, str):
        return mask_text(value)
    if isinstance(value, dict):
        return {k: mask_value(k, v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(mask_value(key, item) for item in value)
    return value


class SensitiveDataFilter(logging.Filter):
    """Masks the message and every ``extra`` field of a record in place."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = mask_text(record.msg)

        for key, value in list(record.__dict__.items()):
            if key not in _RECORD_ATTRS:
                setattr(record, key, mask_value(key, value))

        return True


## Main Log Manager


class LogManager:
    """Manages logging configuration and provides logger instances."""

    def __init__(self, log_level: str = "WARNING"):
        self.log_level = getattr(logging, log_level.upper())
        self.root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        self.root_logger.setLevel(logging.DEBUG)
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Attach console, app and event handlers, all behind the masking filter."""

        from .errors import FileSystemError

        sensitive_filter = SensitiveDataFilter()
        log_dir = _get_log_dir()

        console_handler = RichHandler(
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

        try:
            app_handler = RotatingFileHandler(
                log_dir / "app.log",
                maxBytes=5_242_880,
                backupCount=5,
                encoding="utf-8",
            )
            event_handler = RotatingFileHandler(
                log_dir / "events.log",
                maxBytes=2_048_000,
                backupCount=3,
                encoding="utf-8",
            )

        except OSError as e:
            raise FileSystemError(
                f"Failed to create log file handlers: {str(e)}"
            ) from e

        app_handler.setLevel(logging.DEBUG)
        app_handler.setFormatter(JSONFormatter())

        event_handler.setLevel(logging.INFO)
        event_handler.setFormatter(JSONFormatter())
        event_handler.addFilter(lambda record: hasattr(record, "event_type"))

        self.root_logger.handlers.clear()
        for handler in (console_handler, app_handler, event_handler):
            handler.addFilter(sensitive_filter)
            self.root_logger.addHandler(handler)

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Logger under the ``mailbridge`` hierarchy.

        Module names already inside the package are used as-is so the
        hierarchy matches the import path.
        """

        if not name:
            return self.root_logger
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            return logging.getLogger(name)
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")

    def set_level(self, level: str):
        """Set console logging level at runtime"""

        try:
            self.log_level = getattr(logging, level.upper())
        except AttributeError as e:
            raise ValueError(f"Invalid logging level: {level}") from e

        for handler in self.root_logger.handlers:
            if isinstance(handler, RichHandler):
                handler.setLevel(self.log_level)

    def log_event(self, event_type: str, message: str, **extra: Any) -> None:
        """Log a lifecycle event; these also land in ``events.log``."""

        extra_dict: Dict[str, Any] = {"event_type": event_type}
        extra_dict.update(extra)
        self.root_logger.info(message, extra=extra_dict)


## Decorators for Logging


def async_log_call(func):
    """Async decorator to log entry, exit and duration of a coroutine."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        logger = logging.getLogger(ROOT_LOGGER_NAME)
        func_name = f"{func.__module__}.{func.__qualname__}"
        logger.debug(f"-> Entering {func_name} (async)")
        start_time = datetime.now()

        try:
            result = await func(*args, **kwargs)
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(f"<- Exiting {func_name} (Duration: {duration:.3f}s)")
            return result

        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            logger.debug(f"<- Error in {func_name} after {duration:.3f}s: {e}")
            raise

    return wrapper


## Module-level LogManager Instance and Helper Functions

_log_manager: Optional[LogManager] = None


def init_logging(log_level: str = "WARNING") -> LogManager:
    """Initialize logging system and return LogManager instance."""

    global _log_manager

    if _log_manager is None:
        _log_manager = LogManager(log_level)

    return _log_manager


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return init_logging().get_logger(name)


def log_event(event_type: str, message: str, **extra: Any) -> None:
    init_logging().log_event(event_type, message, **extra)
