"""Input validation for mailbox operations."""

from email.utils import parseaddr
from typing import Any, Iterable, List, Optional, Union

from mailbridge.utils.errors import MissingRequiredFieldError, ValidationError


def validate_limit(limit: Any) -> int:
    """Listing limits must be positive integers."""
    try:
        value = int(limit)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Limit must be an integer, got {limit!r}", details={"limit": str(limit)}
        ) from e

    if isinstance(limit, bool) or value < 1:
        raise ValidationError(
            f"Limit must be at least 1, got {limit!r}", details={"limit": str(limit)}
        )

    return value


def validate_message_number(value: Any, name: str = "id") -> int:
    """Message identifiers are positive ints or decimal strings.

    Args:
        value: Sequence number (IMAP) or ordinal (POP3) from a listing
        name: Parameter name used in the error message
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid message {name}: {value!r}")

    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValidationError(
                f"Invalid message {name}: {value!r}", details={name: value}
            )

    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Invalid message {name}: {value!r}", details={name: str(value)}
        ) from e

    if number < 1:
        raise ValidationError(
            f"Message {name} must be at least 1, got {number}", details={name: number}
        )

    return number


def _split_on_commas(value: str) -> List[str]:
    """Split on commas outside quoted names, angle brackets and comments."""
    parts: List[str] = []
    current: List[str] = []
    quoted = escaped = False
    depth = 0

    for char in value:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            quoted = not quoted
        elif not quoted and char in "<(":
            depth += 1
        elif not quoted and char in ">)" and depth:
            depth -= 1
        elif char == "," and not quoted and not depth:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)

    parts.append("".join(current))
    return parts


def split_addresses(value: Union[str, Iterable[str], None]) -> List[str]:
    """Split an address string (or list) into clean entries.

    Entries keep their display names, so ``"Doe, Alice" <a@x.com>`` stays
    one entry.
    """
    if not value:
        return []
    if isinstance(value, str):
        value = [value]

    return [
        entry.strip()
        for item in value
        if item
        for entry in _split_on_commas(str(item))
        if entry.strip()
    ]


def envelope_address(entry: str) -> str:
    """Bare mailbox of an address entry: ``Alice <a@x.com>`` -> ``a@x.com``."""
    _, address = parseaddr(entry)
    return address or entry.strip()


def require_recipients(to: Union[str, Iterable[str], None]) -> List[str]:
    recipients = split_addresses(to)
    if not recipients:
        raise MissingRequiredFieldError("At least one recipient is required")
    return recipients


def join_addresses(*groups: Optional[Union[str, Iterable[str]]]) -> str:
    """Flatten several address groups into one comma separated string."""
    addresses: List[str] = []
    for group in groups:
        addresses.extend(split_addresses(group))
    return ",".join(addresses)
