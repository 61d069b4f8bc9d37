"""Email parsing - raw RFC822 bytes into normalized Message records.

Headers are decoded with the standard library header parser (RFC 2047
words, address lists flattened to text); bodies and attachment metadata
come from fast-mail-parser.

Two entry points:
- ``parse_from_bytes`` is strict and raises ParseError
- ``normalize`` never raises; a message that cannot be parsed comes back
  with its defaults (placeholder subject, current time, empty bodies)
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from email import policy
from email.message import Message as HeaderBlock
from email.parser import BytesHeaderParser
from email.utils import parsedate_to_datetime
from typing import List, Mapping, Optional

from fast_mail_parser import parse_email

from mailbridge.core.models.email import NO_SUBJECT, Attachment, Message, utc_now
from mailbridge.utils.errors import MailBridgeError, ParseError
from mailbridge.utils.logging import get_logger

logger = get_logger(__name__)

_header_parser = BytesHeaderParser(policy=policy.default)
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="mailbridge-parse")


def _read_header(headers: HeaderBlock, name: str) -> str:
    """Decoded header value, or an empty string when absent or unreadable."""
    try:
        value = headers.get(name)
    except Exception as e:
        # The header registry raises on some malformed address lists
        logger.debug(f"Unreadable {name} header: {e}")
        return ""
    return " ".join(str(value).split()) if value is not None else ""


def parse_date(value: Optional[str]) -> datetime:
    """Parse an RFC 2822 date into aware UTC, defaulting to now."""
    if not value:
        return utc_now()

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        logger.debug(f"Unparseable date header: {value[:40]}")
        return utc_now()

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class EmailParser:
    """Parse MIME email messages into normalized Message records"""

    @staticmethod
    def parse_from_bytes(raw_email: bytes, message_number: int) -> Message:
        """Parse raw email bytes, raising ParseError on malformed input.

        Args:
            raw_email: Complete RFC822 message
            message_number: Protocol-scoped position of the message

        Returns:
            Normalized Message

        Raises:
            ParseError: If the bytes cannot be parsed
        """
        if not raw_email:
            raise ParseError(
                "Empty message body", details={"message_number": message_number}
            )

        try:
            raw_email = bytes(raw_email)
            headers = _header_parser.parsebytes(raw_email)
            parsed = parse_email(raw_email)

            subject = _read_header(headers, "Subject")

            return Message(
                id=message_number,
                message_id=_read_header(headers, "Message-ID"),
                sender=_read_header(headers, "From"),
                to=_read_header(headers, "To"),
                cc=_read_header(headers, "Cc"),
                subject=subject or NO_SUBJECT,
                date=parse_date(_read_header(headers, "Date")),
                text="\n".join(parsed.text_plain or []),
                html="\n".join(parsed.text_html or []),
                attachments=[
                    Attachment(
                        filename=attachment.filename or "",
                        content_type=attachment.mimetype or "application/octet-stream",
                        size=len(attachment.content or b""),
                    )
                    for attachment in parsed.attachments or []
                ],
            )

        except MailBridgeError:
            raise

        except Exception as e:
            raise ParseError(
                f"Failed to parse message {message_number}: {str(e)}",
                details={"message_number": message_number},
            ) from e

    @staticmethod
    def normalize(raw_email: bytes, message_number: int) -> Message:
        """Parse raw email bytes, substituting defaults on failure."""
        try:
            return EmailParser.parse_from_bytes(raw_email, message_number)
        except ParseError as e:
            logger.warning(
                "Message could not be parsed, using defaults",
                extra={"message_number": message_number, "error": str(e)},
            )
            return Message.placeholder(message_number)

    @classmethod
    async def normalize_batch(cls, raw_messages: Mapping[int, bytes]) -> List[Message]:
        """Normalize a fetched batch concurrently.

        Each message is parsed in its own task; the batch completes once
        every task has settled. A task that fails for any reason yields the
        placeholder for its message, so one bad message never drops another.
        Output order is arrival order; callers sort.
        """
        loop = asyncio.get_running_loop()
        numbers = list(raw_messages)

        results = await asyncio.gather(
            *(
                loop.run_in_executor(_executor, cls.normalize, raw_messages[number], number)
                for number in numbers
            ),
            return_exceptions=True,
        )

        messages = []
        for number, result in zip(numbers, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Parse task failed, using defaults",
                    extra={"message_number": number, "error": str(result)},
                )
                messages.append(Message.placeholder(number))
            else:
                messages.append(result)

        return messages
