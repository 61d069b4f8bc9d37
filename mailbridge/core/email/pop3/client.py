"""POP3 mailbox operations.

The store is a flat 1..N list: no folders, no server-side search and no
flags beyond delete. Listing walks ordinals downward from N and, unlike
the IMAP path, leaves out any message that cannot be retrieved or parsed
instead of substituting defaults. Deletion is only final once QUIT has
been acknowledged.
"""

import re
import time
from typing import Dict, List, Optional, Union

from mailbridge.core.models.email import Acknowledgement, MailboxInfo, Message
from mailbridge.core.validation import validate_limit, validate_message_number
from mailbridge.utils.config import ConfigInput, ConfigManager
from mailbridge.utils.errors import ParseError, POP3Error
from mailbridge.utils.logging import async_log_call, get_logger

from ..constants import DEFAULT_LIMIT, Timeouts
from ..parser import EmailParser
from ..session import Session
from .connection import POP3Connection

logger = get_logger(__name__)

_LISTING_RE = re.compile(r"^\s*(\d+)\s+(\d+)")


def listing_ordinals(count: int, limit: int) -> range:
    """Ordinals N, N-1, ... down to max(1, N - limit + 1)."""
    return range(count, max(1, count - limit + 1) - 1, -1)


class POP3Client:
    """Client for sequential mailbox operations over POP3."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        connection: Optional[POP3Connection] = None,
    ):
        """Initialize POP3 client.

        Args:
            config_manager: Configuration manager instance (process default if None)
            connection: Session manager to use instead of a default one
        """
        self._connection = connection or POP3Connection(config_manager)

    @property
    def connection(self) -> POP3Connection:
        return self._connection

    async def _retrieve_raw(self, session: Session, ordinal: int) -> bytes:
        _response, lines, _octets = await self._connection.run(
            session.client.retr, ordinal, operation="retr"
        )
        return b"\r\n".join(lines)

    @async_log_call
    async def list_messages(self, limit: int = DEFAULT_LIMIT, config: ConfigInput = None) -> List[Message]:
        """Retrieve up to ``limit`` messages by descending ordinal.

        Order follows retrieval; there is no re-sort by date.
        """
        limit = validate_limit(limit)
        start_time = time.time()

        async with self._connection.session(config) as session:
            messages = await self._connection.run_with_timeout(
                self._list_messages(session, limit),
                Timeouts.POP3_LIST_MESSAGES,
                "list messages",
            )

        logger.info(
            "Listed POP3 messages",
            extra={
                "count": len(messages),
                "duration_seconds": round(time.time() - start_time, 2),
            },
        )

        return messages

    async def _list_messages(self, session: Session, limit: int) -> List[Message]:
        count, _size = await self._connection.run(session.client.stat, operation="stat")

        messages = []
        for ordinal in listing_ordinals(count, limit):
            try:
                raw_email = await self._retrieve_raw(session, ordinal)
                messages.append(EmailParser.parse_from_bytes(raw_email, ordinal))

            except (POP3Error, ParseError) as e:
                logger.warning(
                    "Skipping POP3 message",
                    extra={"ordinal": ordinal, "error": str(e)},
                )

        return messages

    @async_log_call
    async def retrieve_one(self, ordinal: Union[int, str], config: ConfigInput = None) -> Message:
        """Retrieve and normalize a single message."""
        ordinal = validate_message_number(ordinal, "ordinal")

        async with self._connection.session(config) as session:
            raw_email = await self._retrieve_raw(session, ordinal)

        return EmailParser.normalize(raw_email, ordinal)

    @async_log_call
    async def delete_message(self, ordinal: Union[int, str], config: ConfigInput = None) -> Acknowledgement:
        """Mark a message for deletion and commit it with QUIT.

        Success is reported only after the server acknowledges QUIT. If
        the session ends any other way the server keeps the message.
        """
        ordinal = validate_message_number(ordinal, "ordinal")

        async with self._connection.session(config) as session:
            await self._connection.run(session.client.dele, ordinal, operation="dele")
            await self._connection.commit(session)

        logger.info("POP3 message deleted", extra={"ordinal": ordinal})

        return Acknowledgement(message="Email deleted")

    @async_log_call
    async def mailbox_info(self, config: ConfigInput = None) -> MailboxInfo:
        """Message count and per-message sizes from LIST."""
        async with self._connection.session(config) as session:
            _response, lines, _octets = await self._connection.run(
                session.client.list, operation="list"
            )

        raw: List[str] = []
        messages: List[Dict[str, int]] = []
        for line in lines:
            text = bytes(line).decode("utf-8", errors="replace")
            raw.append(text)
            match = _LISTING_RE.match(text)
            if match:
                messages.append({"ordinal": int(match.group(1)), "size": int(match.group(2))})

        return MailboxInfo(count=len(messages), messages=messages, raw=raw)
