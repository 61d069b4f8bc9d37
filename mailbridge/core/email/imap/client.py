"""IMAP mailbox operations.

Each public operation opens its own session through IMAPConnection,
runs its command sequence under an overall deadline and releases the
session on every exit path. Listing over-fetches a window of the most
recent positions, because a mailbox's positional order is not date
order, then sorts by date and truncates.
"""

import time
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from mailbridge.core.models.email import Acknowledgement, MailboxNode, Message, SearchCriteria
from mailbridge.core.validation import validate_limit, validate_message_number
from mailbridge.utils.config import ConfigInput, ConfigManager
from mailbridge.utils.logging import async_log_call, get_logger

from ..constants import DEFAULT_LIMIT, DEFAULT_MAILBOX, FetchWindow, Timeouts
from ..parser import EmailParser
from ..session import Session
from .connection import IMAPConnection
from .constants import IMAPFlags
from .protocol import IMAPProtocol
from .search import build_search_criteria

logger = get_logger(__name__)


def compute_fetch_window(total: int, limit: int) -> Tuple[int, int]:
    """Positions ``(start, end)`` to fetch for a listing of ``limit`` messages.

    fetchCount = min(total, limit * 5); start = max(1, total - fetchCount + 1)
    """
    fetch_count = min(total, limit * FetchWindow.OVER_FETCH_FACTOR)
    start = max(1, total - fetch_count + 1)
    return start, total


def sort_newest_first(messages: List[Message]) -> List[Message]:
    return sorted(messages, key=lambda message: message.date, reverse=True)


def build_mailbox_tree(rows: List[Tuple[List[str], Optional[str], str]]) -> List[MailboxNode]:
    """Nest flat LIST rows into a tree using each row's hierarchy delimiter.

    A parent that the server did not list itself is created with no
    attributes so its children still have somewhere to hang.
    """
    roots: List[MailboxNode] = []
    nodes: Dict[str, MailboxNode] = {}

    for attributes, delimiter, name in rows:
        parts = name.split(delimiter) if delimiter else [name]
        siblings = roots
        path = ""

        for depth, part in enumerate(parts):
            path = part if depth == 0 else f"{path}{delimiter}{part}"
            node = nodes.get(path)

            if node is None:
                node = MailboxNode(name=part, path=path, delimiter=delimiter)
                nodes[path] = node
                siblings.append(node)

            if depth == len(parts) - 1:
                node.attributes = list(attributes)

            siblings = node.children

    return roots


class IMAPClient:
    """Client for stateful mailbox operations over IMAP."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        connection: Optional[IMAPConnection] = None,
    ):
        """Initialize IMAP client.

        Args:
            config_manager: Configuration manager instance (process default if None)
            connection: Session manager to use instead of a default one
        """
        self._connection = connection or IMAPConnection(config_manager)

    @property
    def connection(self) -> IMAPConnection:
        return self._connection

    @async_log_call
    async def list_mailboxes(self, config: ConfigInput = None) -> List[MailboxNode]:
        """Return the mailbox hierarchy as a tree of MailboxNode roots."""
        async with self._connection.session(config) as session:
            rows = await self._connection.run_with_timeout(
                IMAPProtocol(session).list_mailboxes(),
                Timeouts.IMAP_LIST_MAILBOXES,
                "list mailboxes",
            )

        return build_mailbox_tree(rows)

    @async_log_call
    async def list_messages(
        self,
        mailbox: str = DEFAULT_MAILBOX,
        limit: int = DEFAULT_LIMIT,
        config: ConfigInput = None,
    ) -> List[Message]:
        """List the most recent messages in a mailbox, newest first.

        Args:
            mailbox: Mailbox name, opened read-only
            limit: Maximum number of messages to return

        Returns:
            At most ``limit`` messages sorted by date descending

        Raises:
            NetworkTimeoutError: If the fetch and parse exceed the listing deadline
            IMAPError: If the server rejects a command
        """
        limit = validate_limit(limit)
        start_time = time.time()

        async with self._connection.session(config) as session:
            messages = await self._connection.run_with_timeout(
                self._list_messages(session, mailbox, limit),
                Timeouts.IMAP_LIST_MESSAGES,
                "list messages",
            )

        logger.info(
            "Listed IMAP messages",
            extra={
                "mailbox": mailbox,
                "count": len(messages),
                "duration_seconds": round(time.time() - start_time, 2),
            },
        )

        return messages

    async def _list_messages(self, session: Session, mailbox: str, limit: int) -> List[Message]:
        protocol = IMAPProtocol(session)
        total = await protocol.examine(mailbox)

        if total == 0:
            logger.debug(f"Mailbox {mailbox} is empty, skipping fetch")
            return []

        start, end = compute_fetch_window(total, limit)
        raw_messages = await protocol.fetch(f"{start}:{end}")

        messages = await EmailParser.normalize_batch(raw_messages)
        return sort_newest_first(messages)[:limit]

    @async_log_call
    async def search(
        self,
        criteria: Union[SearchCriteria, Mapping[str, Any], None] = None,
        mailbox: str = DEFAULT_MAILBOX,
        config: ConfigInput = None,
    ) -> List[Message]:
        """Search a mailbox and return every match, newest first."""
        search_terms = build_search_criteria(criteria)

        async with self._connection.session(config) as session:
            messages = await self._connection.run_with_timeout(
                self._search(session, mailbox, search_terms),
                Timeouts.IMAP_SEARCH,
                "search",
            )

        logger.info(
            "IMAP search completed",
            extra={"mailbox": mailbox, "terms": " ".join(search_terms), "count": len(messages)},
        )

        return messages

    async def _search(self, session: Session, mailbox: str, search_terms: List[str]) -> List[Message]:
        protocol = IMAPProtocol(session)
        await protocol.examine(mailbox)

        ids = await protocol.search(search_terms)
        if not ids:
            return []

        raw_messages = await protocol.fetch(",".join(str(message_id) for message_id in ids))

        messages = await EmailParser.normalize_batch(raw_messages)
        return sort_newest_first(messages)

    @async_log_call
    async def mark_read(
        self,
        message_id: Union[int, str],
        mailbox: str = DEFAULT_MAILBOX,
        config: ConfigInput = None,
    ) -> Acknowledgement:
        """Set \\Seen on one message. No content is fetched."""
        message_number = validate_message_number(message_id)

        async with self._connection.session(config) as session:
            await self._connection.run_with_timeout(
                self._add_flag(session, mailbox, message_number, IMAPFlags.SEEN),
                Timeouts.IMAP_STORE,
                "mark read",
            )

        return Acknowledgement(message="Email marked as read")

    @async_log_call
    async def delete_message(
        self,
        message_id: Union[int, str],
        mailbox: str = DEFAULT_MAILBOX,
        config: ConfigInput = None,
    ) -> Acknowledgement:
        """Flag a message \\Deleted and expunge.

        If the flag step succeeds but the expunge fails or times out, the
        error surfaces and the message's state on the server is
        indeterminate: the flag may remain set. Calling again is safe,
        since re-adding a set flag is a no-op.
        """
        message_number = validate_message_number(message_id)

        async with self._connection.session(config) as session:
            await self._connection.run_with_timeout(
                self._delete(session, mailbox, message_number),
                Timeouts.IMAP_STORE,
                "delete",
            )

        logger.info("IMAP message deleted", extra={"mailbox": mailbox, "message_number": message_number})

        return Acknowledgement(message="Email deleted")

    async def _add_flag(self, session: Session, mailbox: str, message_number: int, flag: str) -> None:
        protocol = IMAPProtocol(session)
        await protocol.select(mailbox)
        await protocol.add_flags(message_number, flag)

    async def _delete(self, session: Session, mailbox: str, message_number: int) -> None:
        protocol = IMAPProtocol(session)
        await protocol.select(mailbox)
        await protocol.add_flags(message_number, IMAPFlags.DELETED)
        await protocol.expunge()
