"""IMAP protocol operations - low-level IMAP command interface.

Every method issues exactly one command on the session's client and
checks the tagged status; a non-OK status raises IMAPError carrying the
server's text. Sequence numbers are only meaningful inside the session
that produced them.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

from mailbridge.utils.errors import IMAPError
from mailbridge.utils.logging import get_logger

from ..session import Session
from .constants import FETCH_PARTS, LIST_PATTERN, LIST_REFERENCE, IMAPResponse

logger = get_logger(__name__)

_EXISTS_RE = re.compile(rb"^\*?\s*(\d+)\s+EXISTS", re.IGNORECASE)
_FETCH_RE = re.compile(rb"^\*?\s*(\d+)\s+FETCH\b", re.IGNORECASE)
_LIST_RE = re.compile(
    r'^\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.+)$',
    re.IGNORECASE,
)


def response_text(response) -> str:
    """First line of a server response as text, for error details."""
    lines = getattr(response, "lines", None)
    if not lines:
        return "No response"
    line = lines[0]
    if isinstance(line, (bytes, bytearray)):
        return bytes(line).decode("utf-8", errors="replace")
    return str(line)


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def quote_mailbox(mailbox: str) -> str:
    """Quote a mailbox name, escaping backslashes and double quotes."""
    escaped = mailbox.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_list_line(line) -> Optional[Tuple[List[str], Optional[str], str]]:
    """Parse one LIST response line into (attributes, delimiter, name).

    Format: ``(\\HasNoChildren) "/" "INBOX"``; the delimiter may be NIL.
    """
    if isinstance(line, (bytes, bytearray)):
        line = bytes(line).decode("utf-8", errors="replace")

    match = _LIST_RE.match(line.strip())
    if not match:
        return None

    attributes = match.group("flags").split()
    delimiter_token = match.group("delimiter")
    delimiter = None if delimiter_token.upper() == "NIL" else _unquote(delimiter_token)

    return attributes, delimiter or None, _unquote(match.group("name"))


class IMAPProtocol:
    """Low-level IMAP commands against one live session."""

    def __init__(self, session: Session):
        """Initialise IMAP protocol handler.

        Args:
            session: Authenticated IMAP session owned by the caller
        """
        self.session = session
        self.client = session.client

    def _check_response(self, response, operation: str, **details) -> None:
        """Raise IMAPError unless the tagged response is OK."""
        if response.result != IMAPResponse.OK:
            raise IMAPError(
                f"IMAP operation failed: {operation}",
                details={
                    "response": response_text(response),
                    "operation": operation,
                    "server": self.session.settings.host,
                    **details,
                },
            )

    @staticmethod
    def _parse_exists(lines: Sequence) -> int:
        for line in lines:
            if isinstance(line, (bytes, bytearray)):
                match = _EXISTS_RE.match(bytes(line).strip())
                if match:
                    return int(match.group(1))
        return 0

    async def examine(self, mailbox: str) -> int:
        """Open a mailbox read-only.

        Returns:
            Total message count reported by the server
        """
        response = await self.client.examine(quote_mailbox(mailbox))
        self._check_response(response, "examine", mailbox=mailbox)

        total = self._parse_exists(response.lines)
        logger.debug(f"Examined IMAP mailbox: {mailbox}", extra={"total": total})
        return total

    async def select(self, mailbox: str) -> int:
        """Open a mailbox read-write (needed for STORE/EXPUNGE)."""
        response = await self.client.select(quote_mailbox(mailbox))
        self._check_response(response, "select", mailbox=mailbox)

        total = self._parse_exists(response.lines)
        logger.debug(f"Selected IMAP mailbox: {mailbox}", extra={"total": total})
        return total

    async def fetch(self, message_set: str) -> Dict[int, bytes]:
        """Fetch full RFC822 bodies.

        Args:
            message_set: Sequence set, e.g. ``"21:120"`` or ``"3,7,9"``

        Returns:
            Dictionary mapping sequence number -> raw message bytes
        """
        response = await self.client.fetch(message_set, FETCH_PARTS)
        self._check_response(response, "fetch", message_set=message_set)

        messages: Dict[int, bytes] = {}
        lines = response.lines
        for index, line in enumerate(lines[:-1]):
            if not isinstance(line, bytes):
                continue

            match = _FETCH_RE.match(line)
            if not match:
                continue

            body = lines[index + 1]
            if isinstance(body, bytearray):
                messages[int(match.group(1))] = bytes(body)

        logger.debug(
            "Fetched messages",
            extra={"message_set": message_set, "received": len(messages)},
        )

        return messages

    async def search(self, criteria: Sequence[str]) -> List[int]:
        """Run SEARCH and return matching sequence numbers (ascending)."""
        response = await self.client.search(*criteria)
        self._check_response(response, "search", criteria=" ".join(criteria))

        ids: List[int] = []
        for line in response.lines:
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("ascii", errors="ignore")
            tokens = str(line).split()
            if tokens[:1] == ["SEARCH"]:
                tokens = tokens[1:]
            if tokens and all(token.isdigit() for token in tokens):
                ids.extend(int(token) for token in tokens)
                break

        logger.debug("Search completed", extra={"count": len(ids)})
        return sorted(ids)

    async def add_flags(self, message_number: int, *flags: str) -> None:
        """STORE +FLAGS on one message. Re-adding a set flag is a no-op."""
        flags_str = "(" + " ".join(flags) + ")"
        response = await self.client.store(str(message_number), "+FLAGS", flags_str)
        self._check_response(
            response, "store", message_number=message_number, flags=flags_str
        )
        logger.debug("Flags added", extra={"message_number": message_number, "flags": flags_str})

    async def expunge(self) -> None:
        """Permanently remove messages carrying the \\Deleted flag."""
        response = await self.client.expunge()
        self._check_response(response, "expunge")
        logger.debug("Expunge completed successfully")

    async def list_mailboxes(self) -> List[Tuple[List[str], Optional[str], str]]:
        """LIST every mailbox; returns (attributes, delimiter, name) rows."""
        response = await self.client.list(LIST_REFERENCE, LIST_PATTERN)
        self._check_response(response, "list")

        rows = []
        for line in response.lines:
            parsed = parse_list_line(line)
            if parsed is not None:
                rows.append(parsed)

        logger.debug(f"Retrieved {len(rows)} mailboxes")
        return rows
