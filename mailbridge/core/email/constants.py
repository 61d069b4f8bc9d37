"""Shared constants for email protocols.

Centralised configuration for:
- Timeout settings (seconds) for every networked phase
- Fetch window sizing for stateful listings

Every session phase and mailbox operation carries an explicit deadline;
there is no retry or backoff anywhere, a phase either completes or times
out and the session is force-closed.
"""


class Timeouts:
    """Timeout settings for email operations (in seconds)."""

    # Session lifecycle (all protocols)
    CONNECT = 10.0
    AUTHENTICATE = 10.0
    LOGOUT = 5.0

    # IMAP
    IMAP_LIST_MESSAGES = 30.0
    IMAP_SEARCH = 30.0
    IMAP_STORE = 15.0
    IMAP_LIST_MAILBOXES = 15.0

    # POP3
    POP3_LIST_MESSAGES = 30.0
    POP3_COMMAND = 15.0

    # SMTP
    SMTP_SEND = 30.0
    SMTP_NOOP = 3.0


class FetchWindow:
    """Sizing of the IMAP over-fetch window."""

    # Positional order is not date order, so fetch this many times the
    # requested limit before sorting and truncating.
    OVER_FETCH_FACTOR = 5


DEFAULT_LIMIT = 50
DEFAULT_MAILBOX = "INBOX"
