"""IMAP constants and protocol values."""


class IMAPResponse:
    """Standard IMAP response codes."""

    OK = "OK"
    NO = "NO"
    BAD = "BAD"


class IMAPFlags:
    """Standard IMAP flags."""

    SEEN = "\\Seen"  # Read/unread status
    DELETED = "\\Deleted"  # Marked for deletion


# Whole message, headers and every body part
FETCH_PARTS = "(RFC822)"

# LIST every mailbox from the root
LIST_REFERENCE = '""'
LIST_PATTERN = "*"
