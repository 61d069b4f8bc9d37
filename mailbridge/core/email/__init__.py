"""Email protocol handling for IMAP, POP3, SMTP and parsing.

This module provides clients for mail operations:
- IMAP: list mailboxes, list, search, mark read, delete
- POP3: list, retrieve, mailbox info, delete
- SMTP: send (forward and reply via EmailSendService)
- Parser: normalize RFC822 messages into Message records

Usage Examples
----------------

List the newest messages via IMAP:
    >>> from mailbridge.core.email import IMAPClient
    >>>
    >>> imap = IMAPClient()
    >>> messages = await imap.list_messages("INBOX", limit=20)

Reply to a message:
    >>> from mailbridge.core.email import EmailSendService
    >>>
    >>> service = EmailSendService()
    >>> await service.reply(messages[0], "Thanks!", reply_all=True)

Notes
-----
- All operations are asynchronous and require 'await'
- IMAP and POP3 open a fresh session per call and always close it
- The SMTP channel is created lazily and reused between sends
- Malformed messages get default fields over IMAP and are skipped in
  POP3 listings
"""

from .imap import IMAPClient
from .parser import EmailParser
from .pop3 import POP3Client
from .services import EmailSendService
from .smtp import SMTPClient

__all__ = [
    "EmailParser",
    "EmailSendService",
    "IMAPClient",
    "POP3Client",
    "SMTPClient",
]
