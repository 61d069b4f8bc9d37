"""SMTP submission.

- SMTPConnection: lazy reusable channel (health checks, TTL, reconnects)
- SMTPClient: builds MIME messages and submits them

Forward and reply live in the service layer (EmailSendService).
"""

from .client import SMTPClient, build_mime_message
from .connection import SMTPConnection

__all__ = [
    "SMTPClient",
    "SMTPConnection",
    "build_mime_message",
]
