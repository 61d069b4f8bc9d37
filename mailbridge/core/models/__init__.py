from .email import (
    NO_SUBJECT,
    Acknowledgement,
    Attachment,
    MailboxInfo,
    MailboxNode,
    Message,
    OutgoingAttachment,
    OutgoingMessage,
    SearchCriteria,
    SendResult,
)

__all__ = [
    "NO_SUBJECT",
    "Acknowledgement",
    "Attachment",
    "MailboxInfo",
    "MailboxNode",
    "Message",
    "OutgoingAttachment",
    "OutgoingMessage",
    "SearchCriteria",
    "SendResult",
]
