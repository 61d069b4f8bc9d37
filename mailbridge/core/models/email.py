"""Email domain models"""

import base64
import binascii
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

NO_SUBJECT = "(No subject)"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_datetime(value: Any) -> datetime:
    """Best-effort conversion of a caller supplied date into aware UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return utc_now()
    else:
        return utc_now()

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class Attachment:
    """Attachment metadata; the content itself is never kept on a Message."""

    filename: str
    content_type: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "contentType": self.content_type,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Attachment":
        return cls(
            filename=data.get("filename") or "",
            content_type=data.get("contentType") or data.get("content_type") or "",
            size=int(data.get("size") or 0),
        )


@dataclass
class Message:
    """Canonical normalized message.

    ``id`` is the protocol-scoped position (IMAP sequence number or POP3
    ordinal). It is only meaningful inside the listing that produced it and
    must not be stored as a stable key.
    """

    id: int
    message_id: str = ""
    sender: str = ""
    to: str = ""
    cc: str = ""
    subject: str = NO_SUBJECT
    date: datetime = field(default_factory=utc_now)
    text: str = ""
    html: str = ""
    attachments: List[Attachment] = field(default_factory=list)

    @classmethod
    def placeholder(cls, message_number: int) -> "Message":
        """Message carrying only defaults, used when parsing fails."""
        return cls(id=message_number)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "messageId": self.message_id,
            "from": self.sender,
            "to": self.to,
            "cc": self.cc,
            "subject": self.subject,
            "date": self.date.isoformat(),
            "text": self.text,
            "html": self.html,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        """Rebuild a Message handed back by a caller (reply/forward input)."""
        cc = data.get("cc") or ""
        if isinstance(cc, (list, tuple)):
            cc = ",".join(str(address) for address in cc)

        return cls(
            id=int(data.get("id") or 0),
            message_id=data.get("messageId") or data.get("message_id") or "",
            sender=data.get("from") or data.get("sender") or "",
            to=data.get("to") or "",
            cc=cc,
            subject=data.get("subject") or NO_SUBJECT,
            date=_coerce_datetime(data.get("date")),
            text=data.get("text") or "",
            html=data.get("html") or "",
            attachments=[
                Attachment.from_dict(attachment)
                for attachment in data.get("attachments") or []
            ],
        )


class SearchCriteria(BaseModel):
    """Sparse search filter; no fields set means match everything."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sender: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    since: Optional[date] = None
    before: Optional[date] = None
    unseen: Optional[bool] = None

    @field_validator("since", "before", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        # Accept full timestamps; only the calendar day is searchable
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and len(value) > 10 and value[10] in "T ":
            return value[:10]
        return value or None

    def is_empty(self) -> bool:
        return not any(
            (self.sender, self.to, self.subject, self.body, self.since, self.before)
        ) and not self.unseen


@dataclass
class OutgoingAttachment:
    """Attachment to transmit; ``content`` holds the raw bytes."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["OutgoingAttachment"]:
        """Build from caller data; returns None when no content is carried."""
        content = data.get("content")
        if content is None:
            return None
        if isinstance(content, str):
            try:
                content = base64.b64decode(content, validate=True)
            except binascii.Error:
                content = content.encode("utf-8")

        return cls(
            filename=data.get("filename") or "attachment",
            content=bytes(content),
            content_type=data.get("contentType")
            or data.get("content_type")
            or "application/octet-stream",
        )


@dataclass
class OutgoingMessage:
    """Outbound message fields accepted by the submission operations."""

    to: Union[str, List[str]]
    subject: str = ""
    text: str = ""
    html: str = ""
    cc: Union[str, List[str], None] = None
    bcc: Union[str, List[str], None] = None
    sender: Optional[str] = None
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    in_reply_to: Optional[str] = None
    references: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OutgoingMessage":
        return cls(
            to=data.get("to") or "",
            subject=data.get("subject") or "",
            text=data.get("text") or "",
            html=data.get("html") or "",
            cc=data.get("cc"),
            bcc=data.get("bcc"),
            sender=data.get("from") or data.get("sender"),
            attachments=list(data.get("attachments") or []),
            in_reply_to=data.get("inReplyTo") or data.get("in_reply_to"),
            references=data.get("references"),
        )


@dataclass
class SendResult:
    """Outcome of one submission."""

    message_id: str
    response: str
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "messageId": self.message_id,
            "response": self.response,
        }


@dataclass
class MailboxNode:
    """One folder in the stateful-access mailbox tree."""

    name: str
    path: str
    delimiter: Optional[str] = None
    attributes: List[str] = field(default_factory=list)
    children: List["MailboxNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "delimiter": self.delimiter,
            "attributes": list(self.attributes),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class MailboxInfo:
    """Sequential-access mailbox listing."""

    count: int
    messages: List[Dict[str, int]] = field(default_factory=list)
    raw: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "messages": list(self.messages), "raw": list(self.raw)}


@dataclass
class Acknowledgement:
    """Plain ``{success, ...}`` result of a flag/delete/configure call."""

    success: bool = True
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.message:
            result["message"] = self.message
        result.update(self.details)
        return result
