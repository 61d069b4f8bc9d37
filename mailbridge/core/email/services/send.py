"""Email send service - send, forward and reply on top of SMTPClient."""

from typing import Any, Mapping, Optional, Union

from mailbridge.core.email.smtp.client import SMTPClient
from mailbridge.core.models.email import Message, OutgoingMessage, SendResult
from mailbridge.core.validation import join_addresses
from mailbridge.utils.config import ConfigInput, ConfigManager
from mailbridge.utils.logging import async_log_call, get_logger

logger = get_logger(__name__)

FORWARD_PREFIX = "Fwd: "
REPLY_PREFIX = "Re: "
FORWARD_SEPARATOR = "---------- Forwarded message ---------"
REPLY_SEPARATOR = "--- Original Message ---"

MessageInput = Union[Message, Mapping[str, Any]]
OutgoingInput = Union[OutgoingMessage, Mapping[str, Any]]


def _to_message(original: MessageInput) -> Message:
    return original if isinstance(original, Message) else Message.from_dict(original)


def reply_subject(subject: str) -> str:
    """Prefix ``Re: `` unless the subject already carries it."""
    if subject.lower().startswith("re:"):
        return subject
    return f"{REPLY_PREFIX}{subject}"


def reply_recipients(original: Message, reply_all: bool = False) -> str:
    """The original sender, plus its Cc list when replying to all."""
    if reply_all:
        return join_addresses(original.sender, original.cc)
    return original.sender


def forward_body(original: Message, extra_message: str = "") -> str:
    """Extra text, then the quoted header block and the original body."""
    return (
        f"{extra_message}\n\n"
        f"{FORWARD_SEPARATOR}\n"
        f"From: {original.sender}\n"
        f"Date: {original.date.isoformat()}\n"
        f"Subject: {original.subject}\n"
        f"To: {original.to}\n"
        f"\n"
        f"{original.text or original.html}\n"
    )


def reply_body(original: Message, reply_text: str) -> str:
    return f"{reply_text}\n\n{REPLY_SEPARATOR}\n{original.text or ''}"


class EmailSendService:
    """Service for outbound message workflows."""

    def __init__(
        self,
        smtp_client: Optional[SMTPClient] = None,
        config_manager: Optional[ConfigManager] = None,
    ):
        """Initialise email send service.

        Args:
            smtp_client: SMTPClient instance (built from config_manager if None)
            config_manager: Configuration manager instance
        """
        self._smtp_client = smtp_client or SMTPClient(config_manager)

    @property
    def client(self) -> SMTPClient:
        return self._smtp_client

    @async_log_call
    async def send(self, message: OutgoingInput, config: ConfigInput = None) -> SendResult:
        if not isinstance(message, OutgoingMessage):
            message = OutgoingMessage.from_dict(message)
        return await self._smtp_client.send(message, config)

    @async_log_call
    async def forward(
        self,
        original: MessageInput,
        to: Union[str, list],
        extra_message: str = "",
        config: ConfigInput = None,
    ) -> SendResult:
        """Forward a listed message with a quoted header block.

        Attachments of a listed message carry metadata only, so they are
        dropped by the composer.
        """
        original = _to_message(original)

        outgoing = OutgoingMessage(
            to=to,
            subject=f"{FORWARD_PREFIX}{original.subject}",
            text=forward_body(original, extra_message or ""),
            attachments=[attachment.to_dict() for attachment in original.attachments],
        )

        logger.info("Forwarding email", extra={"original_id": original.id})
        return await self._smtp_client.send(outgoing, config)

    @async_log_call
    async def reply(
        self,
        original: MessageInput,
        reply_text: str,
        reply_all: bool = False,
        config: ConfigInput = None,
    ) -> SendResult:
        """Reply to the sender (and Cc list when ``reply_all``), threaded on Message-ID."""
        original = _to_message(original)

        outgoing = OutgoingMessage(
            to=reply_recipients(original, reply_all),
            subject=reply_subject(original.subject),
            text=reply_body(original, reply_text or ""),
            in_reply_to=original.message_id or None,
            references=original.message_id or None,
        )

        logger.info(
            "Replying to email",
            extra={"original_id": original.id, "reply_all": reply_all},
        )
        return await self._smtp_client.send(outgoing, config)
