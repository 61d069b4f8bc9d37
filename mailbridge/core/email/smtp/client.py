"""SMTP client - compose MIME messages and submit them.

No retries: a failed submission surfaces immediately and the channel is
dropped so the next send starts from a fresh connection.
"""

import asyncio
import time
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import List, Optional, Tuple

import aiosmtplib

from mailbridge.core.models.email import OutgoingAttachment, OutgoingMessage, SendResult
from mailbridge.core.validation import envelope_address, require_recipients, split_addresses
from mailbridge.utils.config import ConfigInput, ConfigManager
from mailbridge.utils.errors import (
    ConnectError,
    MailBridgeError,
    NetworkTimeoutError,
    SMTPError,
)
from mailbridge.utils.logging import get_logger, log_event

from ..constants import Timeouts
from .connection import SMTPConnection

logger = get_logger(__name__)


def _domain_of(address: str) -> Optional[str]:
    _, _, domain = address.rpartition("@")
    return domain.strip(" >") or None


def build_mime_message(outgoing: OutgoingMessage, sender: str) -> Tuple[MIMEMultipart, List[str]]:
    """Build the MIME tree and the SMTP envelope recipient list.

    Headers keep display names; the envelope carries bare addresses.
    Bcc recipients go into the envelope only, never into a header.
    """
    to = require_recipients(outgoing.to)
    cc = split_addresses(outgoing.cc)
    bcc = split_addresses(outgoing.bcc)

    msg = MIMEMultipart("mixed")
    msg["From"] = sender
    msg["To"] = ", ".join(to)
    if cc:
        msg["Cc"] = ", ".join(cc)
    msg["Subject"] = outgoing.subject
    msg["Date"] = formatdate(localtime=False, usegmt=True)
    msg["Message-ID"] = make_msgid(domain=_domain_of(sender))

    if outgoing.in_reply_to:
        msg["In-Reply-To"] = outgoing.in_reply_to
    if outgoing.references:
        msg["References"] = outgoing.references

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(outgoing.text or "", "plain", "utf-8"))
    if outgoing.html:
        body.attach(MIMEText(outgoing.html, "html", "utf-8"))
    msg.attach(body)

    for data in outgoing.attachments:
        attachment = OutgoingAttachment.from_dict(data)
        if attachment is None:
            logger.debug(
                "Skipping attachment without content",
                extra={"attachment": data.get("filename") or "unnamed"},
            )
            continue

        maintype, _, subtype = attachment.content_type.partition("/")
        part = MIMEApplication(attachment.content, _subtype=subtype or "octet-stream")
        if maintype and maintype != "application":
            part.replace_header("Content-Type", attachment.content_type)
        part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
        msg.attach(part)

    return msg, [envelope_address(entry) for entry in to + cc + bcc]


class SMTPClient:
    """Client for message submission."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        connection: Optional[SMTPConnection] = None,
    ):
        """Initialise SMTP client.

        Args:
            config_manager: Configuration manager instance (process default if None)
            connection: Channel manager to use instead of a default one
        """
        self._connection = connection or SMTPConnection(config_manager)

    @property
    def connection(self) -> SMTPConnection:
        return self._connection

    async def send(self, outgoing: OutgoingMessage, config: ConfigInput = None) -> SendResult:
        """Submit one message.

        Returns:
            SendResult carrying the generated Message-ID and the server reply

        Raises:
            MissingRequiredFieldError: If there are no recipients
            NetworkTimeoutError: If submission exceeds its deadline
            SMTPError: If the server rejects the message
        """
        send_start = time.time()
        client, settings = await self._connection.get_client(config)

        sender = outgoing.sender or settings.user
        msg, recipients = build_mime_message(outgoing, sender)

        logger.info(
            "Sending email",
            extra={"recipients": len(recipients), "subject": outgoing.subject[:50]},
        )

        try:
            errors, response = await asyncio.wait_for(
                client.send_message(
                    msg, sender=envelope_address(sender), recipients=recipients
                ),
                timeout=Timeouts.SMTP_SEND,
            )

        except MailBridgeError:
            self._connection.invalidate()
            raise

        except asyncio.TimeoutError as e:
            self._connection.get_stats().record_send(success=False)
            self._connection.invalidate()
            raise NetworkTimeoutError(
                "SMTP send operation timed out", details={"recipients": len(recipients)}
            ) from e

        except aiosmtplib.SMTPRecipientsRefused as e:
            self._connection.get_stats().record_send(success=False)
            raise SMTPError(
                "All recipients were refused",
                details={"refused": [str(error.recipient) for error in e.recipients]},
            ) from e

        except aiosmtplib.SMTPResponseException as e:
            self._connection.get_stats().record_send(success=False)
            self._connection.invalidate()
            raise SMTPError(
                f"Failed to send email: {e.message}", details={"code": e.code}
            ) from e

        except (aiosmtplib.SMTPException, OSError) as e:
            self._connection.get_stats().record_send(success=False)
            self._connection.invalidate()
            raise ConnectError(
                f"SMTP connection lost while sending: {str(e)}",
                details={"server": settings.host},
            ) from e

        self._connection.get_stats().record_send()

        if errors:
            logger.warning(
                "Some recipients were refused",
                extra={"refused": sorted(str(address) for address in errors)},
            )

        message_id = msg["Message-ID"]

        log_event(
            "message_sent",
            "Email sent successfully",
            message_id=message_id,
            recipients=len(recipients),
            duration_seconds=round(time.time() - send_start, 2),
        )

        return SendResult(message_id=message_id, response=str(response))
