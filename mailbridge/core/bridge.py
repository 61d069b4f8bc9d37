"""Unified request/response API over the three mail protocols.

``MailBridge`` exposes one typed coroutine per operation and a single
``handle(request)`` entry point taking ``{protocol, operation, params}``.
``handle`` always returns a JSON-ready dict; failures come back as
``{"success": False, "error": ...}`` built by ErrorHandler.

Example:
    >>> bridge = MailBridge()
    >>> await bridge.handle(
    ...     {"protocol": "imap", "operation": "inbox", "params": {"limit": 20}}
    ... )
    {'success': True, 'count': 20, 'emails': [...]}
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from mailbridge.core.email.constants import DEFAULT_LIMIT, DEFAULT_MAILBOX
from mailbridge.core.email.imap import IMAPClient
from mailbridge.core.email.pop3 import POP3Client
from mailbridge.core.email.services import EmailSendService
from mailbridge.core.models.email import (
    Acknowledgement,
    MailboxInfo,
    MailboxNode,
    Message,
    SearchCriteria,
    SendResult,
)
from mailbridge.utils.config import ConfigInput, ConfigManager, get_config_manager
from mailbridge.utils.errors import ErrorHandler, MissingRequiredFieldError, ValidationError
from mailbridge.utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Mapping[str, Any]], Awaitable[Dict[str, Any]]]


def _listing(messages: List[Message]) -> Dict[str, Any]:
    return {
        "success": True,
        "count": len(messages),
        "emails": [message.to_dict() for message in messages],
    }


def _require(params: Mapping[str, Any], *names: str) -> Any:
    """First present value among ``names`` (aliases of one parameter)."""
    for name in names:
        value = params.get(name)
        if value is not None and value != "":
            return value
    raise MissingRequiredFieldError(
        f"Missing required parameter: {names[0]}", details={"parameter": names[0]}
    )


class MailBridge:
    """Facade routing requests to the IMAP, POP3 and SMTP operations."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        imap_client: Optional[IMAPClient] = None,
        pop3_client: Optional[POP3Client] = None,
        send_service: Optional[EmailSendService] = None,
    ):
        self.config_manager = config_manager or get_config_manager()
        self.imap = imap_client or IMAPClient(self.config_manager)
        self.pop3 = pop3_client or POP3Client(self.config_manager)
        self.sender = send_service or EmailSendService(config_manager=self.config_manager)

        self._handlers: Dict[str, Handler] = {
            "imap.inbox": self._handle_imap_inbox,
            "imap.mailboxes": self._handle_imap_mailboxes,
            "imap.search": self._handle_imap_search,
            "imap.mark_read": self._handle_imap_mark_read,
            "imap.delete": self._handle_imap_delete,
            "pop3.inbox": self._handle_pop3_inbox,
            "pop3.retrieve": self._handle_pop3_retrieve,
            "pop3.info": self._handle_pop3_info,
            "pop3.delete": self._handle_pop3_delete,
            "smtp.send": self._handle_smtp_send,
            "smtp.forward": self._handle_smtp_forward,
            "smtp.reply": self._handle_smtp_reply,
        }

    @property
    def operations(self) -> List[str]:
        return sorted(self._handlers) + ["configure"]

    ## Typed operations

    async def imap_inbox(
        self, mailbox: str = DEFAULT_MAILBOX, limit: int = DEFAULT_LIMIT, config: ConfigInput = None
    ) -> List[Message]:
        return await self.imap.list_messages(mailbox, limit, config)

    async def imap_mailboxes(self, config: ConfigInput = None) -> List[MailboxNode]:
        return await self.imap.list_mailboxes(config)

    async def imap_search(
        self,
        criteria: Union[SearchCriteria, Mapping[str, Any], None] = None,
        mailbox: str = DEFAULT_MAILBOX,
        config: ConfigInput = None,
    ) -> List[Message]:
        return await self.imap.search(criteria, mailbox, config)

    async def imap_mark_read(
        self, message_id: Union[int, str], mailbox: str = DEFAULT_MAILBOX, config: ConfigInput = None
    ) -> Acknowledgement:
        return await self.imap.mark_read(message_id, mailbox, config)

    async def imap_delete(
        self, message_id: Union[int, str], mailbox: str = DEFAULT_MAILBOX, config: ConfigInput = None
    ) -> Acknowledgement:
        return await self.imap.delete_message(message_id, mailbox, config)

    async def pop3_inbox(self, limit: int = DEFAULT_LIMIT, config: ConfigInput = None) -> List[Message]:
        return await self.pop3.list_messages(limit, config)

    async def pop3_retrieve(self, ordinal: Union[int, str], config: ConfigInput = None) -> Message:
        return await self.pop3.retrieve_one(ordinal, config)

    async def pop3_info(self, config: ConfigInput = None) -> MailboxInfo:
        return await self.pop3.mailbox_info(config)

    async def pop3_delete(self, ordinal: Union[int, str], config: ConfigInput = None) -> Acknowledgement:
        return await self.pop3.delete_message(ordinal, config)

    async def send(self, message: Mapping[str, Any], config: ConfigInput = None) -> SendResult:
        return await self.sender.send(message, config)

    async def forward(
        self,
        original: Mapping[str, Any],
        to: Union[str, List[str]],
        extra_message: str = "",
        config: ConfigInput = None,
    ) -> SendResult:
        return await self.sender.forward(original, to, extra_message, config)

    async def reply(
        self,
        original: Mapping[str, Any],
        reply_text: str,
        reply_all: bool = False,
        config: ConfigInput = None,
    ) -> SendResult:
        return await self.sender.reply(original, reply_text, reply_all, config)

    def configure(
        self, smtp: ConfigInput = None, imap: ConfigInput = None, pop3: ConfigInput = None
    ) -> Acknowledgement:
        """Store per-protocol overrides; only sessions opened afterwards see them."""
        self.config_manager.configure_all(smtp=smtp, imap=imap, pop3=pop3)
        return Acknowledgement(message="Configuration updated")

    async def close(self) -> None:
        """Close the reusable SMTP channel. Mailbox sessions never outlive a call."""
        await self.sender.client.connection.close_connection()

    ## Request dispatch

    async def handle(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        """Dispatch one request and shape its result.

        Args:
            request: ``{"protocol": ..., "operation": ..., "params": {...}}``;
                ``configure`` may be sent with or without a protocol

        Returns:
            JSON-ready result dict; never raises for operation failures
        """
        protocol = str(request.get("protocol") or "").lower()
        operation = str(request.get("operation") or "").lower().replace("-", "_")
        params = request.get("params") or {}
        route = operation if operation == "configure" else f"{protocol}.{operation}"

        try:
            if route == "configure":
                return self._handle_configure(protocol, params)

            handler = self._handlers.get(route)
            if handler is None:
                raise ValidationError(
                    f"Unknown operation: {route}",
                    details={"operation": route, "supported": self.operations},
                )

            logger.debug(f"Handling {route}")
            return await handler(params)

        except Exception as e:
            return ErrorHandler.handle(e, context=route)

    def _handle_configure(self, protocol: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        if protocol:
            self.config_manager.configure(protocol, params)
            return Acknowledgement(message="Configuration updated").to_dict()
        return self.configure(
            smtp=params.get("smtp"), imap=params.get("imap"), pop3=params.get("pop3")
        ).to_dict()

    async def _handle_imap_inbox(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        messages = await self.imap_inbox(
            params.get("mailbox") or DEFAULT_MAILBOX,
            params.get("limit") or DEFAULT_LIMIT,
            params.get("config"),
        )
        return _listing(messages)

    async def _handle_imap_mailboxes(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        mailboxes = await self.imap_mailboxes(params.get("config"))
        return {"success": True, "mailboxes": [node.to_dict() for node in mailboxes]}

    async def _handle_imap_search(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        criteria = params.get("criteria")
        if criteria is None:
            criteria = {
                key: value
                for key, value in params.items()
                if key not in ("mailbox", "config")
            }
        messages = await self.imap_search(
            criteria, params.get("mailbox") or DEFAULT_MAILBOX, params.get("config")
        )
        return _listing(messages)

    async def _handle_imap_mark_read(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self.imap_mark_read(
            _require(params, "id", "emailId"),
            params.get("mailbox") or DEFAULT_MAILBOX,
            params.get("config"),
        )
        return result.to_dict()

    async def _handle_imap_delete(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self.imap_delete(
            _require(params, "id", "emailId"),
            params.get("mailbox") or DEFAULT_MAILBOX,
            params.get("config"),
        )
        return result.to_dict()

    async def _handle_pop3_inbox(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        messages = await self.pop3_inbox(params.get("limit") or DEFAULT_LIMIT, params.get("config"))
        return _listing(messages)

    async def _handle_pop3_retrieve(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        message = await self.pop3_retrieve(
            _require(params, "ordinal", "msgNumber", "id"), params.get("config")
        )
        return {"success": True, "email": message.to_dict()}

    async def _handle_pop3_info(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        info = await self.pop3_info(params.get("config"))
        return {"success": True, **info.to_dict()}

    async def _handle_pop3_delete(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self.pop3_delete(
            _require(params, "ordinal", "msgNumber", "id"), params.get("config")
        )
        return result.to_dict()

    async def _handle_smtp_send(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        _require(params, "to")
        message = {key: value for key, value in params.items() if key != "config"}
        result = await self.send(message, params.get("config"))
        return result.to_dict()

    async def _handle_smtp_forward(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self.forward(
            _require(params, "originalEmail", "original"),
            _require(params, "to"),
            params.get("additionalMessage") or params.get("extraMessage") or "",
            params.get("config"),
        )
        return result.to_dict()

    async def _handle_smtp_reply(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self.reply(
            _require(params, "originalEmail", "original"),
            params.get("replyText") or "",
            bool(params.get("replyAll")),
            params.get("config"),
        )
        return result.to_dict()
