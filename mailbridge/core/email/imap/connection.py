"""IMAP session management - connection setup, login and cleanup."""

import asyncio

import aioimaplib

from mailbridge.utils.config import Protocol, ServerSettings
from mailbridge.utils.errors import IMAPError, InvalidCredentialsError
from mailbridge.utils.logging import get_logger

from ..session import SessionManager, relaxed_ssl_context
from .constants import IMAPResponse
from .protocol import response_text

logger = get_logger(__name__)


class IMAPConnection(SessionManager[aioimaplib.IMAP4]):
    """Opens one short-lived IMAP session per mailbox operation."""

    protocol = Protocol.IMAP

    def _default_client_factory(self, settings: ServerSettings) -> aioimaplib.IMAP4:
        """Build an aioimaplib client; the constructor schedules the connect."""
        if settings.secure:
            return aioimaplib.IMAP4_SSL(
                host=settings.host,
                port=settings.port,
                timeout=30,
                ssl_context=relaxed_ssl_context(),
            )
        return aioimaplib.IMAP4(host=settings.host, port=settings.port, timeout=30)

    async def _connect(self, settings: ServerSettings) -> aioimaplib.IMAP4:
        """Connect and wait for the server greeting.

        Raises:
            OSError: If the socket cannot be opened
        """
        client = self.client_factory(settings)

        try:
            # Surfaces DNS/socket failures instead of waiting out the greeting
            connect_task = getattr(client, "_client_task", None)
            if connect_task is not None:
                await connect_task

            await client.wait_hello_from_server()

        except BaseException:
            self._abort(client)
            raise

        return client

    async def _authenticate(self, client: aioimaplib.IMAP4, settings: ServerSettings) -> None:
        """Log in with plaintext credentials.

        Raises:
            InvalidCredentialsError: If the server rejects the login
            IMAPError: If the server aborts the exchange
        """
        try:
            response = await client.login(settings.user, settings.password)

        except aioimaplib.AioImapException as e:
            error_msg = str(e).lower()
            if "authentication failed" in error_msg or "login" in error_msg:
                raise InvalidCredentialsError(
                    "IMAP authentication failed",
                    details={"server": settings.host, "username": settings.user},
                ) from e
            raise IMAPError(
                f"IMAP connection error: {str(e)}",
                details={"server": settings.host},
            ) from e

        if response.result != IMAPResponse.OK:
            logger.warning(
                "IMAP authentication failed",
                extra={"server": settings.host, "username": settings.user},
            )
            raise InvalidCredentialsError(
                "IMAP authentication failed. Password may be incorrect.",
                details={
                    "server": settings.host,
                    "username": settings.user,
                    "response": response_text(response),
                },
            )

    async def _logout(self, client: aioimaplib.IMAP4) -> None:
        await client.logout()

    def _abort(self, client: aioimaplib.IMAP4) -> None:
        """Force-close the socket without a LOGOUT exchange."""
        try:
            connect_task = getattr(client, "_client_task", None)
            if isinstance(connect_task, asyncio.Future) and not connect_task.done():
                connect_task.cancel()

            transport = getattr(getattr(client, "protocol", None), "transport", None)
            if transport is not None:
                transport.close()

        except Exception as e:
            logger.debug(f"Error force-closing IMAP socket: {str(e)}")
