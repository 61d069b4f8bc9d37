"""POP3 session management.

poplib is blocking, so every command runs on a worker thread and is
awaited under a deadline. A command that times out leaves its thread
blocked on the socket until the session is force-closed, which the
session context manager does on any timeout.
"""

import asyncio
import poplib
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from mailbridge.utils.config import Protocol, ServerSettings
from mailbridge.utils.errors import (
    ConnectError,
    InvalidCredentialsError,
    MailBridgeError,
    NetworkTimeoutError,
    POP3Error,
)
from mailbridge.utils.logging import get_logger, log_event

from ..constants import Timeouts
from ..session import Session, SessionManager, relaxed_ssl_context

logger = get_logger(__name__)

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="mailbridge-pop3")


class POP3Connection(SessionManager[poplib.POP3]):
    """Opens one short-lived POP3 session per mailbox operation."""

    protocol = Protocol.POP3

    def _default_client_factory(self, settings: ServerSettings) -> poplib.POP3:
        """Blocking connect; returns once the server greeting has been read."""
        if settings.secure:
            return poplib.POP3_SSL(
                settings.host,
                settings.port,
                timeout=Timeouts.POP3_COMMAND,
                context=relaxed_ssl_context(),
            )
        return poplib.POP3(settings.host, settings.port, timeout=Timeouts.POP3_COMMAND)

    async def _connect(self, settings: ServerSettings) -> poplib.POP3:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(_executor, self.client_factory, settings)

        try:
            return await asyncio.shield(future)

        except BaseException:
            # The thread may still finish connecting after we gave up on it
            future.add_done_callback(self._abort_late_client)
            raise

    def _abort_late_client(self, future: asyncio.Future) -> None:
        if not future.cancelled() and future.exception() is None:
            logger.debug("Closing POP3 connection that completed after its deadline")
            self._abort(future.result())

    async def _authenticate(self, client: poplib.POP3, settings: ServerSettings) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, self._login, client, settings)

    @staticmethod
    def _login(client: poplib.POP3, settings: ServerSettings) -> None:
        """USER/PASS exchange.

        Raises:
            InvalidCredentialsError: If the server answers -ERR
        """
        try:
            client.user(settings.user)
            client.pass_(settings.password)

        except poplib.error_proto as e:
            logger.warning(
                "POP3 authentication failed",
                extra={"server": settings.host, "username": settings.user},
            )
            raise InvalidCredentialsError(
                "POP3 authentication failed. Password may be incorrect.",
                details={
                    "server": settings.host,
                    "username": settings.user,
                    "response": _decode(e.args[0] if e.args else b""),
                },
            ) from e

    async def _logout(self, client: poplib.POP3) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, client.quit)

    def _abort(self, client: poplib.POP3) -> None:
        """Close the socket without QUIT; pending DELE marks are discarded."""
        try:
            client.close()
        except Exception as e:
            logger.debug(f"Error force-closing POP3 socket: {str(e)}")

    ## Commands

    async def run(
        self,
        func: Callable[..., Any],
        *args: Any,
        timeout: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> Any:
        """Run one blocking poplib call on the worker pool.

        Raises:
            POP3Error: If the server answers -ERR
            NetworkTimeoutError: If the call exceeds ``timeout``
            ConnectError: If the socket fails
        """
        operation = operation or getattr(func, "__name__", "command")
        timeout = Timeouts.POP3_COMMAND if timeout is None else timeout
        loop = asyncio.get_running_loop()

        try:
            return await self.run_with_timeout(
                loop.run_in_executor(_executor, func, *args), timeout, operation
            )

        except MailBridgeError:
            raise

        except poplib.error_proto as e:
            raise POP3Error(
                f"POP3 operation failed: {operation}",
                details={
                    "operation": operation,
                    "response": _decode(e.args[0] if e.args else b""),
                },
            ) from e

        except TimeoutError as e:
            raise NetworkTimeoutError(
                f"POP3 socket timed out during {operation}",
                details={"operation": operation},
            ) from e

        except OSError as e:
            raise ConnectError(
                f"POP3 connection lost during {operation}: {str(e)}",
                details={"operation": operation},
            ) from e

    async def commit(self, session: Session[poplib.POP3]) -> str:
        """Send QUIT and require +OK; this is what finalizes DELE marks.

        On failure the socket is force-closed, so the server discards the
        marks, and the error surfaces.
        """
        try:
            response = await self.run(session.client.quit, operation="quit")

        except BaseException:
            await self.release(session, force=True)
            raise

        session.closed = True
        log_event(
            "session_closed",
            "POP3 session committed",
            forced=False,
            age_seconds=round(session.age, 2),
            server=session.settings.host,
        )

        return _decode(response)


def _decode(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)
