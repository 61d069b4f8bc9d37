"""Session lifecycle shared by the mailbox protocols.

A session is one connect -> authenticate -> operate -> disconnect cycle.
Every mailbox operation acquires a brand-new session and releases it on
every exit path; sessions are never pooled or shared between calls.

Subclasses provide the protocol-specific steps:
- ``_connect``: open the socket and read the greeting. Must force-close
  anything it created before re-raising, including on cancellation.
- ``_authenticate``: log in on an open client
- ``_logout``: polite disconnect (IMAP LOGOUT, POP3 QUIT)
- ``_abort``: synchronous forced socket close that never raises
"""

import asyncio
import ssl
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from mailbridge.utils.config import (
    ConfigInput,
    ConfigManager,
    Protocol,
    ServerSettings,
    get_config_manager,
)
from mailbridge.utils.errors import (
    ConnectError,
    MailBridgeError,
    NetworkTimeoutError,
)
from mailbridge.utils.logging import get_logger, log_event

from .constants import Timeouts

logger = get_logger(__name__)

ClientT = TypeVar("ClientT")
ResultT = TypeVar("ResultT")


def relaxed_ssl_context() -> ssl.SSLContext:
    """TLS context that skips certificate and hostname verification.

    Security trade-off: self-signed and legacy mail servers are accepted,
    at the cost of no protection against an active man-in-the-middle.
    """
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


@dataclass
class Session(Generic[ClientT]):
    """One live protocol connection owned by exactly one operation."""

    settings: ServerSettings
    client: ClientT
    opened_at: float = field(default_factory=time.monotonic)
    closed: bool = False

    @property
    def protocol(self) -> Protocol:
        return self.settings.protocol

    @property
    def age(self) -> float:
        return time.monotonic() - self.opened_at


class SessionManager(ABC, Generic[ClientT]):
    """Creates and tears down sessions for one protocol."""

    protocol: Protocol

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        client_factory: Optional[Callable[[ServerSettings], ClientT]] = None,
    ):
        """Initialise the session manager.

        Args:
            config_manager: Source of server settings (process default if None)
            client_factory: Builds the protocol client for a session; the
                default builds a real network client
        """
        self.config_manager = config_manager or get_config_manager()
        self.client_factory = client_factory or self._default_client_factory

    ## Protocol hooks

    @abstractmethod
    def _default_client_factory(self, settings: ServerSettings) -> ClientT: ...

    @abstractmethod
    async def _connect(self, settings: ServerSettings) -> ClientT: ...

    @abstractmethod
    async def _authenticate(self, client: ClientT, settings: ServerSettings) -> None: ...

    @abstractmethod
    async def _logout(self, client: ClientT) -> None: ...

    @abstractmethod
    def _abort(self, client: ClientT) -> None: ...

    ## Lifecycle

    async def acquire(self, config: ConfigInput = None) -> Session[ClientT]:
        """Open a connected, authenticated session.

        Args:
            config: Call-time override merged over the stored configuration

        Returns:
            A Session owned by the caller, who must release it

        Raises:
            ConnectError: Socket or DNS failure
            AuthenticationError: Credentials rejected
            NetworkTimeoutError: Connect or authentication deadline exceeded
        """
        settings = self.config_manager.resolve(self.protocol, config)
        start_time = time.time()

        name = self.protocol.value.upper()

        logger.info(f"Connecting to {name} server", extra=settings.describe())

        try:
            client = await asyncio.wait_for(self._connect(settings), timeout=Timeouts.CONNECT)

        except MailBridgeError:
            raise

        except asyncio.TimeoutError as e:
            logger.error(f"{name} connection timed out after {time.time() - start_time:.2f}s")
            raise NetworkTimeoutError(
                f"{name} connection timeout",
                details={"server": settings.host, "phase": "connect"},
            ) from e

        except Exception as e:
            raise ConnectError(
                f"Failed to connect to {name} server: {str(e)}",
                details={"server": settings.host, "port": settings.port},
            ) from e

        try:
            await asyncio.wait_for(
                self._authenticate(client, settings), timeout=Timeouts.AUTHENTICATE
            )

        except MailBridgeError:
            self._abort(client)
            raise

        except asyncio.TimeoutError as e:
            self._abort(client)
            raise NetworkTimeoutError(
                f"{name} authentication timeout",
                details={"server": settings.host, "phase": "authenticate"},
            ) from e

        except Exception as e:
            self._abort(client)
            raise ConnectError(
                f"{name} connection lost during authentication: {str(e)}",
                details={"server": settings.host, "port": settings.port},
            ) from e

        except BaseException:
            self._abort(client)
            raise

        session = Session(settings=settings, client=client)

        log_event(
            "session_opened",
            f"{name} session established",
            duration_seconds=round(time.time() - start_time, 2),
            **settings.describe(),
        )

        return session

    async def release(self, session: Optional[Session[ClientT]], force: bool = False) -> None:
        """Tear a session down. Idempotent and never raises.

        Args:
            session: Session to release (None is ignored)
            force: Skip the polite logout and close the socket immediately
        """
        if session is None or session.closed:
            return

        session.closed = True

        if not force:
            try:
                await asyncio.wait_for(self._logout(session.client), timeout=Timeouts.LOGOUT)
            except Exception as e:
                logger.debug(f"Error closing {self.protocol.value.upper()} session: {str(e)}")
                force = True
            except BaseException:
                self._abort(session.client)
                raise

        if force:
            self._abort(session.client)

        log_event(
            "session_closed",
            f"{self.protocol.value.upper()} session closed",
            forced=force,
            age_seconds=round(session.age, 2),
            server=session.settings.host,
        )

    @asynccontextmanager
    async def session(self, config: ConfigInput = None):
        """Acquire a session for the duration of the block.

        The session is released on every exit path; on a timeout or
        cancellation the socket is force-closed instead of logging out.
        """
        session = await self.acquire(config)
        try:
            yield session
        except (asyncio.TimeoutError, asyncio.CancelledError):
            await self.release(session, force=True)
            raise
        finally:
            await self.release(session)

    async def run_with_timeout(
        self, coro: Awaitable[ResultT], timeout: float, operation: str
    ) -> ResultT:
        """Await ``coro`` under a deadline, mapping expiry to NetworkTimeoutError."""
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except MailBridgeError:
            raise
        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                f"Timed out during {operation}",
                details={"operation": operation, "timeout_seconds": timeout},
            ) from e
