"""SMTP connection management - lazy channel with health checks.

Submission is stateless per message, so unlike the mailbox protocols the
channel is created on first use and reused across sends. It is replaced
when the NOOP health check fails, when its TTL runs out, or when the
resolved server settings change after a reconfiguration.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional, Tuple

import aiosmtplib

from mailbridge.utils.config import (
    ConfigInput,
    ConfigManager,
    Protocol,
    ServerSettings,
    get_config_manager,
)
from mailbridge.utils.errors import (
    ConnectError,
    InvalidCredentialsError,
    MailBridgeError,
    NetworkTimeoutError,
    SMTPError,
)
from mailbridge.utils.logging import async_log_call, get_logger, log_event

from ..constants import Timeouts

logger = get_logger(__name__)

DEFAULT_CONNECTION_TTL = 1800  # 30 minutes


@dataclass
class SMTPConnectionStats:
    """Tracks SMTP connection metrics."""

    connections_created: int = 0
    reconnections: int = 0
    health_checks_passed: int = 0
    health_checks_failed: int = 0
    emails_sent: int = 0
    send_failures: int = 0
    last_operation_time: Optional[float] = None

    def record_send(self, success: bool = True) -> None:
        self.last_operation_time = time.time()
        if success:
            self.emails_sent += 1
        else:
            self.send_failures += 1


class SMTPConnection:
    """Manages the reusable SMTP channel."""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        client_factory: Optional[Callable[[ServerSettings], aiosmtplib.SMTP]] = None,
        connection_ttl: float = DEFAULT_CONNECTION_TTL,
    ):
        """Initialise SMTP connection.

        Args:
            config_manager: Source of server settings (process default if None)
            client_factory: Builds an unconnected SMTP client for the settings
            connection_ttl: Seconds before an idle channel is replaced
        """
        self.config_manager = config_manager or get_config_manager()
        self.client_factory = client_factory or self._default_client_factory
        self._client: Optional[aiosmtplib.SMTP] = None
        self._settings: Optional[ServerSettings] = None
        self._lock = asyncio.Lock()
        self._connection_created_at: Optional[float] = None
        self._connection_ttl = connection_ttl
        self._stats = SMTPConnectionStats()

    @staticmethod
    def _default_client_factory(settings: ServerSettings) -> aiosmtplib.SMTP:
        # secure -> implicit TLS; otherwise STARTTLS when the server offers it.
        # Certificates are not verified, to tolerate self-signed servers.
        return aiosmtplib.SMTP(
            hostname=settings.host,
            port=settings.port,
            use_tls=settings.secure,
            start_tls=None,
            validate_certs=False,
            timeout=Timeouts.CONNECT,
        )

    @property
    def settings(self) -> Optional[ServerSettings]:
        return self._settings

    def get_stats(self) -> SMTPConnectionStats:
        return self._stats

    def _is_connection_expired(self) -> bool:
        if self._client is None or self._connection_created_at is None:
            return True
        return time.time() - self._connection_created_at > self._connection_ttl

    async def get_client(
        self, config: ConfigInput = None
    ) -> Tuple[aiosmtplib.SMTP, ServerSettings]:
        """Get a connected, authenticated client, reconnecting if needed.

        Returns:
            The client and the settings it was opened with

        Raises:
            ConnectError: If the server cannot be reached
            InvalidCredentialsError: If the login is rejected
            NetworkTimeoutError: If connecting or logging in times out
        """
        settings = self.config_manager.resolve(Protocol.SMTP, config)

        async with self._lock:
            if self._client is not None and settings != self._settings:
                logger.info(
                    "SMTP settings changed, reconnecting",
                    extra={"server": settings.host, "port": settings.port},
                )
                await self._discard()

            elif self._client is not None and self._is_connection_expired():
                logger.info(
                    "SMTP connection expired, reconnecting",
                    extra={"ttl": self._connection_ttl, "emails_sent": self._stats.emails_sent},
                )
                await self._discard()

            elif self._client is not None:
                try:
                    await asyncio.wait_for(self._client.noop(), timeout=Timeouts.SMTP_NOOP)
                    self._stats.health_checks_passed += 1
                    logger.debug("SMTP connection health check passed")

                except Exception as e:
                    self._stats.health_checks_failed += 1
                    logger.warning("SMTP connection lost, reconnecting", extra={"error": str(e)})
                    await self._discard()

            if self._client is None:
                if self._stats.connections_created:
                    self._stats.reconnections += 1
                self._client = await self._connect(settings)
                self._settings = settings
                self._connection_created_at = time.time()
                self._stats.connections_created += 1

            return self._client, self._settings

    async def _connect(self, settings: ServerSettings) -> aiosmtplib.SMTP:
        """Connect and log in.

        Raises:
            InvalidCredentialsError: If authentication fails
            NetworkTimeoutError: If connection times out
            ConnectError: If other network errors occur
        """
        start_time = time.time()
        client = self.client_factory(settings)

        logger.info(
            "Connecting to SMTP server",
            extra={**settings.describe(), "ssl_mode": "implicit" if settings.secure else "starttls"},
        )

        try:
            await asyncio.wait_for(client.connect(), timeout=Timeouts.CONNECT)

            if settings.password:
                await asyncio.wait_for(
                    client.login(settings.user, settings.password),
                    timeout=Timeouts.AUTHENTICATE,
                )

        except MailBridgeError:
            self._close_quietly(client)
            raise

        except asyncio.TimeoutError as e:
            self._close_quietly(client)
            logger.error(f"SMTP connection timed out after {time.time() - start_time:.2f}s")
            raise NetworkTimeoutError(
                "SMTP connection timeout", details={"server": settings.host}
            ) from e

        except aiosmtplib.SMTPAuthenticationError as e:
            self._close_quietly(client)
            logger.warning(
                "SMTP authentication failed",
                extra={"server": settings.host, "username": settings.user},
            )
            raise InvalidCredentialsError(
                "SMTP authentication failed. Password may be incorrect.",
                details={"server": settings.host, "username": settings.user},
            ) from e

        except aiosmtplib.SMTPResponseException as e:
            self._close_quietly(client)
            raise SMTPError(
                f"SMTP server rejected the connection: {e.message}",
                details={"server": settings.host, "code": e.code},
            ) from e

        except Exception as e:
            self._close_quietly(client)
            raise ConnectError(
                f"Failed to connect to SMTP server: {str(e)}",
                details={"server": settings.host, "port": settings.port},
            ) from e

        except BaseException:
            self._close_quietly(client)
            raise

        log_event(
            "session_opened",
            "SMTP connection established",
            duration_seconds=round(time.time() - start_time, 2),
            **settings.describe(),
        )

        return client

    @staticmethod
    def _close_quietly(client: aiosmtplib.SMTP) -> None:
        try:
            client.close()
        except Exception as e:
            logger.debug(f"Error force-closing SMTP socket: {str(e)}")

    async def _discard(self) -> None:
        """Drop the current channel, politely if possible."""
        client, self._client = self._client, None
        self._connection_created_at = None
        if client is None:
            return

        try:
            await asyncio.wait_for(client.quit(), timeout=Timeouts.LOGOUT)
        except Exception as e:
            logger.debug(f"Error closing SMTP connection: {str(e)}")
            self._close_quietly(client)

    def invalidate(self) -> None:
        """Force-close the channel after a failed send so the next one reconnects."""
        client, self._client = self._client, None
        self._connection_created_at = None
        if client is not None:
            self._close_quietly(client)

    @async_log_call
    async def close_connection(self) -> None:
        """Close the SMTP channel."""
        async with self._lock:
            had_client = self._client is not None
            await self._discard()
            self._settings = None

        if had_client:
            log_event("session_closed", "SMTP connection closed", **asdict(self._stats))

    ## Context Manager Helpers

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_connection()
