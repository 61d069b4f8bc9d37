"""
Tests for the mailbox session lifecycle

Tests cover:
- Connect and authentication failures release the socket
- Connect and authentication deadlines
- Idempotent release
- Context manager cleanup on every exit path
"""
import asyncio
import ssl
from unittest.mock import patch

import pytest

from mailbridge.core.email.constants import Timeouts
from mailbridge.core.email.imap import IMAPConnection
from mailbridge.core.email.pop3 import POP3Connection
from mailbridge.core.email.session import relaxed_ssl_context
from mailbridge.utils.errors import ConnectError, InvalidCredentialsError, NetworkTimeoutError


class TestAcquire:
    """Tests for opening sessions"""

    async def test_acquire_success(self, imap_connection, imap_server):
        """Test a session is connected and authenticated"""
        session = await imap_connection.acquire()

        assert session.client is imap_server.clients[0]
        assert session.settings.host == "imap.test.com"
        assert imap_server.command_names()[:2] == ["hello", "login"]
        assert not session.closed

        await imap_connection.release(session)

    async def test_rejected_login_closes_socket(self, imap_connection, imap_server):
        """Test the socket is closed before the auth error surfaces"""
        imap_server.login_ok = False

        with pytest.raises(InvalidCredentialsError):
            await imap_connection.acquire()

        client = imap_server.clients[0]
        assert client.aborted
        assert not client.logged_out

    async def test_greeting_timeout_closes_socket(self, imap_connection, imap_server):
        """Test a server that never greets times out and is closed"""
        imap_server.hang.add("hello")

        with patch.object(Timeouts, "CONNECT", 0.05):
            with pytest.raises(NetworkTimeoutError):
                await imap_connection.acquire()

        assert imap_server.clients[0].aborted

    async def test_login_timeout_closes_socket(self, imap_connection, imap_server):
        """Test a login that never answers times out and is closed"""
        imap_server.hang.add("login")

        with patch.object(Timeouts, "AUTHENTICATE", 0.05):
            with pytest.raises(NetworkTimeoutError):
                await imap_connection.acquire()

        assert imap_server.clients[0].aborted

    async def test_unreachable_server(self, config_manager):
        """Test socket errors while connecting become ConnectError"""

        def refuse(settings):
            raise OSError("Connection refused")

        connection = IMAPConnection(config_manager, client_factory=refuse)

        with pytest.raises(ConnectError):
            await connection.acquire()

    async def test_call_time_config_used(self, imap_connection, imap_server):
        """Test a per-call override reaches the client factory"""
        session = await imap_connection.acquire({"host": "alt.test.com", "port": 1993})

        assert imap_server.clients[0].settings.host == "alt.test.com"
        assert imap_server.clients[0].settings.port == 1993

        await imap_connection.release(session)


class TestRelease:
    """Tests for closing sessions"""

    async def test_release_logs_out(self, imap_connection, imap_server):
        """Test a normal release sends LOGOUT"""
        session = await imap_connection.acquire()
        await imap_connection.release(session)

        assert session.closed
        assert imap_server.clients[0].logged_out
        assert not imap_server.clients[0].aborted

    async def test_release_is_idempotent(self, imap_connection, imap_server):
        """Test releasing twice only logs out once"""
        session = await imap_connection.acquire()

        await imap_connection.release(session)
        await imap_connection.release(session)

        assert imap_server.command_names().count("logout") == 1

    async def test_release_none_is_ignored(self, imap_connection):
        """Test releasing nothing does not raise"""
        await imap_connection.release(None)

    async def test_forced_release_skips_logout(self, imap_connection, imap_server):
        """Test force=True closes the socket without LOGOUT"""
        session = await imap_connection.acquire()
        await imap_connection.release(session, force=True)

        assert imap_server.clients[0].aborted
        assert "logout" not in imap_server.command_names()

    async def test_hung_logout_forces_close(self, imap_connection, imap_server):
        """Test a LOGOUT that never answers is abandoned and the socket closed"""
        imap_server.hang.add("logout")
        session = await imap_connection.acquire()

        with patch.object(Timeouts, "LOGOUT", 0.05):
            await imap_connection.release(session)

        assert imap_server.clients[0].aborted


class TestSessionContext:
    """Tests for the session context manager"""

    async def test_released_after_block(self, imap_connection, imap_server):
        """Test the session is logged out after a successful block"""
        async with imap_connection.session() as session:
            assert not session.closed

        assert session.closed
        assert imap_server.clients[0].logged_out

    async def test_released_after_error(self, imap_connection, imap_server):
        """Test the session is released when the block raises"""
        with pytest.raises(ValueError):
            async with imap_connection.session():
                raise ValueError("boom")

        assert imap_server.clients[0].released

    async def test_timeout_forces_close(self, imap_connection, imap_server):
        """Test a timeout inside the block skips LOGOUT"""
        with pytest.raises(asyncio.TimeoutError):
            async with imap_connection.session():
                raise asyncio.TimeoutError()

        assert imap_server.clients[0].aborted
        assert not imap_server.clients[0].logged_out

    async def test_run_with_timeout_maps_error(self, imap_connection):
        """Test an expired deadline becomes NetworkTimeoutError"""
        with pytest.raises(NetworkTimeoutError) as exc_info:
            await imap_connection.run_with_timeout(asyncio.sleep(1), 0.01, "noop")

        assert exc_info.value.details["operation"] == "noop"


class TestPOP3Session:
    """Tests for POP3 session setup"""

    async def test_pop3_rejected_login_closes_socket(self, pop3_connection, pop3_server):
        """Test a -ERR to PASS closes the socket and raises"""
        pop3_server.password = "something-else"

        with pytest.raises(InvalidCredentialsError):
            await pop3_connection.acquire()

        assert pop3_server.clients[0].closed

    async def test_pop3_unreachable_server(self, config_manager):
        """Test socket errors while connecting become ConnectError"""

        def refuse(settings):
            raise OSError("Connection refused")

        connection = POP3Connection(config_manager, client_factory=refuse)

        with pytest.raises(ConnectError):
            await connection.acquire()

    async def test_pop3_release_sends_quit(self, pop3_connection, pop3_server):
        """Test a normal release sends QUIT"""
        async with pop3_connection.session():
            pass

        assert pop3_server.command_args("quit") == [()]


class TestRelaxedTLS:
    """Tests for the relaxed TLS context"""

    def test_certificate_checks_disabled(self):
        """Test hostname and certificate verification are off"""
        context = relaxed_ssl_context()

        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE
