"""
Shared test fixtures and configuration for pytest
"""
import os
import tempfile

# Keep log files out of the user's home directory; must run before any
# mailbridge import resolves its paths.
os.environ["MAILBRIDGE_HOME"] = tempfile.mkdtemp(prefix="mailbridge-tests-")

import pytest

from mailbridge.core.email.imap import IMAPClient, IMAPConnection
from mailbridge.core.email.pop3 import POP3Client, POP3Connection
from mailbridge.core.email.smtp import SMTPClient, SMTPConnection
from mailbridge.utils.config import ConfigManager, reset_config_manager

from .test_helpers import FakeIMAPServer, FakePOP3Server, FakeSMTPServer

TEST_ENVIRON = {
    "EMAIL_USER": "user@test.com",
    "EMAIL_PASSWORD": "abcd efgh ijkl mnop",
    "SMTP_HOST": "smtp.test.com",
    "SMTP_SECURE": "true",
    "IMAP_HOST": "imap.test.com",
    "IMAP_SECURE": "true",
    "POP3_HOST": "pop.test.com",
    "POP3_SECURE": "true",
}


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Strip mail settings from the real environment for every test"""
    for key in list(os.environ):
        if key.startswith(("EMAIL_", "IMAP_", "POP3_", "SMTP_")):
            monkeypatch.delenv(key, raising=False)
    reset_config_manager()
    yield
    reset_config_manager()


@pytest.fixture
def config_manager():
    """ConfigManager reading a fixed test environment"""
    return ConfigManager(environ=dict(TEST_ENVIRON))


@pytest.fixture
def imap_server():
    return FakeIMAPServer()


@pytest.fixture
def imap_connection(config_manager, imap_server):
    return IMAPConnection(config_manager, client_factory=imap_server.client_factory)


@pytest.fixture
def imap_client(imap_connection):
    return IMAPClient(connection=imap_connection)


@pytest.fixture
def pop3_server():
    return FakePOP3Server()


@pytest.fixture
def pop3_connection(config_manager, pop3_server):
    return POP3Connection(config_manager, client_factory=pop3_server.client_factory)


@pytest.fixture
def pop3_client(pop3_connection):
    return POP3Client(connection=pop3_connection)


@pytest.fixture
def smtp_server():
    return FakeSMTPServer()


@pytest.fixture
def smtp_connection(config_manager, smtp_server):
    return SMTPConnection(config_manager, client_factory=smtp_server.client_factory)


@pytest.fixture
def smtp_client(smtp_connection):
    return SMTPClient(connection=smtp_connection)
