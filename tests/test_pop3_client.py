"""
Tests for POP3 mailbox operations

Tests cover:
- Listing by descending ordinal
- Skipping messages that cannot be retrieved or parsed
- Single message retrieval
- Delete committed by QUIT
- Mailbox info
"""
from unittest.mock import patch

import pytest

from mailbridge.core.email.constants import Timeouts
from mailbridge.core.email.pop3.client import listing_ordinals
from mailbridge.utils.errors import NetworkTimeoutError, POP3Error, ValidationError

from .test_helpers import make_raw_email


def numbered_emails(count):
    return [make_raw_email(subject=f"Message {n}") for n in range(1, count + 1)]


class TestListingOrdinals:
    """Tests for the ordinal walk"""

    def test_descending_from_count(self):
        """Test ordinals run N down to N - limit + 1"""
        assert list(listing_ordinals(10, 3)) == [10, 9, 8]

    def test_limit_larger_than_mailbox(self):
        """Test the walk stops at 1"""
        assert list(listing_ordinals(2, 50)) == [2, 1]

    def test_empty_mailbox(self):
        """Test nothing is walked for an empty mailbox"""
        assert list(listing_ordinals(0, 50)) == []


class TestListMessages:
    """Tests for listing the maildrop"""

    async def test_list_newest_ordinals(self, pop3_client, pop3_server):
        """Test the highest ordinals are retrieved in descending order"""
        pop3_server.messages = numbered_emails(5)

        messages = await pop3_client.list_messages(limit=3)

        assert [message.id for message in messages] == [5, 4, 3]
        assert [message.subject for message in messages] == [
            "Message 5",
            "Message 4",
            "Message 3",
        ]
        assert pop3_server.command_args("retr") == [(5,), (4,), (3,)]
        assert pop3_server.clients[0].quit_ok

    async def test_failed_retrieval_skipped(self, pop3_client, pop3_server):
        """Test a message answering -ERR is left out of the listing"""
        pop3_server.messages = numbered_emails(4)
        pop3_server.broken = {3}

        messages = await pop3_client.list_messages(limit=10)

        assert [message.id for message in messages] == [4, 2, 1]

    async def test_unparseable_message_skipped(self, pop3_client, pop3_server):
        """Test a message that cannot be parsed is left out of the listing"""
        pop3_server.messages = [make_raw_email(subject="First"), b""]

        messages = await pop3_client.list_messages(limit=10)

        assert [message.id for message in messages] == [1]

    async def test_empty_maildrop(self, pop3_client, pop3_server):
        """Test an empty maildrop lists nothing"""
        assert await pop3_client.list_messages() == []
        assert pop3_server.command_args("retr") == []

    async def test_listing_timeout_closes_session(self, pop3_client, pop3_server):
        """Test the listing deadline force-closes the session"""
        pop3_server.messages = numbered_emails(2)

        with patch.object(Timeouts, "POP3_LIST_MESSAGES", 0.0):
            with pytest.raises(NetworkTimeoutError):
                await pop3_client.list_messages()

        assert pop3_server.clients[0].closed
        assert not pop3_server.clients[0].quit_ok

    async def test_invalid_limit(self, pop3_client):
        """Test a non-integer limit is rejected"""
        with pytest.raises(ValidationError):
            await pop3_client.list_messages(limit="many")


class TestRetrieve:
    """Tests for single message retrieval"""

    async def test_retrieve_one(self, pop3_client, pop3_server):
        """Test one message is retrieved by ordinal"""
        pop3_server.messages = numbered_emails(3)

        message = await pop3_client.retrieve_one("2")

        assert message.id == 2
        assert message.subject == "Message 2"

    async def test_retrieve_missing_raises(self, pop3_client, pop3_server):
        """Test a -ERR to RETR surfaces as POP3Error"""
        pop3_server.messages = numbered_emails(1)

        with pytest.raises(POP3Error):
            await pop3_client.retrieve_one(5)

    async def test_retrieve_invalid_ordinal(self, pop3_client):
        """Test ordinals below 1 are rejected"""
        with pytest.raises(ValidationError):
            await pop3_client.retrieve_one(0)


class TestDelete:
    """Tests for deletion"""

    async def test_delete_committed_by_quit(self, pop3_client, pop3_server):
        """Test success is reported once QUIT is acknowledged"""
        pop3_server.messages = numbered_emails(3)

        result = await pop3_client.delete_message(2)

        assert result.to_dict() == {"success": True, "message": "Email deleted"}
        assert pop3_server.deleted == {2}
        assert pop3_server.command_args("quit") == [()]

    async def test_failed_quit_raises(self, pop3_client, pop3_server):
        """Test a rejected QUIT is an error and the message is kept"""
        pop3_server.messages = numbered_emails(3)
        pop3_server.fail_quit = True

        with pytest.raises(POP3Error):
            await pop3_client.delete_message(2)

        assert pop3_server.deleted == set()
        assert pop3_server.clients[0].closed


class TestMailboxInfo:
    """Tests for mailbox info"""

    async def test_mailbox_info(self, pop3_client, pop3_server):
        """Test LIST output is reported as count and sizes"""
        pop3_server.messages = [b"x" * 100, b"y" * 250]

        info = await pop3_client.mailbox_info()

        assert info.count == 2
        assert info.messages == [{"ordinal": 1, "size": 100}, {"ordinal": 2, "size": 250}]
        assert info.raw == ["1 100", "2 250"]
