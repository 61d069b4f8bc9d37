"""
Tests for per-protocol configuration

Tests cover:
- Environment defaults and default ports
- Stored and call-time overrides
- Password whitespace stripping
- Missing and invalid settings
"""
import pytest

from mailbridge.utils.config import ConfigManager, Protocol, ProtocolConfig, strip_password
from mailbridge.utils.errors import InvalidConfigError, MissingConfigError


class TestEnvironmentDefaults:
    """Tests for settings resolved from the environment"""

    def test_resolve_from_environment(self, config_manager):
        """Test host, user and secure flag come from the environment"""
        settings = config_manager.resolve(Protocol.IMAP)

        assert settings.host == "imap.test.com"
        assert settings.user == "user@test.com"
        assert settings.secure is True

    def test_default_secure_ports(self, config_manager):
        """Test implicit TLS ports are used when secure and no port is set"""
        assert config_manager.resolve("smtp").port == 465
        assert config_manager.resolve("imap").port == 993
        assert config_manager.resolve("pop3").port == 995

    def test_default_plain_ports(self):
        """Test plain ports are used when secure is not enabled"""
        manager = ConfigManager(
            environ={
                "EMAIL_USER": "user@test.com",
                "SMTP_HOST": "smtp.test.com",
                "IMAP_HOST": "imap.test.com",
                "POP3_HOST": "pop.test.com",
            }
        )

        assert manager.resolve("smtp").port == 587
        assert manager.resolve("imap").port == 143
        assert manager.resolve("pop3").port == 110

    def test_explicit_port_from_environment(self):
        """Test a port variable overrides the default"""
        manager = ConfigManager(
            environ={"EMAIL_USER": "u@test.com", "IMAP_HOST": "h", "IMAP_PORT": "1993"}
        )
        assert manager.resolve("imap").port == 1993

    def test_invalid_port_raises(self):
        """Test a non-numeric port is rejected"""
        manager = ConfigManager(
            environ={"EMAIL_USER": "u@test.com", "IMAP_HOST": "h", "IMAP_PORT": "abc"}
        )
        with pytest.raises(InvalidConfigError):
            manager.resolve("imap")


class TestPasswordHandling:
    """Tests for password normalization"""

    def test_whitespace_removed_from_password(self, config_manager):
        """Test spaces in a pasted app password are stripped"""
        settings = config_manager.resolve(Protocol.SMTP)
        assert settings.password == "abcdefghijklmnop"

    def test_strip_password_handles_none(self):
        """Test None passes through unchanged"""
        assert strip_password(None) is None

    def test_strip_password_removes_tabs_and_newlines(self):
        """Test every kind of whitespace is removed"""
        assert strip_password(" ab\tcd\nef ") == "abcdef"

    def test_password_not_in_description(self, config_manager):
        """Test the loggable description carries no password"""
        description = config_manager.resolve(Protocol.POP3).describe()
        assert "password" not in description
        assert description["server"] == "pop.test.com"


class TestOverrides:
    """Tests for stored and call-time overrides"""

    def test_stored_override_wins_over_environment(self, config_manager):
        """Test configure() replaces environment values"""
        config_manager.configure("imap", {"host": "other.test.com", "port": 1143})

        settings = config_manager.resolve("imap")

        assert settings.host == "other.test.com"
        assert settings.port == 1143
        assert settings.user == "user@test.com"

    def test_call_time_override_wins_over_stored(self, config_manager):
        """Test a per-call override is applied last"""
        config_manager.configure("imap", {"host": "stored.test.com"})

        settings = config_manager.resolve("imap", {"host": "call.test.com"})

        assert settings.host == "call.test.com"

    def test_override_only_touches_its_protocol(self, config_manager):
        """Test configuring IMAP leaves POP3 alone"""
        config_manager.configure("imap", {"host": "other.test.com"})
        assert config_manager.resolve("pop3").host == "pop.test.com"

    def test_configure_replaces_previous_override(self, config_manager):
        """Test a second configure() drops fields set by the first"""
        config_manager.configure("imap", {"host": "first.test.com", "port": 2000})
        config_manager.configure("imap", {"host": "second.test.com"})

        settings = config_manager.resolve("imap")

        assert settings.host == "second.test.com"
        assert settings.port == 993

    def test_configure_all_skips_none(self, config_manager):
        """Test configure_all() leaves unspecified protocols untouched"""
        config_manager.configure_all(smtp={"host": "mail.test.com"})

        assert config_manager.resolve("smtp").host == "mail.test.com"
        assert config_manager.get_override("imap") == ProtocolConfig()

    def test_invalid_override_raises(self, config_manager):
        """Test a value of the wrong type is rejected"""
        with pytest.raises(InvalidConfigError):
            config_manager.configure("imap", {"port": "not-a-port"})


class TestMissingSettings:
    """Tests for incomplete configuration"""

    def test_missing_host_raises(self):
        """Test resolution fails without a host"""
        manager = ConfigManager(environ={"EMAIL_USER": "user@test.com"})
        with pytest.raises(MissingConfigError):
            manager.resolve("imap")

    def test_missing_user_raises(self):
        """Test resolution fails without a user"""
        manager = ConfigManager(environ={"IMAP_HOST": "imap.test.com"})
        with pytest.raises(MissingConfigError):
            manager.resolve("imap")

    def test_unknown_protocol_raises(self, config_manager):
        """Test an unknown protocol name is rejected"""
        with pytest.raises(ValueError):
            config_manager.resolve("nntp")
