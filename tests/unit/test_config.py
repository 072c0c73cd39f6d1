"""Tests for configuration settings module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from imapstream.config.settings import DEFAULT_PORTS, AccountOptions, Settings, get_settings


# Helper function to create Settings without loading .env file
def create_settings(**kwargs) -> Settings:
    """Create Settings instance without loading .env file."""
    kwargs.setdefault("imap_host", "imap.example.com")
    kwargs.setdefault("imap_user", "user@example.com")
    kwargs.setdefault("imap_pass", "pass123")
    return Settings(_env_file=None, **kwargs)


class TestAccountOptions:
    """Test the per-account option structure."""

    def test_defaults(self) -> None:
        options = AccountOptions()
        assert options.port is None
        assert options.mailbox == ""
        assert options.ports == [993, 143]

    def test_single_port(self) -> None:
        assert AccountOptions(port=143).ports == [143]

    def test_port_list_keeps_order(self) -> None:
        assert AccountOptions(port=[143, 993]).ports == [143, 993]

    def test_ports_returns_a_copy(self) -> None:
        options = AccountOptions(port=[993])
        options.ports.append(143)
        assert options.ports == [993]

    def test_invalid_port_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AccountOptions(port=70000)

    def test_empty_port_list_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AccountOptions(port=[])

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AccountOptions(prot=993)

    def test_frozen(self) -> None:
        options = AccountOptions(mailbox="Archive")
        with pytest.raises(ValidationError):
            options.mailbox = "Other"


class TestSettingsValidation:
    """Test Pydantic validation for Settings class."""

    def test_valid_settings_minimal(self) -> None:
        """Test creating settings with required fields only."""
        settings = create_settings()
        assert settings.imap_host == "imap.example.com"
        assert settings.imap_user == "user@example.com"
        assert settings.imap_pass.get_secret_value() == "pass123"

    def test_default_values_applied(self) -> None:
        """Test that default values are applied correctly."""
        settings = create_settings()
        assert settings.imap_ports == list(DEFAULT_PORTS)
        assert settings.imap_mailbox == "INBOX"
        assert settings.connect_timeout == 30
        assert settings.skip_network_check is False
        assert settings.check_timeout == 3.0
        assert settings.log_format == "console"
        assert settings.debug is False

    @pytest.mark.parametrize("host", ["imap.example.com", "mail-1.example.org", "127.0.0.1"])
    def test_valid_hosts(self, host: str) -> None:
        assert create_settings(imap_host=host).imap_host == host

    @pytest.mark.parametrize("host", ["imap example.com", "imap.example.com/x", ""])
    def test_invalid_hosts(self, host: str) -> None:
        with pytest.raises(ValidationError):
            create_settings(imap_host=host)

    def test_empty_user_rejected(self) -> None:
        with pytest.raises(ValidationError):
            create_settings(imap_user="")

    @pytest.mark.parametrize("ports", [[], [0], [993, 65536]])
    def test_invalid_ports(self, ports: list[int]) -> None:
        with pytest.raises(ValidationError):
            create_settings(imap_ports=ports)

    @pytest.mark.parametrize("timeout", [0, 301])
    def test_connect_timeout_bounds(self, timeout: int) -> None:
        with pytest.raises(ValidationError):
            create_settings(connect_timeout=timeout)

    def test_invalid_log_format(self) -> None:
        with pytest.raises(ValidationError):
            create_settings(log_format="xml")

    def test_password_is_secret(self) -> None:
        settings = create_settings(imap_pass="hunter2")
        assert "hunter2" not in str(settings.imap_pass)
        assert "hunter2" not in repr(settings)

    def test_account_options(self) -> None:
        settings = create_settings(imap_ports=[143], imap_mailbox="Archive")
        options = settings.account_options()
        assert options.ports == [143]
        assert options.mailbox == "Archive"


class TestMissingRequiredFields:
    """Test validation errors for missing required fields."""

    @pytest.mark.parametrize("field", ["imap_host", "imap_user", "imap_pass"])
    def test_missing_field(self, field: str) -> None:
        values = {
            "imap_host": "imap.example.com",
            "imap_user": "user@example.com",
            "imap_pass": "pass",
        }
        del values[field]
        # Clear the environment variables that conftest.py sets
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None, **values)
            assert field in str(exc_info.value)


class TestGetSettingsCaching:
    """Test get_settings function with lru_cache."""

    def test_get_settings_returns_same_instance(self) -> None:
        """Test get_settings returns the same cached instance."""
        mock_settings = create_settings()

        with patch("imapstream.config.settings.Settings", return_value=mock_settings):
            get_settings.cache_clear()
            settings1 = get_settings()
            settings2 = get_settings()
            assert settings1 is settings2
        get_settings.cache_clear()

    def test_get_settings_cache_clear(self) -> None:
        """Test that cache_clear creates a new instance."""
        mock_settings1 = create_settings(imap_user="user1")
        mock_settings2 = create_settings(imap_user="user2")

        get_settings.cache_clear()
        with patch(
            "imapstream.config.settings.Settings",
            side_effect=[mock_settings1, mock_settings2],
        ):
            settings1 = get_settings()
            get_settings.cache_clear()
            settings2 = get_settings()
            assert settings1 is not settings2
            assert settings1.imap_user == "user1"
            assert settings2.imap_user == "user2"
        get_settings.cache_clear()


class TestEnvironmentVariableLoading:
    """Test loading settings from environment variables."""

    def test_settings_from_environment(self) -> None:
        """Test Settings loads from environment variables."""
        # The conftest.py already sets up test environment variables
        settings = Settings(_env_file=None)
        assert settings.imap_host == "imap.test.local"
        assert settings.imap_user == "test@test.local"
        assert settings.imap_pass.get_secret_value() == "testpass"

    def test_custom_environment_override(self) -> None:
        """Test custom environment variables override defaults."""
        with patch.dict(
            os.environ,
            {
                "IMAPSTREAM_IMAP_HOST": "imap.custom.local",
                "IMAPSTREAM_IMAP_PORTS": "[143]",
                "IMAPSTREAM_IMAP_MAILBOX": "Archive",
                "IMAPSTREAM_SKIP_NETWORK_CHECK": "true",
                "IMAPSTREAM_CONNECT_TIMEOUT": "10",
            },
        ):
            settings = Settings(_env_file=None)
            assert settings.imap_host == "imap.custom.local"
            assert settings.imap_ports == [143]
            assert settings.imap_mailbox == "Archive"
            assert settings.skip_network_check is True
            assert settings.connect_timeout == 10


class TestSetupLogging:
    """Test logging configuration driven by settings."""

    @pytest.mark.parametrize(
        ("log_format", "debug", "json_format"),
        [("console", False, False), ("json", True, True)],
    )
    def test_setup_logging(self, log_format: str, debug: bool, json_format: bool) -> None:
        settings = create_settings(log_format=log_format, debug=debug)
        with patch("imapstream.config.settings.configure_logging") as configure:
            settings.setup_logging()
        configure.assert_called_once_with(json_format=json_format, debug=debug)
