"""Tests for configuration loading and validation."""

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from ticket_chat.config.loader import (
    apply_logging_config,
    load_config,
    substitute_env_vars,
    validate_config,
)
from ticket_chat.config.schema import (
    ChatServiceConfig,
    FileLoggingConfig,
    HttpTicketStoreConfig,
    LoggingConfig,
    MessageConfig,
    RetryConfig,
    TicketStoreConfig,
    TypingConfig,
)


class TestSubstituteEnvVars:
    """Test environment variable substitution."""

    def test_substitute_single_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test substituting a single environment variable."""
        monkeypatch.setenv("TICKET_API_TOKEN", "abc123")
        assert substitute_env_vars("token: ${TICKET_API_TOKEN}") == "token: abc123"

    def test_missing_env_var_raises(self) -> None:
        """Test that missing environment variables raise ValueError."""
        with pytest.raises(ValueError, match="Environment variable MISSING_VAR not found"):
            substitute_env_vars("Value is ${MISSING_VAR}")

    def test_no_substitution_needed(self) -> None:
        """Test text without variables passes through unchanged."""
        assert substitute_env_vars("plain text") == "plain text"


class TestSchemaDefaults:
    """Test default values."""

    def test_message_limits(self) -> None:
        """Test the default message limits."""
        config = MessageConfig()
        assert config.max_attachments == 3
        assert config.max_attachment_bytes == 10 * 1024 * 1024
        assert config.max_body_length == 5000
        assert config.attachment_placeholder == "[file]"

    def test_typing_defaults(self) -> None:
        """Test the default typing settings."""
        config = TypingConfig()
        assert config.indicator_ttl == 10.0
        assert config.min_interval == 1.0

    def test_root_defaults(self) -> None:
        """Test the root config builds from defaults alone."""
        config = ChatServiceConfig()
        assert config.tickets.provider == "memory"
        assert config.broadcast.publish_timeout == 2.0


class TestSchemaValidation:
    """Test field validation."""

    def test_base_url_trailing_slash_stripped(self) -> None:
        """Test the API URL is normalized."""
        config = HttpTicketStoreConfig(base_url="https://example.edu/api/")
        assert config.base_url == "https://example.edu/api"

    def test_invalid_base_url(self) -> None:
        """Test non-http URLs are rejected."""
        with pytest.raises(ValidationError):
            HttpTicketStoreConfig(base_url="ftp://example.edu")

    def test_negative_attachment_limit(self) -> None:
        """Test limits must be non-negative."""
        with pytest.raises(ValidationError):
            MessageConfig(max_attachments=-1)

    def test_unknown_ticket_provider(self) -> None:
        """Test only known providers are accepted."""
        with pytest.raises(ValidationError):
            TicketStoreConfig(provider="mongo")  # type: ignore[arg-type]

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test nested settings can come from the environment."""
        monkeypatch.setenv("TICKET_CHAT_TYPING__MIN_INTERVAL", "2.5")
        assert ChatServiceConfig().typing.min_interval == 2.5


class TestValidateConfig:
    """Test cross-field validation."""

    def test_http_provider_requires_block(self) -> None:
        """Test the http provider needs its settings."""
        config = ChatServiceConfig(tickets=TicketStoreConfig(provider="http"))
        with pytest.raises(ValueError, match="tickets.http config missing"):
            validate_config(config)

    def test_retry_delays_ordered(self) -> None:
        """Test the initial delay cannot exceed the maximum."""
        config = ChatServiceConfig(retry=RetryConfig(initial_delay=5, max_delay=1))
        with pytest.raises(ValueError, match="initial_delay"):
            validate_config(config)


class TestLoadConfig:
    """Test YAML loading."""

    def test_load_full_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a complete YAML file with env substitution."""
        monkeypatch.setenv("TICKET_API_TOKEN", "secret-token")
        path = tmp_path / "config.yaml"
        path.write_text(
            "messages:\n"
            "  max_attachments: 2\n"
            "tickets:\n"
            "  provider: http\n"
            "  http:\n"
            "    base_url: http://localhost:5000/api\n"
            "    api_token: ${TICKET_API_TOKEN}\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  format: console\n"
        )

        config = load_config(path)

        assert config.messages.max_attachments == 2
        assert config.tickets.http is not None
        assert config.tickets.http.api_token == "secret-token"
        assert config.logging.level == "DEBUG"

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        """Test an empty file yields the defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).messages.max_attachments == 3

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_cross_field(self, tmp_path: Path) -> None:
        """Test cross-field validation runs on load."""
        path = tmp_path / "bad.yaml"
        path.write_text("tickets:\n  provider: http\n")
        with pytest.raises(ValueError):
            load_config(path)



class TestApplyLoggingConfig:
    """Test wiring the logging section into structlog."""

    def test_console_without_file(self) -> None:
        """Test the file path is only passed when file logging is enabled."""
        config = ChatServiceConfig(logging=LoggingConfig(level="DEBUG", format="console"))
        with patch("ticket_chat.utils.logging.configure_logging") as configure:
            apply_logging_config(config)
        configure.assert_called_once_with(
            level="DEBUG", log_format="console", file_path=None, file_enabled=False
        )

    def test_file_enabled(self, tmp_path: Path) -> None:
        """Test an enabled file section passes its path through."""
        log_file = tmp_path / "chat.log"
        config = ChatServiceConfig(
            logging=LoggingConfig(file=FileLoggingConfig(enabled=True, path=log_file))
        )
        with patch("ticket_chat.utils.logging.configure_logging") as configure:
            apply_logging_config(config)
        assert configure.call_args.kwargs["file_path"] == log_file
        assert configure.call_args.kwargs["file_enabled"] is True
