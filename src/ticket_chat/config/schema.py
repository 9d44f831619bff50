"""Pydantic models for configuration schema."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MessageConfig(BaseModel):
    """Limits applied to submitted messages."""

    max_body_length: int = Field(5000, ge=1, le=100_000)
    max_attachments: int = Field(3, ge=0, le=20)
    max_attachment_bytes: int = Field(10 * 1024 * 1024, ge=1)
    attachment_placeholder: str | None = "[file]"


class TypingConfig(BaseModel):
    """Typing indicator behaviour."""

    indicator_ttl: float = Field(10.0, gt=0, le=300, description="Seconds before an indicator expires")
    min_interval: float = Field(1.0, ge=0, le=60, description="Minimum seconds between typing signals")
    max_tracked_typists: int = Field(
        10_000, ge=1, description="Upper bound on per-(room, user) typing throttles held at once"
    )


class BroadcastConfig(BaseModel):
    """Room broadcast channel configuration."""

    provider: Literal["memory"] = "memory"
    queue_size: int = Field(256, ge=1, le=100_000)
    publish_timeout: float = Field(2.0, gt=0, le=60)


class HttpTicketStoreConfig(BaseModel):
    """REST ticket API configuration."""

    base_url: str
    api_token: str | None = None
    timeout: float = Field(10.0, gt=0, le=120)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL without trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid ticket API URL: {v}")
        return v.rstrip("/")


class TicketStoreConfig(BaseModel):
    """Ticket persistence collaborator configuration."""

    provider: Literal["memory", "http"] = "memory"
    http: HttpTicketStoreConfig | None = None


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("/var/log/ticket-chat/chat.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    file: FileLoggingConfig = FileLoggingConfig()


class RetryConfig(BaseModel):
    """Retry configuration for transient store failures."""

    max_attempts: int = Field(3, ge=1, le=10)
    initial_delay: float = Field(1.0, ge=0.0, le=10.0)
    max_delay: float = Field(30.0, ge=0.0, le=300.0)


class ChatServiceConfig(BaseSettings):
    """Root configuration for the chat service."""

    messages: MessageConfig = MessageConfig()
    typing: TypingConfig = TypingConfig()
    broadcast: BroadcastConfig = BroadcastConfig()
    tickets: TicketStoreConfig = TicketStoreConfig()
    logging: LoggingConfig = LoggingConfig()
    retry: RetryConfig = RetryConfig()

    model_config = SettingsConfigDict(
        env_prefix="TICKET_CHAT_",
        env_file=".env",
        env_nested_delimiter="__",
    )
