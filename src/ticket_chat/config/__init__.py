"""Configuration loading and validation."""

from .loader import apply_logging_config, load_config, validate_config
from .schema import (
    BroadcastConfig,
    ChatServiceConfig,
    HttpTicketStoreConfig,
    LoggingConfig,
    MessageConfig,
    RetryConfig,
    TicketStoreConfig,
    TypingConfig,
)

__all__ = [
    # Loader
    "apply_logging_config",
    "load_config",
    "validate_config",
    # Root config
    "ChatServiceConfig",
    # Section configs
    "MessageConfig",
    "TypingConfig",
    "BroadcastConfig",
    "TicketStoreConfig",
    "HttpTicketStoreConfig",
    "LoggingConfig",
    "RetryConfig",
]
