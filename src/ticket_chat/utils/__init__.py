"""Utility functions and helpers.

This module provides various utilities for the chat service:
- async_helpers: Errors, retry, rate limiting, timeouts
- logging: Structured logging with message body redaction
- health: Health check utilities
- metrics: Application metrics collection
"""

from ticket_chat.utils.async_helpers import (
    AccessDenied,
    BroadcastError,
    ChatError,
    ConflictError,
    NotFound,
    RateLimiter,
    StoreError,
    ValidationError,
    create_retry,
    with_timeout,
)
from ticket_chat.utils.health import (
    HealthChecker,
    HealthReport,
    HealthStatus,
)
from ticket_chat.utils.logging import (
    LogFormat,
    LogLevel,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from ticket_chat.utils.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    Timer,
    get_metrics,
)

__all__ = [
    # Errors
    "AccessDenied",
    "BroadcastError",
    "ChatError",
    "ConflictError",
    # Metrics
    "Counter",
    "Gauge",
    # Health
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    "Histogram",
    # Logging
    "LogFormat",
    "LogLevel",
    "MetricsRegistry",
    "NotFound",
    "RateLimiter",
    "StoreError",
    "Timer",
    "ValidationError",
    "bind_context",
    "clear_context",
    "configure_logging",
    "create_retry",
    "get_logger",
    "get_metrics",
    "unbind_context",
    "with_timeout",
]
