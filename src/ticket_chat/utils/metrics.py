"""Metrics collection for observability.

This module provides application metrics for monitoring the chat service:
- Message submit and rejection counters
- Broadcast fan-out and failure counters
- Receipt and duplicate-suppression counters
- Submit duration histogram

Metrics are designed to be compatible with Prometheus-style monitoring
but can be exported in various formats.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from threading import Lock
from typing import Any


class MetricType(StrEnum):
    """Types of metrics."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricValue:
    """A single metric value with metadata."""

    name: str
    type: MetricType
    value: float
    labels: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    help_text: str = ""


class Counter:
    """A monotonically increasing counter.

    Example:
        counter = Counter("messages_submitted", "Total messages submitted")
        counter.inc()  # Increment by 1
        counter.inc(5)  # Increment by 5
        counter.inc(labels={"role": "student"})  # With labels
    """

    def __init__(self, name: str, help_text: str = "") -> None:
        """Initialize counter.

        Args:
            name: Metric name
            help_text: Description of the metric
        """
        self.name = name
        self.help_text = help_text
        self._values: dict[tuple[tuple[str, str], ...], float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Increment the counter.

        Args:
            value: Amount to increment (default 1)
            labels: Optional labels for this observation
        """
        if value < 0:
            raise ValueError("Counter can only increase")

        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            self._values[label_key] += value

    def get(self, labels: dict[str, str] | None = None) -> float:
        """Get current counter value.

        Args:
            labels: Labels to filter by

        Returns:
            Current counter value
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            return self._values.get(label_key, 0)

    def get_all(self) -> list[MetricValue]:
        """Get all counter values with their labels.

        Returns:
            List of MetricValue objects
        """
        with self._lock:
            return [
                MetricValue(
                    name=self.name,
                    type=MetricType.COUNTER,
                    value=value,
                    labels=dict(label_key),
                    help_text=self.help_text,
                )
                for label_key, value in self._values.items()
            ]


class Gauge:
    """A metric that can go up or down.

    Example:
        gauge = Gauge("active_connections", "Joined connections")
        gauge.set(5)
        gauge.inc()  # Now 6
        gauge.dec()  # Now 5
    """

    def __init__(self, name: str, help_text: str = "") -> None:
        """Initialize gauge.

        Args:
            name: Metric name
            help_text: Description of the metric
        """
        self.name = name
        self.help_text = help_text
        self._values: dict[tuple[tuple[str, str], ...], float] = defaultdict(float)
        self._lock = Lock()

    def set(self, value: float, labels: dict[str, str] | None = None) -> None:
        """Set the gauge value.

        Args:
            value: Value to set
            labels: Optional labels
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            self._values[label_key] = value

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Increment the gauge.

        Args:
            value: Amount to increment
            labels: Optional labels
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            self._values[label_key] += value

    def dec(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Decrement the gauge.

        Args:
            value: Amount to decrement
            labels: Optional labels
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            self._values[label_key] -= value

    def get(self, labels: dict[str, str] | None = None) -> float:
        """Get current gauge value.

        Args:
            labels: Labels to filter by

        Returns:
            Current gauge value
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            return self._values.get(label_key, 0)

    def get_all(self) -> list[MetricValue]:
        """Get all gauge values with their labels.

        Returns:
            List of MetricValue objects
        """
        with self._lock:
            return [
                MetricValue(
                    name=self.name,
                    type=MetricType.GAUGE,
                    value=value,
                    labels=dict(label_key),
                    help_text=self.help_text,
                )
                for label_key, value in self._values.items()
            ]


class Histogram:
    """A histogram metric for tracking value distributions.

    Example:
        histogram = Histogram("submit_duration_seconds", "Submit duration")
        histogram.observe(0.5)  # Record an observation
        histogram.observe(1.2, labels={"role": "teacher"})
    """

    # Default buckets for timing (in seconds)
    DEFAULT_BUCKETS = (0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf"))

    def __init__(
        self,
        name: str,
        help_text: str = "",
        buckets: tuple[float, ...] | None = None,
    ) -> None:
        """Initialize histogram.

        Args:
            name: Metric name
            help_text: Description of the metric
            buckets: Bucket boundaries (defaults to timing buckets)
        """
        self.name = name
        self.help_text = help_text
        self._buckets = buckets or self.DEFAULT_BUCKETS
        self._observations: dict[tuple[tuple[str, str], ...], list[float]] = defaultdict(list)
        self._lock = Lock()

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        """Record an observation.

        Args:
            value: Value to record
            labels: Optional labels
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            self._observations[label_key].append(value)

    def get_stats(self, labels: dict[str, str] | None = None) -> dict[str, float]:
        """Get histogram statistics.

        Args:
            labels: Labels to filter by

        Returns:
            Dictionary with count, sum, min, max, mean
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            values = self._observations.get(label_key, [])

        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "mean": 0}

        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "mean": sum(values) / len(values),
        }

    def get_buckets(self, labels: dict[str, str] | None = None) -> dict[float, int]:
        """Get bucket counts.

        Args:
            labels: Labels to filter by

        Returns:
            Dictionary mapping bucket boundary to count
        """
        label_key = tuple(sorted(labels.items())) if labels else ()
        with self._lock:
            values = self._observations.get(label_key, [])

        bucket_counts: dict[float, int] = dict.fromkeys(self._buckets, 0)
        for value in values:
            for bucket in self._buckets:
                if value <= bucket:
                    bucket_counts[bucket] += 1
                    break

        return bucket_counts


class MetricsRegistry:
    """Registry for all chat service metrics.

    This is a singleton that holds all metrics and provides
    methods for exporting them.

    Example:
        registry = MetricsRegistry.get_instance()
        registry.messages_submitted.inc(labels={"role": "student"})
        metrics = registry.get_all_metrics()
    """

    _instance: MetricsRegistry | None = None
    _lock = Lock()

    def __init__(self) -> None:
        """Initialize the metrics registry."""
        # Submit path
        self.messages_submitted = Counter(
            "ticket_chat_messages_submitted_total",
            "Total messages persisted",
        )
        self.messages_rejected = Counter(
            "ticket_chat_messages_rejected_total",
            "Total submits rejected by validation or access checks",
        )

        # Conversations
        self.conversations_created = Counter(
            "ticket_chat_conversations_created_total",
            "Total conversations created",
        )
        self.conversation_conflicts = Counter(
            "ticket_chat_conversation_conflicts_total",
            "Total conversation creation races recovered",
        )

        # Ticket state
        self.status_transitions = Counter(
            "ticket_chat_status_transitions_total",
            "Total ticket status transitions",
        )
        self.transitions_skipped = Counter(
            "ticket_chat_transitions_skipped_total",
            "Total message-driven transitions skipped because the status had moved",
        )

        # Receipts
        self.receipts_recorded = Counter(
            "ticket_chat_receipts_recorded_total",
            "Total delivered/seen markers added",
        )

        # Broadcast
        self.events_published = Counter(
            "ticket_chat_events_published_total",
            "Total events published on the room channel",
        )
        self.broadcast_failures = Counter(
            "ticket_chat_broadcast_failures_total",
            "Total failed publishes",
        )
        self.connections_dropped = Counter(
            "ticket_chat_connections_dropped_total",
            "Total connections dropped for failed delivery",
        )

        # Subscriber side
        self.duplicates_suppressed = Counter(
            "ticket_chat_duplicates_suppressed_total",
            "Total re-delivered messages ignored by sessions",
        )

        # Durations
        self.submit_duration = Histogram(
            "ticket_chat_submit_duration_seconds",
            "Message submit duration in seconds",
        )

        self.active_connections = Gauge(
            "ticket_chat_active_connections",
            "Number of connections joined to rooms",
        )

        self._start_time = time.time()

    @classmethod
    def get_instance(cls) -> MetricsRegistry:
        """Get the singleton metrics registry instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next access starts from zero."""
        with cls._lock:
            cls._instance = None

    def get_uptime_seconds(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def _counters(self) -> list[Counter]:
        return [
            self.messages_submitted,
            self.messages_rejected,
            self.conversations_created,
            self.conversation_conflicts,
            self.status_transitions,
            self.transitions_skipped,
            self.receipts_recorded,
            self.events_published,
            self.broadcast_failures,
            self.connections_dropped,
            self.duplicates_suppressed,
        ]

    @staticmethod
    def _total(counter: Counter) -> float:
        return sum(m.value for m in counter.get_all())

    def get_all_metrics(self) -> dict[str, Any]:
        """Get all metrics as a dictionary, summed across labels."""
        return {
            "uptime_seconds": self.get_uptime_seconds(),
            "messages": {
                "submitted": self._total(self.messages_submitted),
                "rejected": self._total(self.messages_rejected),
                "duration_stats": self.submit_duration.get_stats(),
            },
            "conversations": {
                "created": self._total(self.conversations_created),
                "conflicts": self._total(self.conversation_conflicts),
            },
            "tickets": {
                "status_transitions": self._total(self.status_transitions),
                "transitions_skipped": self._total(self.transitions_skipped),
            },
            "receipts": {
                "recorded": self._total(self.receipts_recorded),
                "duplicates_suppressed": self._total(self.duplicates_suppressed),
            },
            "broadcast": {
                "published": self._total(self.events_published),
                "failures": self._total(self.broadcast_failures),
                "connections_dropped": self._total(self.connections_dropped),
                "active_connections": self.active_connections.get(),
            },
        }

    def to_prometheus_format(self) -> str:
        """Export metrics in Prometheus text format."""
        lines: list[str] = []

        for metric in [*self._counters(), self.active_connections]:
            kind = "gauge" if isinstance(metric, Gauge) else "counter"
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {kind}")
            for value in metric.get_all():
                if value.labels:
                    label_str = ",".join(f'{k}="{v}"' for k, v in value.labels.items())
                    lines.append(f"{metric.name}{{{label_str}}} {value.value}")
                else:
                    lines.append(f"{metric.name} {value.value}")

        lines.append("# HELP ticket_chat_uptime_seconds Service uptime in seconds")
        lines.append("# TYPE ticket_chat_uptime_seconds gauge")
        lines.append(f"ticket_chat_uptime_seconds {self.get_uptime_seconds()}")

        return "\n".join(lines)


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    return MetricsRegistry.get_instance()


class Timer:
    """Context manager for timing operations.

    Example:
        with Timer(metrics.submit_duration, labels={"role": "student"}):
            await store.append(...)
    """

    def __init__(
        self,
        histogram: Histogram,
        labels: dict[str, str] | None = None,
    ) -> None:
        self._histogram = histogram
        self._labels = labels
        self._start: float | None = None

    def __enter__(self) -> Timer:
        """Start timing."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        """Stop timing and record."""
        if self._start is not None:
            duration = time.perf_counter() - self._start
            self._histogram.observe(duration, labels=self._labels)
