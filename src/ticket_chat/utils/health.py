"""Health check utilities for monitoring service health.

This module provides health check capabilities for the chat service:
- Check message store responsiveness
- Check ticket store reachability
- Report broadcast channel room and connection counts
- Generate health status reports
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from ticket_chat.interfaces.broadcast import BroadcastChannel
    from ticket_chat.interfaces.store import MessageStore
    from ticket_chat.interfaces.tickets import TicketStore

log = structlog.get_logger()


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str
    latency_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Overall health report."""

    healthy: bool
    status: HealthStatus
    timestamp: datetime
    checks: list[CheckResult]
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "healthy": self.healthy,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "details": c.details,
                }
                for c in self.checks
            ],
            "details": self.details,
        }


class HealthChecker:
    """Performs health checks on the chat service collaborators.

    A ticket store without a ``ping`` method is reported as UNKNOWN, which
    degrades but does not fail the overall report.

    Example:
        checker = HealthChecker(store, tickets, channel)
        report = await checker.run_all_checks()
        if not report.healthy:
            print(f"Issues detected: {report.details}")
    """

    def __init__(
        self,
        store: MessageStore,
        tickets: TicketStore,
        channel: BroadcastChannel,
    ) -> None:
        self._store = store
        self._tickets = tickets
        self._channel = channel

    async def run_all_checks(self) -> HealthReport:
        """Run all health checks and return a report."""
        log.info("health_check_start")
        start_time = datetime.now(UTC)

        checks: list[CheckResult] = []

        results = await asyncio.gather(
            self._check_message_store(),
            self._check_ticket_store(),
            self._check_broadcast(),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException):
                checks.append(
                    CheckResult(
                        name="unknown",
                        status=HealthStatus.UNHEALTHY,
                        message=f"Check failed with exception: {result}",
                    )
                )
            elif isinstance(result, CheckResult):
                checks.append(result)

        if all(c.status == HealthStatus.HEALTHY for c in checks):
            overall_status = HealthStatus.HEALTHY
            healthy = True
        elif any(c.status == HealthStatus.UNHEALTHY for c in checks):
            overall_status = HealthStatus.UNHEALTHY
            healthy = False
        else:
            overall_status = HealthStatus.DEGRADED
            healthy = True

        report = HealthReport(
            healthy=healthy,
            status=overall_status,
            timestamp=start_time,
            checks=checks,
            details={
                "total_checks": len(checks),
                "healthy_checks": sum(1 for c in checks if c.status == HealthStatus.HEALTHY),
                "degraded_checks": sum(
                    1
                    for c in checks
                    if c.status in (HealthStatus.DEGRADED, HealthStatus.UNKNOWN)
                ),
                "unhealthy_checks": sum(1 for c in checks if c.status == HealthStatus.UNHEALTHY),
            },
        )

        log.info(
            "health_check_complete",
            healthy=healthy,
            status=overall_status.value,
            checks_run=len(checks),
        )

        return report

    async def _check_message_store(self) -> CheckResult:
        start = time.monotonic()
        try:
            conversations = await self._store.list_conversations()
        except Exception as e:
            return CheckResult(
                name="message_store",
                status=HealthStatus.UNHEALTHY,
                message=f"Message store check failed: {e}",
            )
        return CheckResult(
            name="message_store",
            status=HealthStatus.HEALTHY,
            message="Message store responding",
            latency_ms=(time.monotonic() - start) * 1000,
            details={"conversations": len(conversations)},
        )

    async def _check_ticket_store(self) -> CheckResult:
        ping = getattr(self._tickets, "ping", None)
        if ping is None:
            return CheckResult(
                name="ticket_store",
                status=HealthStatus.UNKNOWN,
                message="Ticket store does not support health checks",
            )

        start = time.monotonic()
        try:
            reachable = await ping()
        except Exception as e:
            return CheckResult(
                name="ticket_store",
                status=HealthStatus.UNHEALTHY,
                message=f"Ticket store check failed: {e}",
            )
        latency = (time.monotonic() - start) * 1000

        if reachable:
            return CheckResult(
                name="ticket_store",
                status=HealthStatus.HEALTHY,
                message="Ticket store reachable",
                latency_ms=latency,
            )
        return CheckResult(
            name="ticket_store",
            status=HealthStatus.UNHEALTHY,
            message="Ticket store unreachable",
            latency_ms=latency,
        )

    async def _check_broadcast(self) -> CheckResult:
        rooms_fn = getattr(self._channel, "rooms", None)
        rooms = rooms_fn() if rooms_fn is not None else []
        connections = sum(len(self._channel.members(room)) for room in rooms)
        return CheckResult(
            name="broadcast",
            status=HealthStatus.HEALTHY,
            message="Broadcast channel available",
            details={"rooms": len(rooms), "connections": connections},
        )


async def write_health_file(report: HealthReport, path: Path) -> None:
    """Write health report to a file for external monitoring.

    Args:
        report: Health report to write
        path: File path to write to
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(report.to_dict(), indent=2))
        log.debug("health_file_written", path=str(path))
    except OSError as e:
        log.error("health_file_write_error", path=str(path), error=str(e))
