"""Tests for the health check module."""

import json
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from ticket_chat.adapters.broadcast.memory import InMemoryBroadcastChannel, QueueConnection
from ticket_chat.adapters.store.memory import InMemoryMessageStore
from ticket_chat.adapters.tickets.memory import InMemoryTicketStore
from ticket_chat.utils.health import (
    CheckResult,
    HealthChecker,
    HealthReport,
    HealthStatus,
    write_health_file,
)


class TestHealthReport:
    """Tests for HealthReport."""

    def test_to_dict(self) -> None:
        """Test report serialization."""
        report = HealthReport(
            healthy=True,
            status=HealthStatus.HEALTHY,
            timestamp=datetime(2024, 5, 1, tzinfo=UTC),
            checks=[CheckResult(name="x", status=HealthStatus.HEALTHY, message="ok")],
        )
        data = report.to_dict()
        assert data["status"] == "healthy"
        assert data["checks"][0]["name"] == "x"
        assert data["timestamp"].startswith("2024-05-01")


class TestHealthChecker:
    """Tests for HealthChecker."""

    @pytest.mark.asyncio
    async def test_all_healthy(
        self,
        store: InMemoryMessageStore,
        tickets: InMemoryTicketStore,
        channel: InMemoryBroadcastChannel,
    ) -> None:
        """Test in-memory collaborators are healthy."""
        await store.create_conversation("T1", "S1", "P1")
        await channel.join("T1", QueueConnection("S1"))

        report = await HealthChecker(store, tickets, channel).run_all_checks()

        assert report.healthy
        assert report.status == HealthStatus.HEALTHY
        by_name = {c.name: c for c in report.checks}
        assert by_name["message_store"].details == {"conversations": 1}
        assert by_name["broadcast"].details == {"rooms": 1, "connections": 1}

    @pytest.mark.asyncio
    async def test_unreachable_ticket_store(
        self, store: InMemoryMessageStore, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test a failed ping makes the report unhealthy."""
        tickets = MagicMock()
        tickets.ping = AsyncMock(return_value=False)

        report = await HealthChecker(store, tickets, channel).run_all_checks()

        assert not report.healthy
        assert report.status == HealthStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_ticket_store_without_ping_degrades(
        self, store: InMemoryMessageStore, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test a ticket store without a ping degrades the report."""
        tickets = MagicMock(spec=["get_ticket", "update_status"])

        report = await HealthChecker(store, tickets, channel).run_all_checks()

        assert report.healthy
        assert report.status == HealthStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_failing_message_store(
        self, tickets: InMemoryTicketStore, channel: InMemoryBroadcastChannel
    ) -> None:
        """Test a store error is reported as unhealthy."""
        store = MagicMock()
        store.list_conversations = AsyncMock(side_effect=RuntimeError("db down"))

        report = await HealthChecker(store, tickets, channel).run_all_checks()

        message_store = next(c for c in report.checks if c.name == "message_store")
        assert message_store.status == HealthStatus.UNHEALTHY
        assert "db down" in message_store.message


class TestWriteHealthFile:
    """Tests for write_health_file."""

    @pytest.mark.asyncio
    async def test_writes_json(self, tmp_path: Path) -> None:
        """Test the report is written as JSON."""
        report = HealthReport(
            healthy=True,
            status=HealthStatus.HEALTHY,
            timestamp=datetime.now(UTC),
            checks=[],
        )
        path = tmp_path / "health" / "status.json"

        await write_health_file(report, path)

        assert json.loads(path.read_text())["healthy"] is True
