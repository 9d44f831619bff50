"""Shared test fixtures for ticket-chat."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from typing import Any

import pytest

from ticket_chat.adapters.broadcast.memory import InMemoryBroadcastChannel, QueueConnection
from ticket_chat.adapters.store.memory import InMemoryMessageStore
from ticket_chat.adapters.tickets.memory import InMemoryTicketStore
from ticket_chat.config.schema import ChatServiceConfig, TypingConfig
from ticket_chat.core.coordinator import ChatCoordinator
from ticket_chat.models.events import RoomEvent
from ticket_chat.models.message import Message
from ticket_chat.models.principal import Principal, Role
from ticket_chat.models.ticket import Ticket, TicketStatus
from ticket_chat.utils.metrics import MetricsRegistry


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Give every test a fresh metrics registry."""
    MetricsRegistry.reset()
    yield
    MetricsRegistry.reset()


@pytest.fixture
def student() -> Principal:
    return Principal(id="S1", role=Role.STUDENT, name="Sam Student")


@pytest.fixture
def teacher() -> Principal:
    return Principal(id="P1", role=Role.TEACHER, name="Pat Teacher")


@pytest.fixture
def other_teacher() -> Principal:
    return Principal(id="P2", role=Role.TEACHER)


@pytest.fixture
def other_student() -> Principal:
    return Principal(id="S2", role=Role.STUDENT)


@pytest.fixture
def admin() -> Principal:
    return Principal(id="A1", role=Role.ADMIN)


@pytest.fixture
def ticket() -> Ticket:
    """An open ticket assigned to teacher P1."""
    return Ticket(
        ticket_id="T1",
        student_id="S1",
        teacher_id="P1",
        status=TicketStatus.OPEN,
        title="Loop does not terminate",
        category="Programming",
    )


@pytest.fixture
def tickets(ticket: Ticket) -> InMemoryTicketStore:
    return InMemoryTicketStore([ticket])


@pytest.fixture
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def channel() -> InMemoryBroadcastChannel:
    return InMemoryBroadcastChannel()


@pytest.fixture
def config() -> ChatServiceConfig:
    """Defaults with typing throttle disabled so tests are time independent."""
    return ChatServiceConfig(typing=TypingConfig(min_interval=0))


@pytest.fixture
def coordinator(
    store: InMemoryMessageStore,
    tickets: InMemoryTicketStore,
    channel: InMemoryBroadcastChannel,
    config: ChatServiceConfig,
) -> ChatCoordinator:
    return ChatCoordinator(store, tickets, channel, config)


@pytest.fixture
def student_conn() -> QueueConnection:
    return QueueConnection("S1", connection_id="student-conn")


@pytest.fixture
def teacher_conn() -> QueueConnection:
    return QueueConnection("P1", connection_id="teacher-conn")


@pytest.fixture
def drain() -> Callable[[QueueConnection], list[RoomEvent]]:
    """Return a helper that pops every buffered event from a connection."""

    def _drain(connection: QueueConnection) -> list[RoomEvent]:
        events = []
        while (event := connection.get_nowait()) is not None:
            events.append(event)
        return events

    return _drain


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Return a factory for standalone messages."""

    def _make(**overrides: Any) -> Message:
        fields: dict[str, Any] = {
            "message_id": "m1",
            "conversation_id": "c1",
            "sender_id": "S1",
            "body": "hello",
            "created_at": datetime(2024, 5, 1, 9, 30, tzinfo=UTC),
            "seq": 1,
        }
        fields.update(overrides)
        return Message(**fields)

    return _make
