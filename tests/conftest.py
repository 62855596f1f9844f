import datetime
import sys
import uuid
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Optional

import pytest
from azure.servicebus.exceptions import ServiceBusError

# Allow running the tests from a plain checkout without installing the package
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from servicebus_utility.libs.config import QueueConfig  # noqa: E402
from servicebus_utility.libs.exceptions import QueueTransportError  # noqa: E402
from servicebus_utility.libs.gateway import QueueGateway, read_body  # noqa: E402


class FakeReceivedMessage(SimpleNamespace):
    """Stand-in for ``ServiceBusReceivedMessage`` with a data body."""

    def __init__(self, body: bytes, sequence_number: int, content_type: Optional[str] = None,
                 application_properties: Optional[dict] = None):
        super().__init__(
            body=iter([body]),
            sequence_number=sequence_number,
            message_id=uuid.uuid4().hex,
            enqueued_time_utc=datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc),
            delivery_count=0,
            content_type=content_type,
            correlation_id=None,
            subject=None,
            application_properties=application_properties,
            lock_token=None,
        )
        self._raw = body

    def fresh(self) -> "FakeReceivedMessage":
        """Return a new delivery of the same message (bodies are single-use iterators)."""
        return FakeReceivedMessage(self._raw, self.sequence_number, self.content_type,
                                   self.application_properties)


class FakeQueue:
    """In-memory queue playing both the sender and the receiver.

    Peeking without a sequence continues after the last peeked message, like
    the SDK receiver does.
    """

    def __init__(self) -> None:
        self.active: list[FakeReceivedMessage] = []
        self.locked: dict[int, FakeReceivedMessage] = {}
        self.completed: list[int] = []
        self.abandoned: list[int] = []
        self._next_sequence = 1
        self._peek_cursor = 1
        self.fail_send = False
        self.fail_receive = False
        self.fail_complete = False

    def __len__(self) -> int:
        return len(self.active) + len(self.locked)

    def put_raw(self, body: bytes) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        self.active.append(FakeReceivedMessage(body, sequence))
        return sequence

    # sender
    async def send_messages(self, message: Any) -> None:
        if self.fail_send:
            raise ServiceBusError("send failed")
        sequence = self.put_raw(read_body(message))
        self.active[-1].content_type = getattr(message, "content_type", None)
        self.active[-1].application_properties = getattr(message, "application_properties", None)
        assert self.active[-1].sequence_number == sequence

    # receiver
    async def receive_messages(self, max_message_count: int = 1, max_wait_time: Any = None):
        if self.fail_receive:
            raise ServiceBusError("receive failed")
        taken = self.active[:max_message_count]
        self.active = self.active[max_message_count:]
        delivered = []
        for message in taken:
            self.locked[message.sequence_number] = message
            delivery = message.fresh()
            delivery.lock_token = uuid.uuid4()
            delivery.delivery_count = 1
            delivered.append(delivery)
        return delivered

    async def complete_message(self, message: Any) -> None:
        if self.fail_complete:
            raise ServiceBusError("lock lost")
        self.locked.pop(message.sequence_number)
        self.completed.append(message.sequence_number)

    async def abandon_message(self, message: Any) -> None:
        original = self.locked.pop(message.sequence_number)
        self.abandoned.append(message.sequence_number)
        self.active = sorted(self.active + [original], key=lambda m: m.sequence_number)

    async def peek_messages(self, max_message_count: int = 1, sequence_number: int = 0):
        start = sequence_number or self._peek_cursor
        pending = sorted(list(self.active) + list(self.locked.values()), key=lambda m: m.sequence_number)
        found = [m.fresh() for m in pending if m.sequence_number >= start][:max_message_count]
        if found:
            self._peek_cursor = found[-1].sequence_number + 1
        return found

    async def close(self) -> None:
        pass


class FakeConnection:
    """Duck-typed ``QueueConnection`` over a ``FakeQueue``."""

    def __init__(self, config: QueueConfig, queue: FakeQueue):
        self.config = config
        self.queue = queue
        self.sender = queue
        self.receiver = queue
        self.closed = False
        self.fail_depth = False

    @property
    def queue_name(self) -> str:
        return self.config.queue_name

    async def queue_depth(self) -> int:
        if self.fail_depth:
            raise QueueTransportError("queue depth", ServiceBusError("management link down"))
        return len(self.queue)

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeConnection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


@pytest.fixture(autouse=True)
def _clean_servicebus_env(monkeypatch):
    for name in (
        "SERVICEBUS_NAMESPACE",
        "SERVICEBUS_CONNECTION_STRING",
        "SERVICEBUS_QUEUE_NAME",
        "SERVICEBUS_TRANSPORT_TYPE",
        "SERVICEBUS_RECEIVE_WAIT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def queue_config() -> QueueConfig:
    return QueueConfig(
        connection_string="Endpoint=sb://localhost;SharedAccessKeyName=RootManageSharedAccessKey;"
                          "SharedAccessKey=SAS_KEY_VALUE;UseDevelopmentEmulator=true;",
        queue_name="queue.1",
    )


@pytest.fixture
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def gateway(fake_queue: FakeQueue) -> QueueGateway:
    return QueueGateway(fake_queue, fake_queue, queue_name="queue.1", receive_wait_seconds=0.1)


@pytest.fixture
def fake_connection(queue_config: QueueConfig, fake_queue: FakeQueue) -> FakeConnection:
    return FakeConnection(queue_config, fake_queue)
