"""Typed gateway over a single Service Bus queue.

``QueueGateway`` wraps one sender and one receiver bound to the same queue
and exposes publish / receive / peek in two flavours:

- Raw: the body is returned as UTF-8 text
- Typed: the body is parsed as JSON into a type supplied by the caller
  (``model=MessagePayload``, ``model=list[int]``, ...)

Receive operations complete (remove) every fetched message before returning
it. Peek operations never settle anything. Broker failures surface as
``QueueTransportError``; bodies that do not fit the requested type surface as
``MessageDeserializationError``. Nothing is retried here.

Example:
    >>> gateway = QueueGateway.from_connection(QueueConnection.open(load_queue_config()))
    >>> await gateway.publish(MessagePayload(text="hello", tags=["a", "b"]))
    >>> envelope = await gateway.receive_one(model=MessagePayload)
    >>> envelope.body.text
    'hello'
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence, Type, TypeVar

from azure.core.exceptions import AzureError
from azure.servicebus import ServiceBusMessage

from .codec import decode, decode_text, encode, target_name
from .exceptions import (
    InvalidRequestError,
    MessageDeserializationError,
    QueueTransportError,
    ServiceBusUtilityError,
)
from .logging import get_logger
from .metrics import (
    DESERIALIZATION_FAILED_TOTAL,
    QUEUE_MESSAGES_TOTAL,
    QUEUE_OPERATION_LATENCY_SECONDS,
    QUEUE_OPERATION_TOTAL,
)
from .models import ReceivedEnvelope
from .servicebus import QueueConnection
from .tracing import extract_context_from_properties, get_tracer, inject_properties


T = TypeVar("T")

logger = get_logger(__name__)


def read_body(message: Any) -> bytes:
    """Return the body of a received message as bytes.

    Data bodies arrive as an iterable of byte sections and are joined; value
    bodies are JSON encoded.
    """
    body = getattr(message, "body", None)
    if body is None:
        return b""
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, Iterable) and not isinstance(body, Mapping):
        parts = list(body)
        if all(isinstance(part, (bytes, bytearray, memoryview)) for part in parts):
            return b"".join(bytes(part) for part in parts)
        body = parts
    return encode(body)


class QueueGateway:
    """Publish, receive and peek on one queue with optional typed bodies.

    Properties:
    - `sender` / `receiver`: SDK handles bound to the queue, shared by all callers
    - `queue_name`: used for logging, metrics and span attributes
    - `receive_wait_seconds`: how long a receive waits before returning nothing
      (``None`` defers to the receiver's own ``max_wait_time``)
    """

    def __init__(
        self,
        sender: Any,
        receiver: Any,
        queue_name: str = "",
        receive_wait_seconds: Optional[float] = None,
    ):
        self.sender = sender
        self.receiver = receiver
        self.queue_name = queue_name
        self.receive_wait_seconds = receive_wait_seconds
        self._tracer = get_tracer("servicebus-utility.gateway")

    @classmethod
    def from_connection(cls, connection: QueueConnection) -> "QueueGateway":
        return cls(
            connection.sender,
            connection.receiver,
            queue_name=connection.queue_name,
            receive_wait_seconds=connection.config.receive_wait_seconds,
        )

    # -------------------------
    # Publishing
    # -------------------------

    async def publish(self, payload: Any) -> None:
        """Serialize ``payload`` to UTF-8 JSON and send it as a single message."""
        logger.info("Publishing typed payload: %s", payload)
        await self._send(encode(payload), content_type="application/json")

    async def publish_text(self, text: str) -> None:
        """Send ``text`` verbatim as the message body."""
        logger.info("Publishing string payload: %s", text)
        await self._send(text.encode("utf-8"), content_type="text/plain")

    async def _send(self, body: bytes, content_type: str) -> None:
        async with self._operation("send"):
            message = ServiceBusMessage(
                body,
                content_type=content_type,
                application_properties=inject_properties() or None,
            )
            await self.sender.send_messages(message)
            QUEUE_MESSAGES_TOTAL.labels(operation="send").inc()

    # -------------------------
    # Destructive reads
    # -------------------------

    async def receive_one(self, model: Optional[Type[T]] = None) -> Optional[ReceivedEnvelope[Any]]:
        """Receive and complete the next message, or return ``None`` on timeout.

        The body is decoded before completion; a body that does not decode is
        abandoned back to the queue and the error propagates.
        """
        logger.info("Receiving the next message on the queue")
        async with self._operation("receive"):
            received = await self.receiver.receive_messages(
                max_message_count=1, max_wait_time=self.receive_wait_seconds
            )
            if not received:
                logger.info("No message was found in the queue")
                return None
            message = received[0]
            envelopes = await self._decode_or_abandon([message], model)
            logger.info("Completing message and removing from the queue")
            await self._complete(message)
            QUEUE_MESSAGES_TOTAL.labels(operation="receive").inc()
            return envelopes[0]

    async def receive_many(self, max_count: int, model: Optional[Type[T]] = None) -> list[ReceivedEnvelope[Any]]:
        """Receive and complete up to ``max_count`` messages.

        Returns whatever the broker delivered within the wait time, in broker
        order; an empty queue yields an empty list. Every body is decoded
        before anything is completed, so a decode failure leaves the whole
        batch on the queue.
        """
        _require_positive(max_count)
        logger.info("Receiving the next %d messages on the queue", max_count)
        async with self._operation("receive"):
            received = await self.receiver.receive_messages(
                max_message_count=max_count, max_wait_time=self.receive_wait_seconds
            )
            received = list(received or [])
            logger.info("Received %d messages", len(received))
            envelopes = await self._decode_or_abandon(received, model)
            for message in received:
                await self._complete(message)
            QUEUE_MESSAGES_TOTAL.labels(operation="receive").inc(len(received))
            return envelopes

    async def _complete(self, message: Any) -> None:
        try:
            await self.receiver.complete_message(message)
        except AzureError as exc:
            logger.error(
                "Failed to complete message %s; it may be redelivered",
                getattr(message, "sequence_number", None),
            )
            raise QueueTransportError("complete", exc) from exc

    async def _decode_or_abandon(
        self, messages: Sequence[Any], model: Optional[Type[T]]
    ) -> list[ReceivedEnvelope[Any]]:
        try:
            return self._envelopes(messages, model)
        except MessageDeserializationError:
            for message in messages:
                await self._abandon(message)
            raise

    async def _abandon(self, message: Any) -> None:
        try:
            await self.receiver.abandon_message(message)
        except AzureError as exc:
            # The lock still expires and the broker redelivers the message
            logger.warning(
                "Failed to abandon message %s: %s", getattr(message, "sequence_number", None), exc
            )

    # -------------------------
    # Non-destructive reads
    # -------------------------

    async def peek_one(
        self, sequence: Optional[int] = None, model: Optional[Type[T]] = None
    ) -> Optional[ReceivedEnvelope[Any]]:
        """Peek the message at ``sequence`` without settling it.

        Without a sequence the SDK's default applies: continue after the last
        message this receiver peeked or received, starting from the oldest.
        With a sequence, ``None`` is returned unless that exact message exists.
        """
        if sequence is not None:
            _require_sequence(sequence)
        logger.info("Peeking message on the queue")
        async with self._operation("peek"):
            if sequence is None:
                peeked = await self.receiver.peek_messages(max_message_count=1)
            else:
                peeked = await self.receiver.peek_messages(max_message_count=1, sequence_number=sequence)
            if not peeked:
                logger.info("No message was found in the queue")
                return None
            message = peeked[0]
            if sequence is not None and getattr(message, "sequence_number", None) != sequence:
                logger.info("No message was found at sequence %d", sequence)
                return None
            QUEUE_MESSAGES_TOTAL.labels(operation="peek").inc()
            return self._envelope(message, model)

    async def peek_many(
        self, max_count: int, start_sequence: int, model: Optional[Type[T]] = None
    ) -> list[ReceivedEnvelope[Any]]:
        """Peek up to ``max_count`` messages starting at ``start_sequence``."""
        _require_positive(max_count)
        _require_sequence(start_sequence)
        logger.info("Peeking messages on the queue")
        async with self._operation("peek"):
            peeked = await self.receiver.peek_messages(
                max_message_count=max_count, sequence_number=start_sequence
            )
            peeked = list(peeked or [])
            logger.info("Peeked at %d messages", len(peeked))
            QUEUE_MESSAGES_TOTAL.labels(operation="peek").inc(len(peeked))
            return self._envelopes(peeked, model)

    # -------------------------
    # Helpers
    # -------------------------

    def _envelopes(self, messages: Sequence[Any], model: Optional[Type[T]]) -> list[ReceivedEnvelope[Any]]:
        return [self._envelope(message, model) for message in messages]

    def _envelope(self, message: Any, model: Optional[Type[T]]) -> ReceivedEnvelope[Any]:
        raw = read_body(message)
        sequence_number = getattr(message, "sequence_number", None)
        parent = extract_context_from_properties(getattr(message, "application_properties", None))
        with self._tracer.start_as_current_span("servicebus.message", context=parent) as span:
            if sequence_number is not None:
                span.set_attribute("messaging.servicebus.sequence_number", sequence_number)
            if model is None:
                return ReceivedEnvelope(message=message, raw_body=raw, body=decode_text(raw))
            try:
                body = decode(raw, model)
            except MessageDeserializationError as exc:
                exc.sequence_number = sequence_number
                DESERIALIZATION_FAILED_TOTAL.labels(target=exc.target).inc()
                logger.warning(
                    "Message %s could not be decoded as %s", sequence_number, target_name(model)
                )
                raise
            return ReceivedEnvelope(message=message, raw_body=raw, body=body)

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[None]:
        """Time, trace and count one broker operation, translating SDK errors."""
        start = time.perf_counter()
        with self._tracer.start_as_current_span(f"servicebus.{name}") as span:
            span.set_attribute("messaging.system", "servicebus")
            span.set_attribute("messaging.destination.name", self.queue_name)
            try:
                yield
            except AzureError as exc:
                QUEUE_OPERATION_TOTAL.labels(operation=name, result="error").inc()
                span.record_exception(exc)
                logger.error("Service Bus %s failed on queue '%s': %s", name, self.queue_name, exc)
                raise QueueTransportError(name, exc) from exc
            except MessageDeserializationError as exc:
                QUEUE_OPERATION_TOTAL.labels(operation=name, result="invalid").inc()
                span.record_exception(exc)
                raise
            except ServiceBusUtilityError as exc:
                QUEUE_OPERATION_TOTAL.labels(operation=name, result="error").inc()
                span.record_exception(exc)
                raise
            else:
                QUEUE_OPERATION_TOTAL.labels(operation=name, result="ok").inc()
            finally:
                QUEUE_OPERATION_LATENCY_SECONDS.labels(operation=name).observe(time.perf_counter() - start)


def _require_positive(max_count: int) -> None:
    if int(max_count) < 1:
        raise InvalidRequestError("max_count must be 1 or greater")


def _require_sequence(sequence: int) -> None:
    # The broker reads 0 as "continue from the last peeked message"
    if int(sequence) < 1:
        raise InvalidRequestError("sequence numbers start at 1")
