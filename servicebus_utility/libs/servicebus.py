"""Azure Service Bus helpers for connections and queue inspection.

This module wraps ``azure.servicebus.aio`` to provide a consistent interface for:
- Building a client from either a connection string or a namespace plus
  Azure AD credentials, over AMQP/TCP or AMQP/websockets
- Owning one sender and one receiver bound to the configured queue
- Reading the queue's active message count through the administration API

The SDK opens AMQP links lazily and recovers them itself; nothing here
reconnects or retries.

Example:
    >>> conn = QueueConnection.open(load_queue_config())
    >>> async with conn:
    ...     await conn.sender.send_messages(ServiceBusMessage("hello"))
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from azure.core.exceptions import AzureError
from azure.identity.aio import DefaultAzureCredential
from azure.servicebus import TransportType
from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver, ServiceBusSender
from azure.servicebus.aio.management import ServiceBusAdministrationClient

from .config import QueueConfig
from .exceptions import QueueTransportError
from .metrics import QUEUE_DEPTH


logger = logging.getLogger(__name__)

_TRANSPORTS = {
    "amqp": TransportType.Amqp,
    "amqp_websockets": TransportType.AmqpOverWebsocket,
}


def transport_for(config: QueueConfig) -> TransportType:
    """Map the configured transport kind to the SDK's ``TransportType``."""
    return _TRANSPORTS[config.transport_type]


def create_client(config: QueueConfig, credential: Any = None) -> ServiceBusClient:
    """Create a ``ServiceBusClient`` for the configured endpoint.

    A connection string takes precedence. Otherwise the namespace is used with
    ``credential`` (``DefaultAzureCredential`` when not supplied).
    """
    transport_type = transport_for(config)
    if config.connection_string:
        return ServiceBusClient.from_connection_string(
            config.connection_string, transport_type=transport_type
        )
    return ServiceBusClient(
        config.fully_qualified_namespace,
        credential or DefaultAzureCredential(),
        transport_type=transport_type,
    )


class QueueConnection:
    """One client, one sender and one receiver bound to a single queue.

    Construct once at process start via ``QueueConnection.open`` and share it;
    the SDK sender/receiver are safe for concurrent use. ``close`` releases the
    links, the client and any credential created here.
    """

    def __init__(
        self,
        config: QueueConfig,
        client: ServiceBusClient,
        sender: ServiceBusSender,
        receiver: ServiceBusReceiver,
        credential: Any = None,
    ):
        self.config = config
        self.client = client
        self.sender = sender
        self.receiver = receiver
        self._credential = credential
        self._closed = False

    @property
    def queue_name(self) -> str:
        return self.config.queue_name

    @property
    def closed(self) -> bool:
        return self._closed

    @classmethod
    def open(cls, config: QueueConfig) -> "QueueConnection":
        credential = None if config.connection_string else DefaultAzureCredential()
        client = create_client(config, credential)
        sender = client.get_queue_sender(queue_name=config.queue_name)
        receiver = client.get_queue_receiver(
            queue_name=config.queue_name,
            max_wait_time=config.receive_wait_seconds,
        )
        logger.info(
            "Service Bus connection created for queue '%s' (transport=%s, auth=%s)",
            config.queue_name,
            config.transport_type,
            "connection string" if config.connection_string else "namespace credential",
        )
        return cls(config, client, sender, receiver, credential)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.receiver.close()
        await self.sender.close()
        await self.client.close()
        if self._credential is not None:
            await self._credential.close()
        logger.info("Service Bus connection for queue '%s' closed", self.queue_name)

    async def __aenter__(self) -> "QueueConnection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _admin_client(self) -> ServiceBusAdministrationClient:
        if self.config.connection_string:
            return ServiceBusAdministrationClient.from_connection_string(self.config.connection_string)
        return ServiceBusAdministrationClient(self.config.fully_qualified_namespace, self._credential)

    async def queue_depth(self) -> Optional[int]:
        """Return the queue's active message count and record it as a gauge.

        Raises:
            QueueTransportError: If the administration API call fails.
        """
        try:
            async with self._admin_client() as admin:
                props = await admin.get_queue_runtime_properties(self.queue_name)
        except AzureError as exc:
            raise QueueTransportError("queue depth", exc) from exc
        depth = props.active_message_count
        if depth is not None:
            QUEUE_DEPTH.labels(queue=self.queue_name).set(depth)
        return depth
