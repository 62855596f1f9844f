from types import SimpleNamespace

import pytest
from azure.core.exceptions import ServiceRequestError
from azure.servicebus import TransportType
from prometheus_client import REGISTRY

from servicebus_utility.libs import servicebus
from servicebus_utility.libs.config import QueueConfig
from servicebus_utility.libs.exceptions import QueueTransportError
from servicebus_utility.libs.servicebus import QueueConnection, create_client, transport_for


@pytest.fixture
def sdk(monkeypatch):
    """Replace the SDK entry points with recording doubles."""
    state = SimpleNamespace(closed=[], clients=[], credentials=[], admin_calls=[], depth=3, admin_error=None)

    def closer(name):
        async def close():
            state.closed.append(name)

        return close

    class Client:
        def __init__(self, fully_qualified_namespace, credential, transport_type=None):
            self.namespace = fully_qualified_namespace
            self.credential = credential
            self.transport_type = transport_type
            self.connection_string = None
            self.close = closer("client")
            state.clients.append(self)

        @classmethod
        def from_connection_string(cls, conn_str, transport_type=None):
            client = cls(None, None, transport_type=transport_type)
            client.connection_string = conn_str
            return client

        def get_queue_sender(self, queue_name):
            return SimpleNamespace(queue_name=queue_name, close=closer("sender"))

        def get_queue_receiver(self, queue_name, max_wait_time=None):
            return SimpleNamespace(queue_name=queue_name, max_wait_time=max_wait_time, close=closer("receiver"))

    def credential():
        cred = SimpleNamespace(close=closer("credential"))
        state.credentials.append(cred)
        return cred

    class Admin:
        def __init__(self, fully_qualified_namespace=None, credential=None):
            self.source = (fully_qualified_namespace, credential)

        @classmethod
        def from_connection_string(cls, conn_str):
            admin = cls()
            admin.source = conn_str
            return admin

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            return None

        async def get_queue_runtime_properties(self, queue_name):
            state.admin_calls.append((self.source, queue_name))
            if state.admin_error is not None:
                raise state.admin_error
            return SimpleNamespace(active_message_count=state.depth)

    monkeypatch.setattr(servicebus, "ServiceBusClient", Client)
    monkeypatch.setattr(servicebus, "DefaultAzureCredential", credential)
    monkeypatch.setattr(servicebus, "ServiceBusAdministrationClient", Admin)
    return state


@pytest.fixture
def namespace_config() -> QueueConfig:
    return QueueConfig(namespace="my-ns", queue_name="orders", transport_type="AmqpWebSockets")


def test_transport_mapping():
    assert transport_for(QueueConfig(namespace="ns", queue_name="q")) == TransportType.Amqp
    assert (
        transport_for(QueueConfig(namespace="ns", queue_name="q", transport_type="amqp_websockets"))
        == TransportType.AmqpOverWebsocket
    )


def test_open_with_connection_string_uses_no_credential(sdk, queue_config):
    conn = QueueConnection.open(queue_config)

    (client,) = sdk.clients
    assert client.connection_string == queue_config.connection_string
    assert client.transport_type == TransportType.Amqp
    assert sdk.credentials == []
    assert conn.sender.queue_name == "queue.1"
    assert conn.receiver.queue_name == "queue.1"
    assert conn.receiver.max_wait_time == queue_config.receive_wait_seconds


def test_open_with_namespace_uses_default_credential(sdk, namespace_config):
    conn = QueueConnection.open(namespace_config)

    (client,) = sdk.clients
    assert client.connection_string is None
    assert client.namespace == "my-ns.servicebus.windows.net"
    assert client.credential is sdk.credentials[0]
    assert client.transport_type == TransportType.AmqpOverWebsocket
    assert conn.queue_name == "orders"


def test_create_client_prefers_given_credential(sdk, namespace_config):
    given = SimpleNamespace()

    client = create_client(namespace_config, given)

    assert client.credential is given
    assert sdk.credentials == []


@pytest.mark.asyncio
async def test_close_releases_links_then_client_then_credential(sdk, namespace_config):
    conn = QueueConnection.open(namespace_config)

    await conn.close()
    await conn.close()

    assert conn.closed is True
    assert sdk.closed == ["receiver", "sender", "client", "credential"]


@pytest.mark.asyncio
async def test_context_manager_closes_connection(sdk, queue_config):
    async with QueueConnection.open(queue_config) as conn:
        assert conn.closed is False

    assert conn.closed is True
    assert sdk.closed == ["receiver", "sender", "client"]


@pytest.mark.asyncio
async def test_queue_depth_reads_runtime_properties_and_sets_gauge(sdk, queue_config):
    sdk.depth = 7
    conn = QueueConnection.open(queue_config)

    assert await conn.queue_depth() == 7

    assert sdk.admin_calls == [(queue_config.connection_string, "queue.1")]
    assert REGISTRY.get_sample_value("servicebus_queue_depth", {"queue": "queue.1"}) == 7


@pytest.mark.asyncio
async def test_queue_depth_with_namespace_uses_shared_credential(sdk, namespace_config):
    conn = QueueConnection.open(namespace_config)

    await conn.queue_depth()

    ((source, queue),) = sdk.admin_calls
    assert source == ("my-ns.servicebus.windows.net", sdk.credentials[0])
    assert queue == "orders"


@pytest.mark.asyncio
async def test_queue_depth_failure_is_transport_error(sdk, queue_config):
    sdk.admin_error = ServiceRequestError("management endpoint unreachable")
    conn = QueueConnection.open(queue_config)

    with pytest.raises(QueueTransportError) as info:
        await conn.queue_depth()

    assert info.value.operation == "queue depth"
    assert isinstance(info.value.error, ServiceRequestError)
