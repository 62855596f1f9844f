"""
Configuration settings for the Service Bus utility.

Two settings objects are loaded from the environment (and a ``.env`` file):

- ``QueueConfig``: where the queue lives and how to reach it
  (``SERVICEBUS_*`` variables)
- ``Settings``: application-level knobs such as logging and CORS

Examples:
- Point at the local Service Bus emulator:
  ```bash
  export SERVICEBUS_CONNECTION_STRING="Endpoint=sb://localhost;SharedAccessKeyName=RootManageSharedAccessKey;SharedAccessKey=SAS_KEY_VALUE;UseDevelopmentEmulator=true;"
  export SERVICEBUS_QUEUE_NAME=queue.1
  ```
- Use a namespace with Azure AD credentials over websockets:
  ```bash
  export SERVICEBUS_NAMESPACE=my-namespace.servicebus.windows.net
  export SERVICEBUS_QUEUE_NAME=orders
  export SERVICEBUS_TRANSPORT_TYPE=AmqpWebSockets
  ```
"""

import logging
from functools import lru_cache
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

TransportKind = Literal["amqp", "amqp_websockets"]
EnvName = Literal["development", "staging", "production"]

# Accepts both the Python SDK and the .NET SDK spellings
_TRANSPORT_ALIASES = {
    "amqp": "amqp",
    "amqptcp": "amqp",
    "tcp": "amqp",
    "amqpwebsockets": "amqp_websockets",
    "amqpoverwebsocket": "amqp_websockets",
    "websockets": "amqp_websockets",
    "websocket": "amqp_websockets",
}


class QueueConfig(BaseSettings):
    """Connection details for the single queue this service talks to.

    At least one of ``namespace`` or ``connection_string`` must be provided.
    When both are set the connection string wins.
    """

    model_config = SettingsConfigDict(
        env_prefix="SERVICEBUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    namespace: str = ""
    connection_string: str = ""
    queue_name: str = ""
    transport_type: TransportKind = "amqp"
    # Seconds a receive call waits for a message before returning nothing
    receive_wait_seconds: Optional[float] = Field(default=5.0, gt=0)

    @field_validator("namespace", "connection_string", "queue_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("transport_type", mode="before")
    @classmethod
    def _normalize_transport(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace("_", "").replace("-", "")
            return _TRANSPORT_ALIASES.get(key, value)
        return value

    @model_validator(mode="after")
    def _require_endpoint(self) -> "QueueConfig":
        if not self.namespace and not self.connection_string:
            raise ValueError("Service Bus configuration requires a namespace or a connection string")
        if not self.queue_name:
            raise ValueError("Service Bus configuration requires a queue name")
        return self

    @property
    def fully_qualified_namespace(self) -> str:
        """Return the namespace host, appending the public cloud suffix when omitted."""
        host = self.namespace
        if host.startswith("sb://"):
            host = host[len("sb://"):]
        host = host.rstrip("/")
        if host and "." not in host:
            host = f"{host}.servicebus.windows.net"
        return host


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Service Bus Utility"
    environment: EnvName = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # CORS Configuration
    allowed_origins: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    service_name: str = "servicebus-utility"

    def is_prod(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def load_queue_config(**overrides) -> QueueConfig:
    """Load and validate the queue configuration.

    Keyword overrides take precedence over the environment, which is handy for
    tests and the CLI.

    Raises:
        ConfigurationError: If neither namespace nor connection string is set,
            the queue name is missing, or any value fails validation.
    """
    try:
        return QueueConfig(**overrides)
    except ValidationError as exc:
        messages = "; ".join(err["msg"] for err in exc.errors())
        error = f"Service Bus configuration is invalid. Unable to use the Service Bus APIs: {messages}"
        logger.error(error)
        raise ConfigurationError(error) from exc
