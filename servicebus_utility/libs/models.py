"""Message models shared by the gateway, mappers and HTTP layer.

``ReceivedEnvelope`` carries the SDK's received message alongside its body;
``MessageMetadata`` is the part of that message surfaced to callers;
``MessagePayload`` is the demonstration payload used for typed round-trips.
"""
from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal


T = TypeVar("T")


class MessagePayload(BaseModel):
    """Typed payload published and received by the typed endpoints.

    Serialized with PascalCase names (``Text``, ``Tags``); decoding accepts any
    casing of those names.
    """
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    text: str
    tags: list[str] = Field(default_factory=list)


class MessageMetadata(BaseModel):
    """Delivery metadata of a received or peeked message."""

    message_id: Optional[str] = None
    sequence_number: Optional[int] = None
    enqueued_time_utc: Optional[_dt.datetime] = None
    delivery_count: Optional[int] = None
    content_type: Optional[str] = None
    correlation_id: Optional[str] = None
    subject: Optional[str] = None
    lock_token: Optional[str] = None
    locked_until_utc: Optional[_dt.datetime] = None
    expires_at_utc: Optional[_dt.datetime] = None
    time_to_live: Optional[_dt.timedelta] = None
    state: Optional[str] = None
    application_properties: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_message(cls, message: Any) -> "MessageMetadata":
        """Read the metadata attributes from an SDK received message.

        Missing attributes are left as ``None`` so peeked messages (which have
        no lock) and test doubles map cleanly.
        """
        def _get(name: str) -> Any:
            return getattr(message, name, None)

        lock_token = _get("lock_token")
        state = _get("state")
        return cls(
            message_id=_text(_get("message_id")),
            sequence_number=_get("sequence_number"),
            enqueued_time_utc=_get("enqueued_time_utc"),
            delivery_count=_get("delivery_count"),
            content_type=_text(_get("content_type")),
            correlation_id=_text(_get("correlation_id")),
            subject=_text(_get("subject")),
            lock_token=str(lock_token) if lock_token is not None else None,
            locked_until_utc=_get("locked_until_utc"),
            expires_at_utc=_get("expires_at_utc"),
            time_to_live=_get("time_to_live"),
            state=getattr(state, "name", None) or (str(state) if state is not None else None),
            application_properties=_plain_properties(_get("application_properties")),
        )


@dataclass
class ReceivedEnvelope(Generic[T]):
    """A received or peeked message plus its decoded body.

    ``message`` is the SDK handle; its delivery lifecycle belongs to the
    broker. ``body`` is ``str`` for raw reads and ``T`` for typed reads.
    """

    message: Any
    raw_body: bytes
    body: Optional[T] = None

    @property
    def sequence_number(self) -> Optional[int]:
        return getattr(self.message, "sequence_number", None)

    @property
    def metadata(self) -> MessageMetadata:
        return MessageMetadata.from_message(self.message)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return str(value)


def _plain_properties(properties: Any) -> dict[str, Any]:
    """Return application properties with bytes keys/values decoded to str."""
    if not properties:
        return {}
    plain: dict[str, Any] = {}
    for key, value in dict(properties).items():
        plain[_text(key) or ""] = value.decode("utf-8", "replace") if isinstance(value, bytes) else value
    return plain
