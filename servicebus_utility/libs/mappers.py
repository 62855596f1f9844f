"""Map gateway envelopes to the shapes returned by the API.

Two views are available, picked by the caller:

- Full view: ``{"metadata": {...}, "body": ...}``
- Body-only view: just the decoded body

Examples:
>>> to_view(None, include_metadata=True) is None
True
>>> to_views([], include_metadata=False)
[]
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from pydantic import BaseModel

from .codec import jsonable
from .models import MessageMetadata, ReceivedEnvelope


class MessageView(BaseModel):
    """Full view of a message: delivery metadata plus decoded body."""

    metadata: MessageMetadata
    body: Any = None


def to_view(envelope: Optional[ReceivedEnvelope[Any]], include_metadata: bool) -> Optional[Any]:
    """Return the full or body-only view of ``envelope``.

    ``None`` in, ``None`` out: an absent message is a result, not an error.
    """
    if envelope is None:
        return None
    body = jsonable(envelope.body)
    if include_metadata:
        return MessageView(metadata=envelope.metadata, body=body)
    return body


def to_views(envelopes: Iterable[ReceivedEnvelope[Any]], include_metadata: bool) -> list[Any]:
    """Map each envelope with ``to_view``, preserving gateway order."""
    return [to_view(envelope, include_metadata) for envelope in envelopes]
