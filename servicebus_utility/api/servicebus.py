"""
Service Bus queue endpoints.
Publish, receive (destructive) and peek (non-destructive) against the configured queue,
in raw-text and typed (``MessagePayload``) flavours.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ..libs.gateway import QueueGateway
from ..libs.mappers import to_view, to_views
from ..libs.models import MessagePayload
from .deps import get_gateway
from .schemas import ErrorResponse, PublishRequest, PublishResponse

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/servicebus",
    tags=["servicebus"],
    responses={
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
    },
)


def _single(view: Optional[Any]) -> Any:
    if view is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return view


@router.post("", response_model=PublishResponse, status_code=status.HTTP_200_OK)
async def publish(
    payload: PublishRequest, gateway: QueueGateway = Depends(get_gateway)
) -> PublishResponse:
    """
    Publish a new message to the queue.

    The whole request body is serialized to JSON and sent as the message body
    (content type ``application/json``). "Raw" reads return that JSON as text;
    publishing an arbitrary string verbatim is only offered by the CLI
    (``publish TEXT`` without ``--typed``).
    """
    logger.info("Publishing new message")
    await gateway.publish(payload)
    return PublishResponse(success=True, message="Message successfully published")


@router.post("/typed", response_model=PublishResponse, status_code=status.HTTP_200_OK)
async def publish_typed(
    payload: PublishRequest, gateway: QueueGateway = Depends(get_gateway)
) -> PublishResponse:
    """
    Publish a new message to the queue as a ``MessagePayload`` object.
    """
    logger.info("Publishing new typed message")
    await gateway.publish(MessagePayload(text=payload.payload, tags=payload.tags))
    return PublishResponse(success=True, message="Message successfully published")


@router.get("/receive")
async def receive(
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    Receive and complete the next message on the queue.

    Returns 204 when no message arrived within the receive wait time.
    """
    logger.info("Receiving next message")
    envelope = await gateway.receive_one()
    return _single(to_view(envelope, metadata))


@router.get("/receive-messages")
async def receive_messages(
    max_count: int = Query(10, alias="max", ge=1, description="Max number of messages"),
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    Receive and complete up to ``max`` messages on the queue.
    """
    logger.info("Receiving messages")
    envelopes = await gateway.receive_many(max_count)
    return to_views(envelopes, metadata)


@router.get("/receive-typed")
async def receive_typed(
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    Receive and complete the next message, decoding its body as ``MessagePayload``.
    """
    logger.info("Receiving next typed message")
    envelope = await gateway.receive_one(model=MessagePayload)
    return _single(to_view(envelope, metadata))


@router.get("/receive-typed-messages")
async def receive_typed_messages(
    max_count: int = Query(10, alias="max", ge=1, description="Max number of messages"),
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    Receive and complete up to ``max`` messages, decoding bodies as ``MessagePayload``.
    """
    logger.info("Receiving typed messages")
    envelopes = await gateway.receive_many(max_count, model=MessagePayload)
    return to_views(envelopes, metadata)


@router.get("/peek")
async def peek(
    start: Optional[int] = Query(None, ge=1, description="Message sequence to view"),
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    View a message on the queue without removing it.

    Without ``start`` the next message after the last one viewed is returned.
    """
    logger.info("Peeking a message")
    envelope = await gateway.peek_one(start)
    return _single(to_view(envelope, metadata))


@router.get("/peek-messages")
async def peek_messages(
    start: int = Query(..., ge=1, description="Message sequence to start from"),
    max_count: int = Query(10, alias="max", ge=1, description="Max number of messages"),
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    View up to ``max`` messages on the queue, starting at sequence ``start``.
    """
    logger.info("Peeking at messages")
    envelopes = await gateway.peek_many(max_count, start)
    return to_views(envelopes, metadata)


@router.get("/peek-typed")
async def peek_typed(
    start: Optional[int] = Query(None, ge=1, description="Message sequence to view"),
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    View a message without removing it, decoding its body as ``MessagePayload``.
    """
    logger.info("Peeking a typed message")
    envelope = await gateway.peek_one(start, model=MessagePayload)
    return _single(to_view(envelope, metadata))


@router.get("/peek-typed-messages")
async def peek_typed_messages(
    start: int = Query(..., ge=1, description="Message sequence to start from"),
    max_count: int = Query(10, alias="max", ge=1, description="Max number of messages"),
    metadata: bool = Query(True, description="Include delivery metadata alongside the body"),
    gateway: QueueGateway = Depends(get_gateway),
):
    """
    View up to ``max`` messages from sequence ``start``, decoding bodies as ``MessagePayload``.
    """
    logger.info("Peeking at typed messages")
    envelopes = await gateway.peek_many(max_count, start, model=MessagePayload)
    return to_views(envelopes, metadata)
