"""
Health check API endpoints.
Monitors application and queue health.
"""

import datetime
import logging

from fastapi import APIRouter, Depends, status

from ..libs.exceptions import QueueTransportError
from ..libs.servicebus import QueueConnection
from .deps import get_connection

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def full_health_check(connection: QueueConnection = Depends(get_connection)) -> dict:
    """
    Comprehensive health check endpoint.

    Args:
        connection: Shared queue connection

    Returns:
        dict: Health status with keys: status, timestamp, queue, services (application, queue),
        active_message_count, message
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.datetime.now(datetime.timezone.utc),
        "queue": connection.queue_name,
        "services": {"application": "healthy", "queue": "unknown"},
        "active_message_count": None,
    }

    if connection.closed:
        health_status["services"]["queue"] = "unhealthy"
        health_status["status"] = "degraded"
    else:
        try:
            health_status["active_message_count"] = await connection.queue_depth()
            health_status["services"]["queue"] = "healthy"
        except QueueTransportError as e:
            logger.warning(f"Queue health check failed: {e}")
            health_status["services"]["queue"] = "unhealthy"
            health_status["status"] = "degraded"

    if health_status["status"] == "degraded":
        health_status["message"] = "Application is running but the queue is unreachable"
    else:
        health_status["message"] = "All services are healthy"

    return health_status
