"""
Shared dependencies for API endpoints.
The queue connection and gateway are created once in the application lifespan
and stored on ``app.state``; these helpers hand them to route handlers.
"""

from fastapi import Request

from ..libs.gateway import QueueGateway
from ..libs.servicebus import QueueConnection


def get_gateway(request: Request) -> QueueGateway:
    """Return the process-wide queue gateway."""
    return request.app.state.gateway


def get_connection(request: Request) -> QueueConnection:
    """Return the process-wide queue connection."""
    return request.app.state.connection
