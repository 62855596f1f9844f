# API routes and endpoints
from fastapi import APIRouter

from .health import router as health_router
from .servicebus import router as servicebus_router

# Create main API router
api_router = APIRouter()

# Include health check routes
api_router.include_router(health_router)

# Include queue routes
api_router.include_router(servicebus_router)

__all__ = ["api_router", "health_router", "servicebus_router"]
