"""
Main FastAPI application.
Wires configuration, the shared queue connection, routes and exception handlers together.

Run with:
    uvicorn servicebus_utility.main:app --reload
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import api_router
from .libs.config import QueueConfig, Settings, get_settings, load_queue_config
from .libs.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MessageDeserializationError,
    QueueTransportError,
)
from .libs.gateway import QueueGateway
from .libs.logging import setup_logging
from .libs.metrics import metrics_app
from .libs.servicebus import QueueConnection
from .libs.tracing import start_tracing

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[QueueConfig], QueueConnection]


def create_app(
    settings: Optional[Settings] = None,
    queue_config: Optional[QueueConfig] = None,
    connection_factory: ConnectionFactory = QueueConnection.open,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    The queue configuration is loaded and validated when the application
    starts, not when it is built; an invalid configuration aborts start-up.

    Args:
        settings: Application settings (defaults to environment)
        queue_config: Queue configuration (defaults to ``SERVICEBUS_*`` environment)
        connection_factory: Builds the shared connection from the queue configuration
        configure_logging: Install the root logging handlers on start-up
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if configure_logging:
            setup_logging(settings.log_level, log_file=settings.log_file)
        if settings.tracing_enabled:
            start_tracing(settings.service_name)

        try:
            config = queue_config or load_queue_config()
        except ConfigurationError:
            logger.critical("Refusing to start without a valid Service Bus configuration")
            raise

        connection = connection_factory(config)
        app.state.connection = connection
        app.state.gateway = QueueGateway.from_connection(connection)
        logger.info(f"{settings.app_name} started for queue '{config.queue_name}'")
        try:
            yield
        finally:
            await connection.close()

    app = FastAPI(
        title=settings.app_name,
        description="Publish, receive and peek messages on an Azure Service Bus queue",
        version="1.0.0",
        docs_url=None if settings.is_prod() else "/docs",
        redoc_url=None if settings.is_prod() else "/redoc",
        openapi_url=None if settings.is_prod() else "/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time to response headers."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "message": "Validation error",
                "detail": jsonable_errors(exc),
                "error_type": "validation_error",
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.detail, "error_type": "http_error"},
        )

    @app.exception_handler(MessageDeserializationError)
    async def deserialization_exception_handler(request: Request, exc: MessageDeserializationError):
        """Handle message bodies that do not match the requested type."""
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "message": str(exc),
                "detail": {"target": exc.target, "sequence_number": exc.sequence_number},
                "error_type": "deserialization_error",
            },
        )

    @app.exception_handler(QueueTransportError)
    async def transport_exception_handler(request: Request, exc: QueueTransportError):
        """Handle broker failures."""
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "message": str(exc),
                "detail": {"operation": exc.operation},
                "error_type": "transport_error",
            },
        )

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_exception_handler(request: Request, exc: InvalidRequestError):
        """Handle invalid arguments rejected by the gateway."""
        return JSONResponse(
            status_code=422,
            content={"success": False, "message": str(exc), "error_type": "validation_error"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal server error",
                "error_type": "internal_error",
            },
        )

    app.include_router(api_router)

    if settings.metrics_enabled:
        app.mount("/metrics", metrics_app())

    @app.get("/", tags=["root"])
    async def root():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": "1.0.0",
            "status": "running",
            "docs": app.docs_url,
            "health": "/health",
            "api": "/servicebus",
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Return validation errors without the non-serializable ``ctx`` entries."""
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


app = create_app()
