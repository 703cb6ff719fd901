"""
FastAPI application entry point with health endpoint and service routing.

This module builds the application: CORS configuration, request logging,
mapping of service errors to HTTP responses, and a lifespan that opens the
record store and the order and report services on start-up and closes the
store on shutdown.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from order_portal.api.v1 import orders_router, reports_router
from order_portal.core.config import Settings, get_settings
from order_portal.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from order_portal.core.timeutils import utcnow
from order_portal.services.errors import (
    ConflictError,
    NotFoundError,
    ServiceError,
    TemporarilyUnavailableError,
    ValidationFailedError,
)
from order_portal.services.orders.service import OrderService
from order_portal.services.reports.service import ReportService
from order_portal.store.base import RecordStore
from order_portal.store.connection import create_store

configure_logging()
logger = get_logger(__name__)

ERROR_STATUS: list[tuple[type[ServiceError], int]] = [
    (ValidationFailedError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (TemporarilyUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: ServiceError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """
    Map service errors to HTTP responses.

    Body: ``{"code", "detail", "context", "request_id"}``.
    """
    status_code = status_for(exc)
    log_method = logger.error if status_code >= 500 else logger.warning
    log_method(
        "Request rejected",
        method=request.method,
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        error=str(exc),
    )

    headers = {"Retry-After": "30"} if status_code == status.HTTP_503_SERVICE_UNAVAILABLE else None
    return JSONResponse(
        status_code=status_code,
        content={
            "code": exc.code,
            "detail": str(exc),
            "context": jsonable_encoder(exc.context),
            "request_id": get_request_id(),
        },
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors with structured error response."""
    errors = jsonable_encoder(exc.errors())
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "REQUEST_VALIDATION_FAILED",
            "detail": "Request validation failed",
            "context": {"errors": errors},
            "request_id": get_request_id(),
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions without exposing internal details."""
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "detail": "An unexpected error occurred",
            "context": {},
            "request_id": get_request_id(),
        },
    )


async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Sets request ID for correlation, logs request details, and measures
    response time. Clears context after request processing.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    finally:
        clear_context()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings, defaults to the cached settings
        store: Record store to serve from; the configured backend is
            created on start-up when omitted
        clock: Source of the current instant for the services

    Returns:
        Configured application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Application starting",
            environment=settings.environment,
            debug=settings.debug,
            version=settings.app_version,
        )

        with log_performance(logger, "application_startup"):
            app_store = store or create_store(settings)
            app.state.store = app_store
            app.state.order_service = OrderService(app_store, settings, clock=clock)
            app.state.report_service = ReportService(app_store, settings, clock=clock)

        yield

        logger.info("Application shutting down")
        with log_performance(logger, "application_shutdown"):
            if store is None:
                await app_store.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Ordering portal backend API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.middleware("http")(request_logging_middleware)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health check endpoint",
    )
    async def health_check(request: Request) -> dict[str, str]:
        """Liveness plus the store backend currently serving requests."""
        app_store: Optional[RecordStore] = getattr(request.app.state, "store", None)
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "store": app_store.active_backend if app_store else "unavailable",
        }

    app.include_router(orders_router, prefix=f"{settings.api_v1_prefix}/orders", tags=["Orders"])
    app.include_router(reports_router, prefix=f"{settings.api_v1_prefix}/reports", tags=["Reports"])

    return app


app = create_app()
