"""
Main FastAPI application entry point.

This module sets up the FastAPI app with its collaborators, routes,
exception handlers and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry

from .api import healthz_router, metrics_router, publishing_router
from .config import Settings, get_settings
from .core.exceptions import ModelPublishException
from .core.metrics import MetricsCollector
from .core.publisher import PublishingService
from .inmemory import InMemoryControlPlane, InMemoryObjectStore
from .protocols import ModelRegistry, ObjectStore, ProvisioningBackend


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """FastAPI lifespan context manager."""
    logger = structlog.get_logger(__name__)
    logger.info("Starting model publishing service", version=app.version)
    try:
        yield
    finally:
        logger.info("Model publishing service shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[ModelRegistry] = None,
    backend: Optional[ProvisioningBackend] = None,
    store: Optional[ObjectStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Collaborators default to the in-memory control plane, which is what
    local runs and tests use. The in-memory control plane serves as both
    the model registry and the provisioning backend.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if registry is None or backend is None:
        control_plane = InMemoryControlPlane()
        registry = registry or control_plane
        backend = backend or control_plane
    store = store or InMemoryObjectStore()

    app = FastAPI(
        title="Model Publishing",
        description="Publish models behind the API gateway",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    metrics = MetricsCollector(registry=CollectorRegistry())
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.registry = registry
    app.state.backend = backend
    app.state.store = store
    app.state.publishing_service = PublishingService(
        registry=registry,
        backend=backend,
        store=store,
        settings=settings,
        metrics=metrics,
    )

    app.add_exception_handler(ModelPublishException, modelpublish_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(publishing_router, prefix="/v1", tags=["publishing"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "modelpublish",
            "version": app.version,
            "description": "Publish models behind the API gateway",
            "docs": "/docs",
        }

    return app


async def modelpublish_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle service exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Service exception occurred",
        error=str(exc),
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": str(exc),
            "details": exc.details,
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Unexpected exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "modelpublish.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )
