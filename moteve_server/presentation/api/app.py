"""
FastAPI application factory and configuration.

This module creates and configures the FastAPI application with
middleware, error handling and route registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import HTMLResponse

from ...application.container import Container, IContainer
from ...application.startup import ApplicationStartup
from ...core.exceptions import MoteveError
from ...infrastructure.config.models import ApplicationConfig
from .middleware import ErrorHandlerMiddleware, RequestContextMiddleware
from .protocol import HEADER_ERROR, format_error
from .routers import health, mca

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    When an ApplicationStartup is attached to the app state its components
    are started before the first request and stopped on shutdown.
    """
    logger.info("Application starting up...")

    startup: Optional[ApplicationStartup] = getattr(app.state, "startup", None)
    if startup is not None:
        if getattr(app.state, "configure_on_startup", False):
            await startup.configure_services(app.state.config)
        await startup.start_application()

    try:
        yield
    finally:
        if startup is not None:
            await startup.stop_application()
        logger.info("Application shutting down...")


def create_app(container: IContainer, config: ApplicationConfig,
               startup: Optional[ApplicationStartup] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Dependency injection container with configured services
        config: Application configuration
        startup: Component lifecycle driven by the app lifespan, if any

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=config.name,
        version=config.version,
        description="Video upload server for Moteve mobile clients",
        debug=config.debug,
        lifespan=lifespan
    )

    app.state.container = container
    app.state.config = config
    app.state.startup = startup

    _configure_middleware(app, config)
    _register_exception_handlers(app)
    _register_routes(app)

    logger.info(f"FastAPI application created: {config.name} v{config.version}")
    return app


def create_app_from_config() -> FastAPI:
    """
    Create app from configuration (for uvicorn reload).

    Uses the file named by ``MOTEVE_CONFIG``, falling back to ``config.yaml``
    in the working directory. Services are configured inside the lifespan,
    on the server's event loop.
    """
    import os
    from pathlib import Path

    from ...infrastructure.config.loader import ConfigLoader

    config_file = None
    if not os.environ.get("MOTEVE_CONFIG") and Path("config.yaml").exists():
        config_file = "config.yaml"
    config = ConfigLoader().load_config(config_file)
    config.ensure_directories()

    container = Container()
    app = create_app(container, config, ApplicationStartup(container))
    app.state.configure_on_startup = True
    return app


def _configure_middleware(app: FastAPI, config: ApplicationConfig) -> None:
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Moteve-Token", "Moteve-Sequence", "Moteve-Error"],
    )

    if config.security.trusted_hosts != ["*"]:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=config.security.trusted_hosts
        )

    logger.debug("Middleware configured")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MoteveError)
    async def moteve_error_handler(request: Request, exc: MoteveError) -> HTMLResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")

        return HTMLResponse(
            content=format_error(exc),
            status_code=exc.status_code,
            headers={HEADER_ERROR: exc.code}
        )


def _register_routes(app: FastAPI) -> None:
    app.include_router(mca.router, tags=["mca"])

    app.include_router(
        health.router,
        prefix="/health",
        tags=["health"]
    )

    @app.get("/", tags=["root"])
    async def root() -> Dict[str, Any]:
        """Root endpoint with basic application information."""
        return {
            "name": app.title,
            "version": app.version,
            "status": "running",
            "upload_url": "/mca/upload.htm",
            "health_url": "/health"
        }

    logger.debug("Routes registered")
