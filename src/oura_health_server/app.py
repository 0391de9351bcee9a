"""Litestar application factories for the api-service and the data-processor."""

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import httpx
import structlog
from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar
from litestar.config.cors import CORSConfig
from litestar.datastructures import State
from litestar.exceptions import HTTPException
from litestar.openapi import OpenAPIConfig
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR
from litestar.types import ControllerRouterHandler
from sqlalchemy.ext.asyncio import AsyncEngine

from oura_health_server import __version__
from oura_health_server.api import api_routers, processor_routers
from oura_health_server.core.config import Settings
from oura_health_server.core.config import settings as default_settings
from oura_health_server.core.database import check_migrations, create_engine
from oura_health_server.core.errors import (
    AppError,
    app_error_handler,
    http_exception_handler,
    unhandled_error_handler,
)
from oura_health_server.core.logging import configure_logging
from oura_health_server.core.metrics import MetricsCollector
from oura_health_server.middleware import RequestContextMiddleware

logger = structlog.get_logger()

API_SERVICE = "api-service"
PROCESSOR_SERVICE = "data-processor"


def _make_lifespan(
    service: str, settings: Settings, engine: AsyncEngine, owns_engine: bool
) -> Callable[[Litestar], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: Litestar) -> AsyncIterator[None]:
        """Application lifespan manager.

        Handles startup and shutdown tasks:
        - Verify migrations have been applied
        - Dispose of the engine on shutdown (when this app created it)
        """
        logger.info(
            f"Starting {service}",
            version=__version__,
            log_level=settings.log_level,
        )

        version = await check_migrations(engine)
        logger.info("Database ready", migration_version=version)

        yield

        if owns_engine:
            await engine.dispose()
        logger.info("Shutdown complete", service=service)

    return lifespan


def _build_app(
    service: str,
    route_handlers: Sequence[ControllerRouterHandler],
    settings: Settings,
    engine: AsyncEngine | None,
    metrics: MetricsCollector | None,
    extra_state: dict[str, Any] | None = None,
) -> Litestar:
    configure_logging(settings.log_level)

    owns_engine = engine is None
    engine = engine or create_engine(settings)
    metrics = metrics or MetricsCollector(service)

    state = State(
        {
            "service": service,
            "settings": settings,
            "metrics": metrics,
            **(extra_state or {}),
        }
    )

    return Litestar(
        route_handlers=list(route_handlers),
        lifespan=[_make_lifespan(service, settings, engine, owns_engine)],
        state=state,
        openapi_config=OpenAPIConfig(
            title=f"oura-health-server {service}",
            version=__version__,
            description="Oura ring health metrics: accounts, OAuth, ingestion and dashboards",
        ),
        plugins=[
            SQLAlchemyPlugin(
                config=SQLAlchemyAsyncConfig(
                    engine_instance=engine,
                    session_dependency_key="session",
                    session_config=AsyncSessionConfig(expire_on_commit=False),
                ),
            ),
        ],
        cors_config=CORSConfig(allow_origins=settings.cors_allowed_origins),
        middleware=[RequestContextMiddleware],
        exception_handlers={
            AppError: app_error_handler,
            HTTPException: http_exception_handler,
            HTTP_500_INTERNAL_SERVER_ERROR: unhandled_error_handler,
        },
        debug=settings.log_level == "DEBUG",
    )


def create_app(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    metrics: MetricsCollector | None = None,
    oauth_http_client: httpx.AsyncClient | None = None,
) -> Litestar:
    """Create the api-service application.

    Args:
        settings: Settings to use (default: loaded from the environment)
        engine: Database engine to use (default: created from settings)
        metrics: Prometheus collector (default: a fresh one)
        oauth_http_client: HTTP client for calls to the Oura token endpoints

    Returns:
        Configured Litestar app instance
    """
    return _build_app(
        API_SERVICE,
        api_routers,
        settings or default_settings,
        engine,
        metrics,
        extra_state={"oauth_http_client": oauth_http_client},
    )


def create_processor_app(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    metrics: MetricsCollector | None = None,
) -> Litestar:
    """Create the data-processor application.

    Returns:
        Configured Litestar app instance
    """
    return _build_app(
        PROCESSOR_SERVICE,
        processor_routers,
        settings or default_settings,
        engine,
        metrics,
    )


# Application instances
app = create_app()
processor_app = create_processor_app()
