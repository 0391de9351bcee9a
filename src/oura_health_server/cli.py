"""CLI entry point for oura-health-server."""

import asyncio
from datetime import timedelta
from enum import Enum
from typing import NoReturn

import structlog
import typer
import uvicorn
from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from prometheus_client import start_http_server
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from oura_health_server import __version__
from oura_health_server.clients.processor import ProcessorClient
from oura_health_server.core.config import Settings, settings
from oura_health_server.core.database import create_engine, create_session_maker
from oura_health_server.core.errors import AppError
from oura_health_server.core.logging import configure_logging
from oura_health_server.core.metrics import MetricsCollector
from oura_health_server.repositories.oauth_tokens import OAuthTokenRepository
from oura_health_server.services.collector import CollectionResult, CollectorService
from oura_health_server.services.scheduler import CollectorScheduler

logger = structlog.get_logger()

app = typer.Typer(
    name="oura-health-server",
    help="Oura ring health metrics: api-service, data-processor and collector",
    no_args_is_help=True,
)


class Service(str, Enum):
    API = "api"
    PROCESSOR = "processor"


@app.command()
def serve(
    service: Service = typer.Option(Service.API, help="Which HTTP service to run"),
    host: str = typer.Option(None, help="Host to bind to (overrides config)"),
    port: int = typer.Option(None, help="Port to bind to (overrides config)"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the api-service or the data-processor.

    Example:
        oura-health-server serve
        oura-health-server serve --service processor --port 8081
    """
    if service is Service.API:
        target, default_port = "oura_health_server.app:app", settings.api_port
    else:
        target, default_port = "oura_health_server.app:processor_app", settings.processor_port

    uvicorn.run(
        target,
        host=host or settings.api_host,
        port=port or default_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def migrate(
    config_path: str = typer.Option("alembic.ini", "--config", help="Path to alembic.ini"),
) -> None:
    """Apply all pending database migrations.

    Example:
        oura-health-server migrate
    """
    configure_logging(settings.log_level)
    alembic_cfg = Config(config_path)

    logger.info("Running migrations")
    command.upgrade(alembic_cfg, "head")

    revision = ScriptDirectory.from_config(alembic_cfg).get_current_head()
    logger.info("Migrations completed", revision=revision)


async def _collect_once(
    config: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    processor: ProcessorClient,
    metrics: MetricsCollector,
    user_id: str,
) -> CollectionResult:
    """Run the collector once with a fresh database session."""
    async with session_maker() as session:
        collector = CollectorService(
            OAuthTokenRepository(session),
            processor,
            metrics=metrics,
            oura_base_url=config.oura_api_base_url,
            run_timeout=config.collector_run_timeout_seconds,
            token_margin=timedelta(minutes=config.collector_token_margin_minutes),
        )
        return await collector.run(user_id)


async def _collect(
    config: Settings, user_id: str, interval_minutes: int | None, metrics: MetricsCollector
) -> CollectionResult | None:
    engine = create_engine(config)
    session_maker = create_session_maker(engine)
    try:
        async with ProcessorClient(
            config.processor_url, api_key=config.processor_api_key
        ) as processor:

            async def run_once() -> CollectionResult:
                return await _collect_once(config, session_maker, processor, metrics, user_id)

            if not interval_minutes:
                return await run_once()

            scheduler = CollectorScheduler(run_once, interval_minutes=interval_minutes)
            await scheduler.start()
            try:
                await asyncio.Event().wait()
            finally:
                await scheduler.stop()
            return None
    finally:
        await engine.dispose()


def _fail(message: str) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


@app.command()
def collect(
    user_id: str = typer.Option(None, help="User whose Oura data to collect (overrides config)"),
    interval_minutes: int = typer.Option(
        None, help="Repeat every N minutes instead of running once"
    ),
    schedule: bool = typer.Option(
        False, "--schedule", help="Repeat every COLLECTOR_INTERVAL_MINUTES"
    ),
    metrics_port: int = typer.Option(
        0, help="Serve Prometheus metrics on this port while running (0 disables)"
    ),
) -> None:
    """Fetch today's Oura data and forward it to the data-processor.

    Example:
        oura-health-server collect --user-id 3f0c...
        oura-health-server collect --schedule --metrics-port 9100
    """
    configure_logging(settings.log_level)
    target_user = user_id or settings.collector_user_id
    if not target_user:
        _fail("No user id: pass --user-id or set COLLECTOR_USER_ID")

    interval = interval_minutes or (settings.collector_interval_minutes if schedule else None)
    metrics = MetricsCollector("collector")
    if metrics_port:
        start_http_server(metrics_port, registry=metrics.registry)
        logger.info("Serving collector metrics", port=metrics_port)

    try:
        result = asyncio.run(_collect(settings, target_user, interval, metrics))
    except AppError as e:
        _fail(f"Collection failed: {e}")
    except KeyboardInterrupt:
        logger.info("Collector stopped")
        return

    if result is not None and result.has_errors:
        _fail(f"Collection completed with errors: {result.errors}")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"oura-health-server v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
