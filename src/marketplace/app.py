"""Application entry point serving the marketplace HTTP API.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error forwarding when ``SENTRY_DSN`` is set
- **SQLite** marketplace database shared by every component
- **Prometheus** ``/metrics`` plus health and readiness probes
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, TextIO

import structlog
import uvicorn
from fastapi import FastAPI

from marketplace.actions import MarketplaceActions
from marketplace.api import router as api_router
from marketplace.config import Settings, get_settings
from marketplace.domain.types import NegotiationStatus
from marketplace.health import register_health_routes
from marketplace.observability.metrics import ACTIVE_NEGOTIATIONS, setup_metrics
from marketplace.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from marketplace.observability.sentry import get_sentry_processor, init_sentry
from marketplace.services.requests import ItemCatalog
from marketplace.store.database import Database
from marketplace.store.repository import MarketplaceStore

logger = structlog.get_logger()


def configure_logging(
    production: bool = False, sentry_enabled: bool = False, file: TextIO | None = None
) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry_enabled: Forward ERROR events to Sentry if ``True``.
        file: Stream to write log lines to (default: stdout).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if sentry_enabled:
        shared_processors.append(get_sentry_processor())
    shared_processors += [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(
    settings: Settings | None = None,
    *,
    db: Database | None = None,
    catalog: ItemCatalog | None = None,
) -> dict[str, Any]:
    """Open the database and build the action boundary.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.
        db: An already-open database; opened from ``settings.database_path``
            when omitted.
        catalog: Optional item catalog used to validate ITEM requests.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    if db is None:
        db = Database.open(settings.database_path)
        logger.info("marketplace_db_opened", path=str(settings.database_path))

    actions = MarketplaceActions(
        db, catalog=catalog, expiry_days=settings.negotiation_expiry_days
    )

    with db.transaction():
        in_progress = MarketplaceStore(db.conn).count_negotiations(NegotiationStatus.IN_PROGRESS)
    ACTIVE_NEGOTIATIONS.set(in_progress)

    return {"db": db, "actions": actions, "_settings": settings}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On shutdown: closes the marketplace database connection.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    logger.info("marketplace_api_starting")
    yield
    db: Database | None = app.state.services.get("db")
    if db is not None:
        db.close()


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with lifespan, API router, probes, and metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Marketplace Negotiation API", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings") or get_settings()
    fastapi_app.state.db = services["db"]
    fastapi_app.state.actions = services["actions"]

    fastapi_app.add_middleware(RequestIdMiddleware)
    fastapi_app.include_router(api_router)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point: configure logging and Sentry, then serve the API."""
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn.get_secret_value(), settings.sentry_environment
    )
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("application_starting", sentry=sentry_enabled)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host=settings.http_host,
        port=settings.http_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


def run() -> None:
    """Console-script wrapper around :func:`main`."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
