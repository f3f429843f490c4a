"""Entry point for the rate-card approval HTTP service.

``main()`` loads settings, starts Sentry and structlog, opens the SQLite
database, wires the approval services on top of it and serves the FastAPI app
with uvicorn.  Tests build the same app through ``initialize_services`` and
``create_app`` without a server.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from rate_approval.api import admin_router, public_router, register_exception_handlers
from rate_approval.approval.gateways import AdminApprovalGateway, PublicApprovalGateway
from rate_approval.approval.machine import ApprovalStateMachine
from rate_approval.audit.logger import AuditLogger
from rate_approval.config import Settings, get_settings, validate_settings
from rate_approval.health import register_health_routes
from rate_approval.notifications.email import ApprovalMailer, LoggingMailer
from rate_approval.observability.metrics import refresh_pending, setup_metrics
from rate_approval.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from rate_approval.observability.sentry import get_sentry_processor, init_sentry
from rate_approval.store.repository import RateCardRepository
from rate_approval.store.schema import close_rate_card_db, init_rate_card_db
from rate_approval.tokens.issuer import ApprovalTokenIssuer

logger = structlog.get_logger()


def _log_processors(sentry_enabled: bool) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    # Sentry needs the level, and must see the event before rendering.
    if sentry_enabled:
        processors.append(get_sentry_processor())
    processors += [
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    return processors


def configure_logging(production: bool = False, sentry_enabled: bool = False) -> None:
    """Set up structlog for the whole process.

    Production logs INFO and above as one JSON object per line.  Development
    logs DEBUG and above through the coloured console renderer.  Every line
    carries ``service=rate-approval``.

    Args:
        production: Select the production renderer and level.
        sentry_enabled: Forward ERROR events to Sentry.
    """
    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        level = logging.DEBUG

    structlog.configure(
        processors=[*_log_processors(sentry_enabled), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(
    settings: Settings | None = None, mailer: ApprovalMailer | None = None
) -> dict[str, Any]:
    """Open the database and build every service the routes depend on.

    The repository, token issuer and audit logger share one connection, so a
    decision, its token consumption and its audit row commit together.

    Args:
        settings: Settings to use; ``get_settings()`` when omitted.
        mailer: Approval email backend; a ``LoggingMailer`` when omitted.

    Returns:
        Services keyed by name: ``settings``, ``db_conn``, ``audit_logger``,
        ``repository``, ``issuer``, ``machine``, ``mailer``,
        ``admin_gateway`` and ``public_gateway``.
    """
    settings = settings or get_settings()

    db_path = settings.database_path
    if str(db_path) != ":memory:":
        db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_rate_card_db(db_path)

    audit_logger = AuditLogger(conn)
    repository = RateCardRepository(conn, audit_logger=audit_logger)
    issuer = ApprovalTokenIssuer(repository)
    machine = ApprovalStateMachine(repository)
    mailer = mailer or LoggingMailer()

    refresh_pending(repository)
    logger.info("Services initialized", database=str(db_path))
    return {
        "settings": settings,
        "db_conn": conn,
        "audit_logger": audit_logger,
        "repository": repository,
        "issuer": issuer,
        "machine": machine,
        "mailer": mailer,
        "admin_gateway": AdminApprovalGateway(
            repository,
            machine,
            issuer,
            mailer=mailer,
            public_base_url=settings.public_base_url,
            mail_sender=settings.mail_sender,
        ),
        "public_gateway": PublicApprovalGateway(
            issuer, machine, mailer=mailer, mail_sender=settings.mail_sender
        ),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Close the database connection when the server shuts down."""
    logger.info("Rate card approval service starting")
    yield
    conn = app.state.services.get("db_conn")
    if conn is not None:
        close_rate_card_db(conn)
        logger.info("Rate-card database connection closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Assemble the FastAPI app around *services*.

    Args:
        services: The dict returned by :func:`initialize_services`.

    Returns:
        The app with admin and public routers, envelope error handlers,
        request IDs, health probes and ``/metrics``.
    """
    app = FastAPI(title="Rate Card Approval", lifespan=lifespan)
    app.state.services = services
    app.state.settings = services.get("settings") or get_settings()

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)
    for router in (admin_router, public_router):
        app.include_router(router)
    register_health_routes(app)
    setup_metrics(app)
    return app


def main() -> None:
    """``rate-approval`` console script."""
    settings = get_settings()
    environment = "production" if settings.production else "development"
    configure_logging(
        production=settings.production,
        sentry_enabled=init_sentry(settings.sentry_dsn, environment),
    )
    logger.info("Rate card approval service booting", environment=environment)
    validate_settings(settings)

    app = create_app(initialize_services(settings))
    uvicorn.run(app, host="0.0.0.0", port=settings.http_port, log_level="info")


if __name__ == "__main__":
    main()
