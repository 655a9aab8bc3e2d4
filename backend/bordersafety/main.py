"""
Border Safety Backend Application Entry Module

Builds the FastAPI application and manages its lifecycle:
- opens the SQLite storage handle and creates the schema
- seeds the default threat level on first run
- builds the configured notification channels
- optionally runs the log retention purge in the background
- registers middleware, exception handlers and routers under the API prefix
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bordersafety import __version__
from bordersafety.core.config import Settings, configure_logging, settings as default_settings
from bordersafety.core.database import Database, utcnow
from bordersafety.core.exceptions import register_exception_handlers
from bordersafety.core.security_middleware import SecurityMiddleware
from bordersafety.routers import log_admin, status
from bordersafety.services.notifier import build_notifiers
from bordersafety.services.threat_level import ThreatLevelStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application Lifecycle Manager

    Startup opens the database and seeds data; shutdown cancels the
    background task and closes the database, in that order.
    """
    app_settings: Settings = app.state.settings
    configure_logging(app_settings.log_level)

    database = Database(
        app_settings.database_url,
        echo=app_settings.database_echo,
        busy_timeout=app_settings.database_busy_timeout,
    )
    await database.open()
    app.state.database = database

    async with database.session() as session:
        await ThreatLevelStore(session, default=app_settings.default_threat_level).ensure_default()

    cleanup_task = None
    if app_settings.log_cleanup_enabled:
        from bordersafety.tasks.log_cleanup import log_cleanup_loop
        cleanup_task = asyncio.create_task(
            log_cleanup_loop(database, app_settings.log_retention_days, app_settings.log_cleanup_interval)
        )

    logger.info("Border Safety backend started (prefix %s)", app_settings.api_prefix)

    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    await database.close()
    app.state.database = None
    logger.info("Border Safety backend stopped")


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build a FastAPI application bound to ``app_settings`` (module settings by default)."""
    app_settings = app_settings or default_settings
    prefix = app_settings.api_prefix.rstrip("/")

    app = FastAPI(
        title="Border Safety",
        description="Application log and threat-level service for the border public-safety app",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.notifiers = build_notifiers(app_settings)
    app.state.database = None

    register_exception_handlers(app)

    app.add_middleware(
        SecurityMiddleware,
        api_prefix=prefix,
        enable_security_headers=app_settings.enable_security_headers,
        max_request_size=app_settings.max_request_size,
        is_production=app_settings.is_production,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.allowed_origins,
        allow_credentials=app_settings.is_production,  # Wildcard origins cannot carry credentials
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(log_admin.router, prefix=prefix)
    app.include_router(status.router, prefix=prefix)

    async def health():
        """
        Health Check Endpoint

        Returns ``ok`` when the database answers, ``degraded`` otherwise.
        """
        database: Optional[Database] = app.state.database
        checks = {"api": "ok", "database": "ok" if database is not None and await database.ping() else "error"}
        overall = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
        return {"status": overall, "checks": checks, "timestamp": utcnow().isoformat()}

    app.add_api_route("/health", health, methods=["GET"], tags=["health"])
    if prefix:
        app.add_api_route(f"{prefix}/health", health, methods=["GET"], tags=["health"])

    return app


app = create_app()
