"""
FastAPI Dependencies Module

Common dependency injection functions: the per-request stores built on the
request's database session, the application settings and notifiers placed on
``app.state`` at startup, and the client IP used to stamp log entries.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bordersafety.core.config import Settings, settings as default_settings
from bordersafety.core.database import get_db
from bordersafety.services.app_log_store import AppLogStore
from bordersafety.services.broadcasts import BroadcastStore
from bordersafety.services.notifier import Notifier
from bordersafety.services.threat_level import ThreatLevelStore


def get_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", default_settings)


def get_notifiers(request: Request) -> list[Notifier]:
    return getattr(request.app.state, "notifiers", [])


def get_log_store(db: AsyncSession = Depends(get_db)) -> AppLogStore:
    return AppLogStore(db)


def get_threat_store(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> ThreatLevelStore:
    return ThreatLevelStore(db, default=app_settings.default_threat_level)


def get_broadcast_store(db: AsyncSession = Depends(get_db)) -> BroadcastStore:
    return BroadcastStore(db)


def client_ip(request: Request) -> str | None:
    """
    Originating client address.

    The first ``X-Forwarded-For`` hop wins when the service runs behind the
    frontend proxy; otherwise the socket peer address is used.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first[:45]
    return request.client.host if request.client else None
