"""
Application Log Store

Durable storage and retrieval of ``AppLog`` records. Every write commits on its
own, so a reader only ever sees a record completely or not at all, and SQLite's
writer lock serializes concurrent appends.

Each appended record is also echoed to the Python logger, so the process log
and the admin dashboard show the same events.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bordersafety.core.database import storage_guard, utcnow
from bordersafety.core.exceptions import InvalidInputError
from bordersafety.models.app_log import AppLog, LogLevel

logger = logging.getLogger(__name__)

# Python logging level used when echoing a record
_ECHO_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SECURITY: logging.WARNING,
}


def parse_log_level(value: Any) -> LogLevel:
    """Case-insensitive ``LogLevel`` lookup; InvalidInputError when unknown."""
    if isinstance(value, LogLevel):
        return value
    try:
        return LogLevel(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(level.value for level in LogLevel)
        raise InvalidInputError(f"Level must be one of: {allowed}", detail=f"got {value!r}") from None


def _normalize_category(value: Any) -> str:
    category = str(value or "").strip().upper()
    if not category:
        raise InvalidInputError("Category is required")
    if len(category) > 64:
        raise InvalidInputError("Category must be at most 64 characters")
    return category


class AppLogStore:
    """Read/write access to the ``app_logs`` table through one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        level: Any,
        category: str,
        message: str,
        ip: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AppLog:
        """
        Insert a new record with a fresh id and the current timestamp.

        Raises:
            InvalidInputError: unknown level, blank category/message or
                metadata that is not a JSON-serializable object.
            StorageError: the database could not be written.
        """
        log_level = parse_log_level(level)
        category = _normalize_category(category)
        if not message or not str(message).strip():
            raise InvalidInputError("Message is required")
        if metadata is not None:
            if not isinstance(metadata, dict):
                raise InvalidInputError("Metadata must be an object")
            try:
                json.dumps(metadata)
            except (TypeError, ValueError) as exc:
                raise InvalidInputError("Metadata must be JSON serializable", detail=str(exc)) from exc

        entry = AppLog(
            level=log_level.value,
            category=category,
            message=str(message),
            ip=ip,
            meta=metadata,
            created_at=utcnow(),
        )
        async with storage_guard(self.db, "append"):
            self.db.add(entry)
            await self.db.commit()

        logger.log(_ECHO_LEVELS[log_level], "[%s][%s] %s", entry.level, entry.category, entry.message)
        return entry

    async def list(
        self,
        limit: int = 100,
        offset: int = 0,
        level: Any = None,
        category: Optional[str] = None,
    ) -> list[AppLog]:
        """Newest first (``created_at`` then ``id`` descending), at most ``limit`` rows."""
        if limit < 0 or offset < 0:
            raise InvalidInputError("limit and offset must be non-negative")
        stmt = (
            select(AppLog)
            .where(*self._filters(level, category))
            .order_by(AppLog.created_at.desc(), AppLog.id.desc())
            .offset(offset)
            .limit(limit)
        )
        async with storage_guard(self.db, "list"):
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def get(self, log_id: int) -> Optional[AppLog]:
        async with storage_guard(self.db, "get"):
            return await self.db.get(AppLog, log_id)

    async def count(self, level: Any = None, category: Optional[str] = None) -> int:
        """Total number of records matching the filters, independent of any limit."""
        stmt = select(func.count(AppLog.id)).where(*self._filters(level, category))
        async with storage_guard(self.db, "count"):
            return (await self.db.execute(stmt)).scalar_one()

    async def delete_by_id(self, log_id: int) -> bool:
        """Remove one record; False when the id does not exist."""
        async with storage_guard(self.db, "delete"):
            result = await self.db.execute(delete(AppLog).where(AppLog.id == log_id))
            await self.db.commit()
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.debug("Deleted app log %s", log_id)
        return deleted

    async def clear(self) -> int:
        """Delete every record, returning how many were removed."""
        async with storage_guard(self.db, "clear"):
            result = await self.db.execute(delete(AppLog))
            await self.db.commit()
        removed = result.rowcount or 0
        logger.info("Cleared %d app logs", removed)
        return removed

    async def delete_older_than(self, days: int, now: Optional[datetime] = None) -> int:
        """Retention purge: drop records created more than ``days`` days ago."""
        if days < 0:
            raise InvalidInputError("days must be non-negative")
        cutoff = (now or utcnow()) - timedelta(days=days)
        async with storage_guard(self.db, "delete_older_than"):
            result = await self.db.execute(delete(AppLog).where(AppLog.created_at < cutoff))
            await self.db.commit()
        return result.rowcount or 0

    async def stats(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Totals for the admin dashboard.

        Returns:
            dict: ``total`` plus ``last_hour`` and ``last_24_hours`` windows,
            each with ``total``, ``errors`` and ``security`` counts.
        """
        now = now or utcnow()
        async with storage_guard(self.db, "stats"):
            total = (await self.db.execute(select(func.count(AppLog.id)))).scalar_one()
            last_hour = await self._window(now - timedelta(hours=1))
            last_day = await self._window(now - timedelta(hours=24))
        return {"total": total, "last_hour": last_hour, "last_24_hours": last_day}

    async def _window(self, since: datetime) -> dict[str, int]:
        stmt = select(
            func.count(AppLog.id),
            func.sum(case((AppLog.level == LogLevel.ERROR.value, 1), else_=0)),
            func.sum(case((AppLog.level == LogLevel.SECURITY.value, 1), else_=0)),
        ).where(AppLog.created_at > since)
        total, errors, security = (await self.db.execute(stmt)).one()
        return {"total": total or 0, "errors": errors or 0, "security": security or 0}

    @staticmethod
    def _filters(level: Any, category: Optional[str]) -> list:
        filters = []
        if level:
            filters.append(AppLog.level == parse_log_level(level).value)
        if category:
            filters.append(AppLog.category == _normalize_category(category))
        return filters
