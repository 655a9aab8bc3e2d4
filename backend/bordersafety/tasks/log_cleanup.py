"""
Log cleanup task module.

Periodically deletes application log entries older than the retention period
so the SQLite file does not grow without bound. Retention defaults to 30 days
and is configured with LOG_RETENTION_DAYS; the loop only runs when
LOG_CLEANUP_ENABLED is set.
"""
import asyncio
import logging
from typing import Any, Dict

from bordersafety.core.database import Database, utcnow
from bordersafety.services.app_log_store import AppLogStore

logger = logging.getLogger(__name__)


async def run_cleanup(database: Database, retention_days: int) -> Dict[str, Any]:
    """
    Run one retention purge.

    Returns:
        Dict: number of deleted entries, the retention used and a timestamp.
    """
    async with database.session() as db:
        deleted = await AppLogStore(db).delete_older_than(retention_days)
    if deleted > 0:
        logger.info("Log cleanup: deleted %d entries older than %d days", deleted, retention_days)
    else:
        logger.debug("Log cleanup: no entries older than %d days found", retention_days)
    return {
        "deleted_count": deleted,
        "retention_days": retention_days,
        "timestamp": utcnow(),
    }


async def log_cleanup_loop(database: Database, retention_days: int, interval: int = 3600):
    """Background loop, one purge every ``interval`` seconds until cancelled."""
    logger.info("Starting log cleanup loop with %d days retention", retention_days)
    while True:
        try:
            await run_cleanup(database, retention_days)
        except Exception:
            logger.exception("Log cleanup error")
        await asyncio.sleep(interval)
