"""
Broadcast Store

CRUD over admin broadcast messages listed by the frontend status panel.
"""
import logging
import secrets
import time
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bordersafety.core.database import storage_guard, utcnow
from bordersafety.core.exceptions import InvalidInputError
from bordersafety.models.broadcast import Broadcast

logger = logging.getLogger(__name__)

MAX_BROADCAST_LENGTH = 1000


def _new_broadcast_id() -> str:
    # Millisecond stamp keeps ids sortable; the suffix avoids same-ms clashes
    return f"bc_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


class BroadcastStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, limit: int = 100) -> list:
        stmt = select(Broadcast).order_by(Broadcast.created_at.desc(), Broadcast.id.desc()).limit(limit)
        async with storage_guard(self.db, "list_broadcasts"):
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def create(self, message: Optional[str], from_user: str = "admin") -> Broadcast:
        text = (message or "").strip()
        if not text:
            raise InvalidInputError("Broadcast message is required")
        if len(text) > MAX_BROADCAST_LENGTH:
            raise InvalidInputError(f"Broadcast message must be at most {MAX_BROADCAST_LENGTH} characters")
        broadcast = Broadcast(
            id=_new_broadcast_id(),
            message=text,
            from_user=from_user or "admin",
            created_at=utcnow(),
        )
        async with storage_guard(self.db, "create_broadcast"):
            self.db.add(broadcast)
            await self.db.commit()
        logger.info("New broadcast %s: %s", broadcast.id, text[:50])
        return broadcast

    async def delete(self, broadcast_id: str) -> bool:
        async with storage_guard(self.db, "delete_broadcast"):
            result = await self.db.execute(delete(Broadcast).where(Broadcast.id == broadcast_id))
            await self.db.commit()
        return (result.rowcount or 0) > 0
