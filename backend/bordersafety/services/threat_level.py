"""
Threat Level Store

Holds the single current threat level shown on the frontend banner. The value
is one keyed row in ``system_settings`` that is overwritten on every change;
earlier levels are not kept.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from bordersafety.core.database import storage_guard, utcnow
from bordersafety.core.exceptions import InvalidInputError
from bordersafety.models.setting import Setting

logger = logging.getLogger(__name__)

THREAT_LEVEL_KEY = "threat_level"
THREAT_LEVEL_DESCRIPTION = "Current border threat level shown on the public banner"


class ThreatLevel(str, Enum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    ORANGE = "ORANGE"
    RED = "RED"


def parse_threat_level(value: Any) -> ThreatLevel:
    """Case-insensitive ``ThreatLevel`` lookup; InvalidInputError when unknown."""
    if isinstance(value, ThreatLevel):
        return value
    try:
        return ThreatLevel(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(level.value for level in ThreatLevel)
        raise InvalidInputError(f"Level must be one of: {allowed}", detail=f"got {value!r}") from None


@dataclass(frozen=True)
class ThreatState:
    level: ThreatLevel
    updated_at: Optional[datetime] = None  # None until the level is first stored

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class ThreatChange:
    previous: ThreatState
    current: ThreatState

    @property
    def changed(self) -> bool:
        return self.previous.level != self.current.level


class ThreatLevelStore:
    """Single-slot threat level backed by one ``Setting`` row."""

    def __init__(self, db: AsyncSession, default: Any = ThreatLevel.YELLOW):
        self.db = db
        self.default = parse_threat_level(default)

    async def get_current(self) -> ThreatState:
        """
        Return the stored level, or the default when nothing valid is stored.

        Raises:
            StorageError: the database could not be read.
        """
        async with storage_guard(self.db, "get_threat_level"):
            return await self._read_state()

    async def _read_state(self) -> ThreatState:
        # populate_existing: the upsert in change_level bypasses the identity map
        stmt = (
            select(Setting)
            .where(Setting.key == THREAT_LEVEL_KEY)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return ThreatState(self.default)
        try:
            return ThreatState(ThreatLevel(row.value), row.updated_at)
        except ValueError:
            logger.warning("Stored threat level %r is not recognised, serving %s", row.value, self.default.value)
            return ThreatState(self.default, row.updated_at)

    async def set_level(self, level: Any) -> ThreatState:
        """
        Overwrite the current level.

        Raises:
            InvalidInputError: ``level`` is not a ThreatLevel member; the stored
                value is left untouched.
            StorageError: the database could not be written.
        """
        return (await self.change_level(level)).current

    async def change_level(self, level: Any) -> ThreatChange:
        """
        Overwrite the current level and report the level it replaced.

        The previous value is read inside the same write transaction as the
        upsert, so concurrent changes each see the value they replaced.
        """
        new_level = parse_threat_level(level)
        now = utcnow()
        stmt = sqlite_insert(Setting).values(
            key=THREAT_LEVEL_KEY,
            value=new_level.value,
            description=THREAT_LEVEL_DESCRIPTION,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Setting.key],
            set_={"value": new_level.value, "updated_at": now},
        )
        # No-op write so SQLite grants the writer lock before the read below
        take_lock = (
            update(Setting)
            .where(Setting.key == THREAT_LEVEL_KEY)
            .values(key=Setting.key, updated_at=Setting.updated_at)  # Explicit value keeps onupdate away
            .execution_options(synchronize_session=False)
        )
        async with storage_guard(self.db, "set_threat_level"):
            if self.db.in_transaction():
                # A read snapshot from earlier in this session cannot be upgraded safely
                await self.db.commit()
            await self.db.execute(take_lock)
            previous = await self._read_state()
            await self.db.execute(stmt)
            await self.db.commit()

        if previous.level != new_level:
            logger.info("Threat level changed from %s to %s", previous.level.value, new_level.value)
        return ThreatChange(previous=previous, current=ThreatState(new_level, now))

    async def ensure_default(self) -> ThreatState:
        """Store the default level when no row exists yet (first run)."""
        async with storage_guard(self.db, "seed_threat_level"):
            result = await self.db.execute(select(Setting).where(Setting.key == THREAT_LEVEL_KEY))
            row = result.scalar_one_or_none()
            if row is not None:
                return await self.get_current()
            self.db.add(Setting(
                key=THREAT_LEVEL_KEY,
                value=self.default.value,
                description=THREAT_LEVEL_DESCRIPTION,
                updated_at=utcnow(),
            ))
            await self.db.commit()
        logger.info("Threat level initialised to %s", self.default.value)
        return await self.get_current()
