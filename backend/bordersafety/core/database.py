"""
Database Connection Module

Creates the SQLAlchemy 2.0 async engine and session factory for the SQLite file
behind every store. The engine is owned by an explicitly constructed
``Database`` handle with an open/close lifecycle; the FastAPI lifespan opens one
and places it on ``app.state`` and the CLI opens its own.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, AsyncIterator

from fastapi import Request
from sqlalchemy import DateTime, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from bordersafety.core.exceptions import StorageError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime column.

    SQLite has no timezone support, so values are stored as naive UTC and come
    back with ``tzinfo=timezone.utc`` attached.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """
    ORM Model Base Class

    SQLAlchemy 2.0 declarative base class that all data models inherit from.
    """
    pass


class Database:
    """
    Storage handle wrapping the async engine and its session factory.

    Usage::

        database = Database(settings.database_url)
        await database.open()
        async with database.session() as session:
            ...
        await database.close()

    or ``async with Database(url) as database: ...``.
    """

    def __init__(self, url: str, *, echo: bool = False, busy_timeout: float = 30.0):
        self.url = url
        self.echo = echo
        self.busy_timeout = busy_timeout
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    async def open(self, create_tables: bool = True) -> "Database":
        """Create the engine, install connection pragmas and (optionally) the schema."""
        if self.engine is not None:
            return self

        db_file = make_url(self.url).database
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)

        kwargs = {"echo": self.echo, "connect_args": {"timeout": self.busy_timeout}}
        if ":memory:" in self.url:
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"]["check_same_thread"] = False
        self.engine = create_async_engine(self.url, **kwargs)

        @event.listens_for(self.engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={int(self.busy_timeout * 1000)}")
            cursor.close()

        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Keep attribute state readable after commit
        )

        if create_tables:
            await self.create_all()
        logger.info("Database opened: %s", self.url)
        return self

    async def create_all(self) -> None:
        # Register every table on Base.metadata before creating it
        import bordersafety.models  # noqa: F401

        try:
            async with self._require_engine().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to initialise database schema", detail=str(exc)) from exc

    async def drop_all(self) -> None:
        import bordersafety.models  # noqa: F401

        async with self._require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self._session_factory = None
        logger.info("Database closed: %s", self.url)

    async def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        if self.engine is None:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Scoped session, always closed on exit."""
        if self._session_factory is None:
            raise StorageError("Database is not open")
        async with self._session_factory() as session:
            yield session

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise StorageError("Database is not open")
        return self.engine

    async def __aenter__(self) -> "Database":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


@asynccontextmanager
async def storage_guard(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """
    Translate SQLAlchemy failures inside the block into ``StorageError``.

    The session is rolled back first so a failed write never leaves a
    half-applied transaction behind for the next operation.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        try:
            await session.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback after failed %s also failed", operation, exc_info=True)
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageError(f"Storage unavailable during {operation}", detail=str(exc)) from exc


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI Dependency: Get Database Session

    Opens a session on the ``Database`` the lifespan placed on ``app.state``
    and closes it after the request.
    """
    database: Database | None = getattr(request.app.state, "database", None)
    if database is None:
        raise StorageError("Database is not configured")
    async with database.session() as session:
        yield session
