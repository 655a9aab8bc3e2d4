"""
Border Safety test configuration.

Every test gets its own SQLite file under ``tmp_path``, so tests never share
state and never touch ./data. The HTTP client talks to the app in-process over
httpx's ASGI transport; the lifespan does not run there, so the fixtures wire
the database and a stub notifier onto ``app.state`` themselves.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from bordersafety.core.config import Settings
from bordersafety.core.database import Database
from bordersafety.main import create_app
from bordersafety.services.notifier import StubNotifier


# ── Settings ──────────────────────────────────────────────────────────

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file, no notification credentials."""
    return Settings(
        database_path=str(tmp_path / "test.sqlite"),
        default_threat_level="YELLOW",
        line_notify_token="",
        twilio_account_sid="",
        twilio_auth_token="",
        twilio_phone_number="",
        fcm_server_key="",
        sendgrid_api_key="",
        alert_sms_to="",
        alert_push_topic="",
        alert_email_to="",
        log_cleanup_enabled=False,
        environment="development",
    )


# ── Database ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def database(test_settings: Settings) -> AsyncGenerator[Database, None]:
    """An open storage handle with the schema created."""
    db = Database(test_settings.database_url, busy_timeout=5.0)
    await db.open()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


# ── HTTP client ───────────────────────────────────────────────────────

@pytest.fixture
def stub_notifier() -> StubNotifier:
    return StubNotifier()


@pytest_asyncio.fixture
async def app(test_settings: Settings, database: Database, stub_notifier: StubNotifier):
    application = create_app(test_settings)
    application.state.database = database
    application.state.notifiers = [stub_notifier]
    yield application
    application.state.database = None


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client bound to the app; requests come from 203.0.113.7."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Forwarded-For": "203.0.113.7"},
    ) as ac:
        yield ac
