"""Status, threat level and broadcast router tests."""
from datetime import datetime
from unittest.mock import patch
from urllib.parse import parse_qs

import httpx
from httpx import AsyncClient

from bordersafety.core.database import utcnow
from bordersafety.core.exceptions import StorageError
from bordersafety.services.app_log_store import AppLogStore
from bordersafety.services.notifier import SmsNotifier

THREAT = "/api/v1/status/threat-level"
BROADCASTS = "/api/v1/status/broadcasts"


class TestSystemStatus:
    async def test_status(self, client: AsyncClient):
        resp = await client.get("/api/v1/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "operational"
        assert data["threat_level"] == "YELLOW"
        assert data["disclaimer"]

    async def test_health(self, client: AsyncClient):
        for path in ("/health", "/api/v1/health"):
            resp = await client.get(path)
            assert resp.status_code == 200
            assert resp.json()["status"] == "ok"
            assert resp.json()["checks"]["database"] == "ok"

    async def test_health_degraded_without_database(self, client: AsyncClient, app):
        app.state.database = None
        resp = await client.get("/health")
        assert resp.json()["status"] == "degraded"

    async def test_unknown_route(self, client: AsyncClient):
        resp = await client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert resp.json()["status_code"] == 404


class TestThreatLevel:
    async def test_default(self, client: AsyncClient):
        resp = await client.get(THREAT)
        assert resp.status_code == 200
        assert resp.json()["level"] == "YELLOW"
        assert resp.json()["updated_at"] is None

    async def test_update(self, client: AsyncClient):
        resp = await client.put(THREAT, json={"level": "RED"})
        assert resp.status_code == 200
        assert resp.json()["level"] == "RED"
        assert resp.json()["updated_at"] is not None

        assert (await client.get(THREAT)).json()["level"] == "RED"
        assert (await client.get("/api/v1/status")).json()["threat_level"] == "RED"

    async def test_invalid_level(self, client: AsyncClient):
        await client.put(THREAT, json={"level": "ORANGE"})
        resp = await client.put(THREAT, json={"level": "PURPLE"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"
        assert (await client.get(THREAT)).json()["level"] == "ORANGE"

    async def test_missing_level(self, client: AsyncClient):
        assert (await client.put(THREAT, json={})).status_code == 400

    async def test_change_is_logged(self, client: AsyncClient, database):
        await client.put(THREAT, json={"level": "GREEN"})
        async with database.session() as session:
            entries = await AppLogStore(session).list(category="STATUS")
        assert len(entries) == 1
        assert entries[0].meta == {"previous": "YELLOW", "level": "GREEN"}
        assert entries[0].ip == "203.0.113.7"

    async def test_update_timestamp_not_before_call(self, client: AsyncClient):
        before = utcnow()
        resp = await client.put(THREAT, json={"level": "RED"})
        assert datetime.fromisoformat(resp.json()["updated_at"].replace("Z", "+00:00")) >= before

    async def test_change_delivers_over_sms(self, client: AsyncClient, app):
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(201, json={"sid": "SM1"})

        app.state.notifiers = [
            SmsNotifier("AC123", "secret", "+15550000000", to="+66810000000", transport=httpx.MockTransport(handler)),
        ]
        resp = await client.put(THREAT, json={"level": "RED"})
        assert resp.status_code == 200
        assert len(captured) == 1
        form = parse_qs(captured[0].content.decode())
        assert form["To"] == ["+66810000000"]
        assert "RED" in form["Body"][0]

    async def test_audit_failure_does_not_fail_update(self, client: AsyncClient):
        with patch.object(AppLogStore, "append", side_effect=StorageError("Storage unavailable during append")):
            resp = await client.put(THREAT, json={"level": "ORANGE"})
        assert resp.status_code == 200
        assert resp.json()["level"] == "ORANGE"
        assert (await client.get(THREAT)).json()["level"] == "ORANGE"

    async def test_change_notifies(self, client: AsyncClient, stub_notifier):
        await client.put(THREAT, json={"level": "RED"})
        await client.put(THREAT, json={"level": "RED"})
        assert len(stub_notifier.sent) == 1
        message, context = stub_notifier.sent[0]
        assert "RED" in message
        assert context["title"] == "Threat level update"


class TestBroadcasts:
    async def test_create_list_delete(self, client: AsyncClient):
        resp = await client.post(BROADCASTS, json={"message": "Road 90 closed", "from": "ops"})
        assert resp.status_code == 201
        broadcast = resp.json()["broadcast"]
        assert broadcast["id"].startswith("bc_")
        assert broadcast["from"] == "ops"

        listing = (await client.get(BROADCASTS)).json()
        assert listing["count"] == 1
        assert listing["broadcasts"][0]["message"] == "Road 90 closed"

        resp = await client.delete(f"{BROADCASTS}/{broadcast['id']}")
        assert resp.status_code == 200
        assert (await client.get(BROADCASTS)).json()["count"] == 0

    async def test_default_sender(self, client: AsyncClient):
        resp = await client.post(BROADCASTS, json={"message": "Shelter open"})
        assert resp.json()["broadcast"]["from"] == "admin"

    async def test_blank_message(self, client: AsyncClient):
        resp = await client.post(BROADCASTS, json={"message": "   "})
        assert resp.status_code == 400

    async def test_delete_missing(self, client: AsyncClient):
        resp = await client.delete(f"{BROADCASTS}/bc_0_000000")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"
