"""Integration tests for the HTTP API and WebSocket feed."""

import asyncio
from datetime import UTC, datetime

import pytest
from aiohttp.test_utils import TestClient, TestServer

from aquafeeder.app import create_app
from aquafeeder.config.settings import (
    DatabaseSettings,
    ServerSettings,
    Settings,
    TelegramSettings,
)
from aquafeeder.web import create_web_app

# Today, so rows stamped with it fall inside the history windows.
FIXED_NOW = datetime.now(UTC).replace(hour=9, minute=12, second=0, microsecond=0)

READING = {"suhu": 26.5, "pakan_cm": 4.0, "waktu": "09:12"}


@pytest.fixture
async def container(tmp_path):
    """Application container backed by a temporary database."""
    settings = Settings(
        telegram=TelegramSettings(bot_token="", chat_ids=[]),
        database=DatabaseSettings(path=tmp_path / "web.db"),
        server=ServerSettings(static_dir=tmp_path / "no-dashboard"),
    )
    container = await create_app(settings=settings, clock=lambda: FIXED_NOW)

    yield container

    await container.broadcast.close()
    await container.telemetry.drain()
    await container.database.close()


@pytest.fixture
async def client(container):
    """HTTP test client for the container's web app."""
    async with TestClient(TestServer(create_web_app(container))) as client:
        yield client


class TestTelemetryRoutes:
    """Tests for /api/sensor/readings, /current and /logs."""

    @pytest.mark.asyncio
    async def test_current_without_data(self, client):
        resp = await client.get("/api/sensor/current")

        assert resp.status == 200
        assert await resp.json() == {
            "temperature": 0,
            "feed_distance_cm": 0,
            "observed_at": "--:--",
        }

    @pytest.mark.asyncio
    async def test_post_reading(self, client):
        resp = await client.post("/api/sensor/readings", json=READING)

        assert resp.status == 201
        body = await resp.json()
        assert body["data"]["temperature"] == 26.5
        assert body["data"]["observed_at"] == "09:12"

        current = await (await client.get("/api/sensor/current")).json()
        assert current["id"] == body["data"]["id"]

    @pytest.mark.asyncio
    async def test_post_incomplete_reading(self, client, container):
        resp = await client.post("/api/sensor/readings", json={"suhu": 26.5})

        assert resp.status == 400
        assert "error" in await resp.json()
        assert await container.database.get_latest_sample() is None

    @pytest.mark.asyncio
    async def test_post_invalid_json(self, client):
        resp = await client.post(
            "/api/sensor/readings",
            data="{not json",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_post_body_not_utf8(self, client, container):
        resp = await client.post(
            "/api/sensor/readings",
            data=b'{"suhu": "\xff"}',
            headers={"Content-Type": "application/json"},
        )

        assert resp.status == 400
        assert "codec" not in (await resp.json())["error"]
        assert await container.database.get_latest_sample() is None

    @pytest.mark.asyncio
    async def test_logs(self, client):
        await client.post("/api/sensor/readings", json=READING)
        await client.post("/api/sensor/readings", json={**READING, "suhu": 27.0})

        resp = await client.get("/api/sensor/logs", params={"hours": "2"})

        assert resp.status == 200
        temperatures = [row["temperature"] for row in await resp.json()]
        assert temperatures == [27.0, 26.5]

    @pytest.mark.asyncio
    async def test_logs_bad_hours(self, client):
        resp = await client.get("/api/sensor/logs", params={"hours": "soon"})

        assert resp.status == 400


class TestScheduleRoutes:
    """Tests for /api/sensor/schedule."""

    @pytest.mark.asyncio
    async def test_schedule_lifecycle(self, client):
        resp = await client.post("/api/sensor/schedule", json={"time": "07:30"})
        assert resp.status == 201

        resp = await client.post("/api/sensor/schedule", json={"jadwal": "18:00"})
        assert resp.status == 201

        resp = await client.get("/api/sensor/schedule")
        assert await resp.json() == ["07:30", "18:00"]

        resp = await client.post("/api/sensor/schedule", json={"time": "07:30"})
        assert resp.status == 409

        resp = await client.delete("/api/sensor/schedule", params={"time": "07:30"})
        assert resp.status == 200

        resp = await client.delete("/api/sensor/schedule", json={"time": "07:30"})
        assert resp.status == 404

        resp = await client.get("/api/sensor/schedule")
        assert await resp.json() == ["18:00"]

    @pytest.mark.asyncio
    async def test_run_now_fires_due_feed(self, client, container):
        await client.post("/api/sensor/schedule", json={"time": "09:12"})

        resp = await client.post("/api/sensor/schedule/run")

        assert resp.status == 200
        assert await resp.json() == {"ran": True, "last_fed_at": FIXED_NOW.isoformat()}
        assert [e.source.value for e in container.feeding.history] == ["auto"]

    @pytest.mark.asyncio
    async def test_run_now_respects_dedup(self, client, container):
        await client.post("/api/sensor/schedule", json={"time": "09:12"})
        await client.post("/api/sensor/schedule/run")

        resp = await client.post("/api/sensor/schedule/run")

        assert (await resp.json())["ran"] is True
        assert len(container.feeding.history) == 1
        stats = container.scheduler.get_task("feeding_schedule").stats
        assert stats["run_count"] == 2

    @pytest.mark.asyncio
    async def test_run_now_outside_schedule(self, client, container):
        await client.post("/api/sensor/schedule", json={"time": "18:00"})

        resp = await client.post("/api/sensor/schedule/run")

        assert await resp.json() == {"ran": True, "last_fed_at": None}
        assert container.feeding.history == []

    @pytest.mark.asyncio
    async def test_invalid_time(self, client):
        resp = await client.post("/api/sensor/schedule", json={"time": "25:00"})

        assert resp.status == 400
        assert await (await client.get("/api/sensor/schedule")).json() == []


class TestFeedRoutes:
    """Tests for manual feeding and status."""

    @pytest.mark.asyncio
    async def test_manual_feed(self, client, container):
        resp = await client.post("/api/sensor/feed")

        assert resp.status == 200
        event = (await resp.json())["event"]
        assert event["source"] == "manual"
        assert event["hhmm"] == "09:12"
        assert event["buzzer"] is True
        assert container.feeding.last_fed_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_manual_feed_suppresses_scheduled_tick(self, client, container):
        await client.post("/api/sensor/schedule", json={"time": "09:12"})
        await client.post("/api/sensor/feed")

        assert await container.feeding.evaluate_tick(FIXED_NOW) is None
        assert len(container.feeding.history) == 1

    @pytest.mark.asyncio
    async def test_feed_log(self, client):
        await client.post("/api/sensor/feed")

        resp = await client.get("/api/sensor/feed/logs", params={"hours": "24"})

        assert resp.status == 200
        rows = await resp.json()
        assert len(rows) == 1
        assert rows[0]["source"] == "manual"
        assert rows[0]["hhmm"] == "09:12"
        assert rows[0]["timestamp"] == FIXED_NOW.isoformat()

    @pytest.mark.asyncio
    async def test_feed_log_bad_hours(self, client):
        resp = await client.get("/api/sensor/feed/logs", params={"hours": "0"})

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_alert_log_records_undelivered_alert(self, client, container):
        await client.post("/api/sensor/readings", json={**READING, "suhu": 15.0})
        await container.telemetry.drain()

        resp = await client.get("/api/sensor/alerts")

        assert resp.status == 200
        rows = await resp.json()
        assert [row["alert_type"] for row in rows] == ["temperature_abnormal"]
        # no bot token in these settings
        assert rows[0]["sent_successfully"] is False

    @pytest.mark.asyncio
    async def test_alert_log_bad_hours(self, client):
        resp = await client.get("/api/sensor/alerts", params={"hours": "week"})

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_status(self, client):
        await client.post("/api/sensor/feed")

        resp = await client.get("/api/sensor/status")

        assert resp.status == 200
        body = await resp.json()
        assert set(body["alert_cooldowns"]) == {
            "temperature_abnormal",
            "feed_depleted",
            "combined",
        }
        assert body["feeding"]["last_fed_at"] == FIXED_NOW.isoformat()
        assert set(body["scheduler"]["tasks"]) == {"feeding_schedule", "data_rotation"}
        assert body["subscribers"] == 0
        assert body["last_rotation"] is None


class TestWebSocket:
    """Tests for the live event feed."""

    async def _wait_for_subscriber(self, container) -> None:
        for _ in range(50):
            if container.broadcast.client_count == 1:
                return
            await asyncio.sleep(0.01)
        raise AssertionError("subscriber never registered")

    @pytest.mark.asyncio
    async def test_reading_is_pushed(self, client, container):
        ws = await client.ws_connect("/ws")
        await self._wait_for_subscriber(container)

        await client.post("/api/sensor/readings", json=READING)
        message = await asyncio.wait_for(ws.receive_json(), timeout=2)

        assert message["event"] == "sensor-update"
        assert message["data"]["temperature"] == 26.5
        await ws.close()

    @pytest.mark.asyncio
    async def test_manual_feed_is_pushed(self, client, container):
        ws = await client.ws_connect("/ws")
        await self._wait_for_subscriber(container)

        await client.post("/api/sensor/feed")
        first = await asyncio.wait_for(ws.receive_json(), timeout=2)
        second = await asyncio.wait_for(ws.receive_json(), timeout=2)

        assert first == {"event": "feed-command", "data": {"source": "manual", "buzzer": True}}
        assert second["event"] == "feed-fired"
        await ws.close()
