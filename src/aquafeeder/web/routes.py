"""HTTP handlers for telemetry, feeding and schedule administration."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from aiohttp import web

from aquafeeder.core.errors import ValidationError
from aquafeeder.core.telemetry import parse_hours

if TYPE_CHECKING:
    from aquafeeder.app import Container

logger = logging.getLogger(__name__)

CONTAINER_KEY: web.AppKey[Container] = web.AppKey("container")

routes = web.RouteTableDef()

EMPTY_SAMPLE = {"temperature": 0, "feed_distance_cm": 0, "observed_at": "--:--"}


async def _read_json(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body, or raise ValidationError."""
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError both land here
        raise ValidationError("Body is not valid UTF-8 JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Body must be a JSON object")
    return body


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _schedule_time_from(body: dict[str, Any], request: web.Request) -> Any:
    # Older dashboards post the time under "jadwal".
    for key in ("time", "jadwal"):
        if key in body:
            return body[key]
    return request.query.get("time")


@routes.get("/api/sensor/current")
async def current_sample(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    sample = await container.telemetry.latest()
    if sample is None:
        return web.json_response(EMPTY_SAMPLE)
    logger.info("Latest sample sent to dashboard")
    return web.json_response(sample.to_dict())


@routes.post("/api/sensor/readings")
async def ingest_reading(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    body = await _read_json(request)
    sample = await container.telemetry.ingest(body)
    return web.json_response(
        {"message": "Telemetry stored", "data": sample.to_dict()},
        status=201,
    )


@routes.get("/api/sensor/logs")
async def sample_log(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    samples = await container.telemetry.recent(request.query.get("hours", "1"))
    return web.json_response([sample.to_dict() for sample in samples])


@routes.post("/api/sensor/feed")
async def manual_feed(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    event = await container.feeding.fire_manual(container.clock())
    return web.json_response({"message": "Manual feed sent", "event": event.to_dict()})


@routes.get("/api/sensor/feed/logs")
async def feed_log(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    hours = parse_hours(request.query.get("hours", "24"))
    events = await container.database.get_feed_events(hours=hours)
    return web.json_response([event.to_dict() for event in events])


@routes.get("/api/sensor/schedule")
async def list_schedule(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    return web.json_response(await container.schedule.list_times())


@routes.post("/api/sensor/schedule")
async def add_schedule(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    body = await _read_json(request)
    time = await container.schedule.add(_schedule_time_from(body, request))
    return web.json_response({"message": "Schedule saved", "time": time}, status=201)


@routes.delete("/api/sensor/schedule")
async def remove_schedule(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    body = await _read_json(request)
    time = await container.schedule.remove(_schedule_time_from(body, request))
    return web.json_response({"message": "Schedule deleted", "time": time})


@routes.post("/api/sensor/schedule/run")
async def run_schedule_now(request: web.Request) -> web.Response:
    """Evaluate the feeding schedule for the current minute right away."""
    container = request.app[CONTAINER_KEY]
    ran = await container.scheduler.run_task_now("feeding_schedule")
    return web.json_response(
        {"ran": ran, "last_fed_at": _isoformat(container.feeding.last_fed_at)}
    )


@routes.get("/api/sensor/alerts")
async def alert_log(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    hours = parse_hours(request.query.get("hours", "24"))
    alerts = await container.database.get_alerts(hours=hours)
    return web.json_response([alert.to_dict() for alert in alerts])


@routes.get("/api/sensor/status")
async def status(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    return web.json_response(
        {
            "alert_cooldowns": container.cooldowns.snapshot(),
            "feeding": container.feeding.stats(),
            "scheduler": container.scheduler.get_stats(),
            "last_rotation": _isoformat(container.rotation.last_run),
            "subscribers": container.broadcast.client_count,
            "pending_alerts": container.telemetry.pending_alerts,
        }
    )


@routes.get("/ws")
async def websocket(request: web.Request) -> web.WebSocketResponse:
    container = request.app[CONTAINER_KEY]
    return await container.broadcast.handle(request)
