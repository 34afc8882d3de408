"""WebSocket fan-out to dashboards and the feeder device."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any

from aiohttp import WSCloseCode, web

logger = logging.getLogger(__name__)


class BroadcastHub:
    """Push named events to every connected WebSocket.

    Publishing never raises; a subscriber that fails or stalls is dropped.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._clients: set[web.WebSocketResponse] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def subscribe(self, ws: web.WebSocketResponse) -> None:
        self._clients.add(ws)
        logger.info("Subscriber connected (%d total)", len(self._clients))

    def unsubscribe(self, ws: web.WebSocketResponse) -> None:
        if ws in self._clients:
            self._clients.discard(ws)
            logger.info("Subscriber disconnected (%d total)", len(self._clients))

    async def publish(self, event: str, payload: Any) -> None:
        """Send an event to all subscribers without waiting for any reply."""
        clients = [ws for ws in self._clients if not ws.closed]
        if not clients:
            logger.debug("No subscribers for %s", event)
            return

        message = json.dumps({"event": event, "data": payload}, default=str)
        results = await asyncio.gather(
            *[self._send(ws, message) for ws in clients], return_exceptions=True
        )

        for ws, result in zip(clients, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Dropping subscriber after failed send: %s", result)
                self.unsubscribe(ws)

        logger.debug("Published %s to %d subscribers", event, len(clients))

    async def _send(self, ws: web.WebSocketResponse, message: str) -> None:
        await asyncio.wait_for(ws.send_str(message), self.send_timeout)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        """aiohttp handler that keeps a subscriber connection open."""
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)
        self.subscribe(ws)

        try:
            async for msg in ws:
                # Subscribers only listen; inbound frames are ignored.
                logger.debug("Ignoring inbound frame of type %s", msg.type)
        finally:
            self.unsubscribe(ws)

        return ws

    async def close(self) -> None:
        """Close every subscriber connection."""
        clients = list(self._clients)
        self._clients.clear()
        for ws in clients:
            with contextlib.suppress(Exception):
                await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
        logger.info("Broadcast hub closed %d connections", len(clients))
