"""aiohttp application factory and error mapping."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from aiohttp import web

from aquafeeder.core.errors import (
    AquafeederError,
    DuplicateEntryError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from aquafeeder.web.routes import CONTAINER_KEY, routes

if TYPE_CHECKING:
    from aquafeeder.app import Container

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ERROR_STATUS: dict[type[AquafeederError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    DuplicateEntryError: 409,
    PersistenceError: 500,
}


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Turn domain errors into JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except AquafeederError as e:
        status = ERROR_STATUS.get(type(e), 500)
        log = logger.error if status >= 500 else logger.warning
        log(f"{request.method} {request.path} failed ({status}): {e.message}")
        return web.json_response({"error": e.message}, status=status)
    except Exception as e:
        logger.error(f"Unhandled error in {request.method} {request.path}", exc_info=True)
        return web.json_response({"error": str(e)}, status=500)


def create_web_app(container: Container) -> web.Application:
    """Build the aiohttp application for a container."""
    app = web.Application(middlewares=[error_middleware])
    app[CONTAINER_KEY] = container
    app.add_routes(routes)

    static_dir = container.settings.server.static_dir
    if static_dir.is_dir():
        index = static_dir / "index.html"
        if index.is_file():

            async def dashboard(request: web.Request) -> web.FileResponse:
                return web.FileResponse(index)

            app.router.add_get("/", dashboard)
        app.router.add_static("/", static_dir, show_index=False)
        logger.info(f"Serving static files from {static_dir}")

    return app


class WebServer:
    """Run the aiohttp application on the configured host and port."""

    def __init__(self, container: Container) -> None:
        self.container = container
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        settings = self.container.settings.server
        self._runner = web.AppRunner(create_web_app(self.container))
        await self._runner.setup()
        site = web.TCPSite(self._runner, settings.host, settings.port)
        await site.start()
        logger.info(f"HTTP server listening on http://{settings.host}:{settings.port}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP server stopped")
