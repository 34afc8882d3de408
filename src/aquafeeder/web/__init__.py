"""HTTP and WebSocket surface."""

from aquafeeder.web.server import WebServer, create_web_app

__all__ = ["WebServer", "create_web_app"]
