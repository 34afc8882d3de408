"""Aquafeeder - fish feeder telemetry, scheduling and alerting backend.

A Python backend for a single remote fish feeder featuring:
- Telemetry ingest (water temperature, feed-level distance) over HTTP
- SQLite sample log with retention rotation
- Live updates to viewers and the device over WebSocket
- Time-of-day feeding schedule plus manual feed command
- Deduplicated Telegram alerts for abnormal temperature and low feed

Usage:
    # Run with settings from .env
    aquafeeder

    # Run with a specific env file and debug logging
    aquafeeder -c production.env --debug
"""

__version__ = "0.1.0"
__app_name__ = "Aquafeeder"
