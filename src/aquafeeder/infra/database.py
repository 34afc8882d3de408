"""SQLite database layer with async support."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

from aquafeeder.core.errors import DuplicateEntryError
from aquafeeder.core.telemetry import TelemetrySample

if TYPE_CHECKING:
    from aquafeeder.config.settings import DatabaseSettings

logger = logging.getLogger(__name__)

# SQL Schema definitions
SCHEMA_SQL = """
-- Telemetry samples (append-only)
CREATE TABLE IF NOT EXISTS telemetry_samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,  -- server receive time, UTC ISO-8601
    temperature REAL NOT NULL,
    feed_distance_cm REAL NOT NULL,
    observed_at TEXT NOT NULL  -- device clock, 'HH:MM'
);

-- Daily feeding schedule
CREATE TABLE IF NOT EXISTS feed_schedule (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    time TEXT NOT NULL UNIQUE,  -- 'HH:MM'
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Feed commands sent to the device
CREATE TABLE IF NOT EXISTS feed_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    source TEXT NOT NULL,  -- 'auto' or 'manual'
    hhmm TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Alert notification attempts
CREATE TABLE IF NOT EXISTS alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    alert_type TEXT NOT NULL,  -- 'temperature_abnormal', 'feed_depleted', 'combined'
    message TEXT,
    sent_successfully BOOLEAN DEFAULT TRUE,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_telemetry_samples_timestamp
    ON telemetry_samples(timestamp);
CREATE INDEX IF NOT EXISTS idx_feed_events_timestamp ON feed_events(timestamp);
CREATE INDEX IF NOT EXISTS idx_alerts_timestamp ON alerts(timestamp);
"""


@dataclass
class FeedEventRow:
    """Database row for a feed event."""

    id: int
    timestamp: datetime
    source: str
    hhmm: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "hhmm": self.hhmm,
        }


@dataclass
class AlertRow:
    """Database row for an alert attempt."""

    id: int
    timestamp: datetime
    alert_type: str
    message: str | None
    sent_successfully: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "alert_type": self.alert_type,
            "message": self.message,
            "sent_successfully": self.sent_successfully,
        }


def _to_utc_iso(ts: datetime | None) -> str:
    return (ts or datetime.now(UTC)).astimezone(UTC).isoformat()


class Database:
    """Async SQLite database for Aquafeeder."""

    def __init__(self, settings: DatabaseSettings) -> None:
        self.settings = settings
        self.db_path = Path(settings.path)
        self._connection: aiosqlite.Connection | None = None
        # One connection serves every request, so a commit or rollback
        # applies to all pending statements. Writers take turns.
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Connect to database and initialize schema."""
        # Ensure directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        # Initialize schema
        await self._connection.executescript(SCHEMA_SQL)
        await self._connection.commit()

        logger.info("Database connected: %s", self.db_path)

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Database closed")

    async def _ensure_connected(self) -> aiosqlite.Connection:
        """Ensure connection is available."""
        if self._connection is None:
            await self.connect()
        return self._connection  # type: ignore

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run writes and their commit without interleaving other writers.

        Rolls back on error; only this block's statements are pending then.
        """
        conn = await self._ensure_connected()
        async with self._write_lock:
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()

    async def vacuum(self) -> None:
        """Reclaim disk space. Must not run inside a transaction."""
        conn = await self._ensure_connected()
        async with self._write_lock:
            await conn.execute("VACUUM")

    # --- Telemetry Samples ---

    async def insert_sample(self, sample: TelemetrySample) -> TelemetrySample:
        """Insert a telemetry sample and return it with its id."""
        async with self.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO telemetry_samples
                    (timestamp, temperature, feed_distance_cm, observed_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    _to_utc_iso(sample.received_at),
                    sample.temperature,
                    sample.feed_distance_cm,
                    sample.observed_at,
                ),
            )

        return TelemetrySample(
            temperature=sample.temperature,
            feed_distance_cm=sample.feed_distance_cm,
            observed_at=sample.observed_at,
            received_at=sample.received_at,
            id=cursor.lastrowid,
        )

    async def get_recent_samples(
        self,
        hours: int = 1,
        limit: int = 10000,
    ) -> list[TelemetrySample]:
        """Get samples received in the last N hours, newest first."""
        conn = await self._ensure_connected()
        since = (datetime.now(UTC) - timedelta(hours=hours)).isoformat()

        async with conn.execute(
            """
            SELECT * FROM telemetry_samples
            WHERE timestamp >= ?
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (since, limit),
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_sample(row) for row in rows]

    async def get_latest_sample(self) -> TelemetrySample | None:
        """Get the most recent sample regardless of age."""
        conn = await self._ensure_connected()

        async with conn.execute(
            "SELECT * FROM telemetry_samples ORDER BY timestamp DESC, id DESC LIMIT 1"
        ) as cursor:
            row = await cursor.fetchone()
            return self._row_to_sample(row) if row else None

    @staticmethod
    def _row_to_sample(row: aiosqlite.Row) -> TelemetrySample:
        return TelemetrySample(
            id=row["id"],
            temperature=row["temperature"],
            feed_distance_cm=row["feed_distance_cm"],
            observed_at=row["observed_at"],
            received_at=datetime.fromisoformat(row["timestamp"]),
        )

    # --- Feed Schedule ---

    async def list_schedule_times(self) -> list[str]:
        """Get all schedule times in ascending order."""
        conn = await self._ensure_connected()

        async with conn.execute("SELECT time FROM feed_schedule ORDER BY time") as cursor:
            rows = await cursor.fetchall()
            return [row["time"] for row in rows]

    async def add_schedule_time(self, time: str) -> None:
        """Insert a schedule time.

        Raises:
            DuplicateEntryError: If the time is already stored
        """
        try:
            async with self.transaction() as conn:
                await conn.execute("INSERT INTO feed_schedule (time) VALUES (?)", (time,))
        except aiosqlite.IntegrityError as e:
            raise DuplicateEntryError(f"Schedule time already exists: {time}") from e

    async def remove_schedule_time(self, time: str) -> bool:
        """Delete a schedule time. Returns False if it was not stored."""
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM feed_schedule WHERE time = ?", (time,)
            )
        return cursor.rowcount > 0

    # --- Feed Events ---

    async def insert_feed_event(
        self,
        source: str,
        hhmm: str,
        timestamp: datetime | None = None,
    ) -> int:
        """Log a feed command."""
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "INSERT INTO feed_events (timestamp, source, hhmm) VALUES (?, ?, ?)",
                (_to_utc_iso(timestamp), source, hhmm),
            )
        return cursor.lastrowid  # type: ignore

    async def get_feed_events(
        self,
        hours: int = 24,
        limit: int = 100,
    ) -> list[FeedEventRow]:
        """Get feed events, newest first."""
        conn = await self._ensure_connected()
        since = (datetime.now(UTC) - timedelta(hours=hours)).isoformat()

        async with conn.execute(
            """
            SELECT * FROM feed_events
            WHERE timestamp >= ?
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (since, limit),
        ) as cursor:
            rows = await cursor.fetchall()
            return [
                FeedEventRow(
                    id=row["id"],
                    timestamp=datetime.fromisoformat(row["timestamp"]),
                    source=row["source"],
                    hhmm=row["hhmm"],
                )
                for row in rows
            ]

    # --- Alerts ---

    async def insert_alert(
        self,
        alert_type: str,
        message: str,
        sent_successfully: bool = True,
        timestamp: datetime | None = None,
    ) -> int:
        """Log an alert attempt."""
        async with self.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO alerts
                    (timestamp, alert_type, message, sent_successfully)
                VALUES (?, ?, ?, ?)
                """,
                (_to_utc_iso(timestamp), alert_type, message, sent_successfully),
            )
        return cursor.lastrowid  # type: ignore

    async def get_alerts(
        self,
        hours: int = 24,
        limit: int = 100,
    ) -> list[AlertRow]:
        """Get alert attempts, newest first."""
        conn = await self._ensure_connected()
        since = (datetime.now(UTC) - timedelta(hours=hours)).isoformat()

        async with conn.execute(
            """
            SELECT * FROM alerts
            WHERE timestamp >= ?
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (since, limit),
        ) as cursor:
            rows = await cursor.fetchall()
            return [
                AlertRow(
                    id=row["id"],
                    timestamp=datetime.fromisoformat(row["timestamp"]),
                    alert_type=row["alert_type"],
                    message=row["message"],
                    sent_successfully=bool(row["sent_successfully"]),
                )
                for row in rows
            ]
