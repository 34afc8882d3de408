"""Data rotation for cleaning up old database records."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aquafeeder.infra.database import Database

logger = logging.getLogger(__name__)

# The schedule table is configuration, not history, and is never rotated.
ROTATED_TABLES = ("telemetry_samples", "feed_events", "alerts")


class DataRotation:
    """Handles cleanup of old database records."""

    def __init__(
        self,
        database: Database,
        retention_days: int = 90,
    ) -> None:
        self.db = database
        self.retention_days = retention_days
        self._last_run: datetime | None = None

    @property
    def last_run(self) -> datetime | None:
        return self._last_run

    def _get_cutoff_date(self) -> str:
        """Get the cutoff date for deletion."""
        cutoff = datetime.now(UTC) - timedelta(days=self.retention_days)
        return cutoff.isoformat()

    async def rotate_table(self, table: str) -> int:
        """Delete rows older than the retention period from one table."""
        if table not in ROTATED_TABLES:
            raise ValueError(f"Table '{table}' is not subject to rotation")

        cutoff = self._get_cutoff_date()

        async with self.db.transaction() as conn:
            cursor = await conn.execute(
                f"DELETE FROM {table} WHERE timestamp < ?",  # noqa: S608
                (cutoff,),
            )

        deleted = cursor.rowcount
        if deleted > 0:
            logger.info("Deleted %d old rows from %s", deleted, table)
        return deleted

    async def vacuum_database(self) -> None:
        """Reclaim disk space after deletions."""
        await self.db.vacuum()
        logger.info("Database vacuumed")

    async def run_rotation(self, vacuum: bool = True) -> dict[str, int]:
        """
        Run full data rotation.

        Args:
            vacuum: Whether to vacuum database after deletion

        Returns:
            Dictionary with count of deleted records per table
        """
        logger.info(
            "Starting data rotation (retention: %d days)",
            self.retention_days,
        )

        results = {table: await self.rotate_table(table) for table in ROTATED_TABLES}

        total_deleted = sum(results.values())

        if vacuum and total_deleted > 0:
            await self.vacuum_database()

        self._last_run = datetime.now(UTC)

        logger.info(
            "Data rotation complete: %d total records deleted",
            total_deleted,
        )

        return results
