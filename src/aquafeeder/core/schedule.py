"""Feeding schedule administration."""

from __future__ import annotations

import logging
import re
from typing import Protocol

from aquafeeder.core.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

TIME_OF_DAY_PATTERN = re.compile(r"\d{2}:\d{2}")


def parse_time_of_day(value: object, field_name: str = "time") -> str:
    """Validate an "HH:MM" string and return it unchanged.

    Raises:
        ValidationError: If the value is not a zero-padded 24h time
    """
    if not isinstance(value, str) or not TIME_OF_DAY_PATTERN.fullmatch(value):
        raise ValidationError(f"{field_name} must use the HH:MM format")

    hours, minutes = (int(part) for part in value.split(":"))
    if hours > 23 or minutes > 59:
        raise ValidationError(f"{field_name} is not a valid time of day: {value}")

    return value


class ScheduleStore(Protocol):
    """Persistence for schedule times."""

    async def list_schedule_times(self) -> list[str]:
        """Return all times, ascending."""
        ...

    async def add_schedule_time(self, time: str) -> None:
        """Store a time; raises DuplicateEntryError if present."""
        ...

    async def remove_schedule_time(self, time: str) -> bool:
        """Delete a time; returns False if it was not stored."""
        ...


class ScheduleService:
    """Validated access to the feeding schedule."""

    def __init__(self, store: ScheduleStore) -> None:
        self.store = store

    async def list_times(self) -> list[str]:
        """Get all schedule times in ascending order."""
        times = await self.store.list_schedule_times()
        logger.debug("Current schedule has %d entries", len(times))
        return times

    async def add(self, time: object) -> str:
        """Register a new daily feeding time.

        Raises:
            ValidationError: If the time is malformed
            DuplicateEntryError: If the time is already registered
        """
        value = parse_time_of_day(time)
        await self.store.add_schedule_time(value)
        logger.info("Schedule time added: %s", value)
        return value

    async def remove(self, time: object) -> str:
        """Delete a daily feeding time.

        Raises:
            ValidationError: If the time is malformed
            NotFoundError: If the time is not registered
        """
        value = parse_time_of_day(time)
        if not await self.store.remove_schedule_time(value):
            raise NotFoundError(f"Schedule time not found: {value}")
        logger.info("Schedule time removed: %s", value)
        return value
