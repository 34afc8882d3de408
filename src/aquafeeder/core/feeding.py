"""Feeding trigger evaluator with schedule matching and dedup."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from aquafeeder.core.schedule import ScheduleStore
    from aquafeeder.core.telemetry import Broadcaster

logger = logging.getLogger(__name__)

FEED_COMMAND_EVENT = "feed-command"
FEED_FIRED_EVENT = "feed-fired"


class FeedLog(Protocol):
    """Audit trail of feed commands."""

    async def insert_feed_event(
        self,
        source: str,
        hhmm: str,
        timestamp: datetime | None = None,
    ) -> int: ...


class FeedSource(Enum):
    """What triggered a feed."""

    AUTO = "auto"
    MANUAL = "manual"


@dataclass(frozen=True)
class FeedEvent:
    """A feed command that was sent to the device."""

    source: FeedSource
    fired_at: datetime
    hhmm: str
    buzzer: bool

    @property
    def command(self) -> dict[str, Any]:
        """Payload for the device."""
        return {"source": self.source.value, "buzzer": self.buzzer}

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "fired_at": self.fired_at.isoformat(),
            "hhmm": self.hhmm,
            "buzzer": self.buzzer,
        }


class FeedingTriggerEvaluator:
    """Fire the feeder on schedule or on demand, once per minute at most.

    Scheduled and manual triggers share ``last_fed_at``: whichever fires
    first suppresses a scheduled match inside the dedup window.
    """

    def __init__(
        self,
        schedule: ScheduleStore,
        actuator: Broadcaster,
        broadcaster: Broadcaster,
        dedup_window: timedelta = timedelta(seconds=60),
        history_size: int = 100,
        feed_log: FeedLog | None = None,
    ) -> None:
        self.schedule = schedule
        self.actuator = actuator
        self.broadcaster = broadcaster
        self.dedup_window = dedup_window
        self.feed_log = feed_log

        self._last_fed_at: datetime | None = None
        self._history: deque[FeedEvent] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()

    @property
    def last_fed_at(self) -> datetime | None:
        return self._last_fed_at

    @property
    def history(self) -> list[FeedEvent]:
        """Most recent feed events, oldest first."""
        return list(self._history)

    async def evaluate_tick(self, now: datetime) -> FeedEvent | None:
        """Feed if ``now`` falls on a schedule time not yet served.

        Returns:
            The fired event, or None if nothing was due
        """
        hhmm = now.strftime("%H:%M")
        times = await self.schedule.list_schedule_times()
        if hhmm not in times:
            return None

        async with self._lock:
            last = self._last_fed_at
            if last is not None and now - last <= self.dedup_window:
                logger.debug(
                    "Scheduled feed %s skipped, last feed at %s", hhmm, last.isoformat()
                )
                return None

            event = self._record(FeedSource.AUTO, now, buzzer=False)

        await self._emit(event)
        logger.info("Automatic feed sent: %s", hhmm)
        return event

    async def fire_manual(self, now: datetime) -> FeedEvent:
        """Feed immediately, ignoring the schedule and the dedup window."""
        async with self._lock:
            event = self._record(FeedSource.MANUAL, now, buzzer=True)

        await self._emit(event)
        logger.warning("Manual feed sent at %s", event.hhmm)
        return event

    def _record(self, source: FeedSource, now: datetime, buzzer: bool) -> FeedEvent:
        event = FeedEvent(
            source=source,
            fired_at=now,
            hhmm=now.strftime("%H:%M"),
            buzzer=buzzer,
        )
        self._last_fed_at = now
        self._history.append(event)
        return event

    async def _emit(self, event: FeedEvent) -> None:
        await self.actuator.publish(FEED_COMMAND_EVENT, event.command)
        await self.broadcaster.publish(FEED_FIRED_EVENT, event.to_dict())

        if self.feed_log is not None:
            try:
                await self.feed_log.insert_feed_event(
                    source=event.source.value, hhmm=event.hhmm, timestamp=event.fired_at
                )
            except Exception as e:
                logger.error("Failed to record feed event: %s", e)

    def stats(self) -> dict[str, Any]:
        """Get evaluator state for status reporting."""
        return {
            "last_fed_at": self._last_fed_at.isoformat() if self._last_fed_at else None,
            "history": [event.to_dict() for event in self._history],
        }
