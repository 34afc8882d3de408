"""Alert classification and deduplicated notification dispatch."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from aquafeeder.core.errors import NotificationDispatchError

if TYPE_CHECKING:
    from aquafeeder.config.settings import AlertSettings
    from aquafeeder.core.telemetry import TelemetrySample

logger = logging.getLogger(__name__)


class AlertCategory(Enum):
    """Kinds of abnormal telemetry."""

    TEMPERATURE_ABNORMAL = "temperature_abnormal"
    FEED_DEPLETED = "feed_depleted"
    COMBINED = "combined"


@dataclass(frozen=True)
class AlertThresholds:
    """Boundaries of normal telemetry."""

    temperature_min: float = 20.0
    temperature_max: float = 32.0
    feed_depleted_cm: float = 13.5

    @classmethod
    def from_settings(cls, settings: AlertSettings) -> AlertThresholds:
        return cls(
            temperature_min=settings.temperature_min,
            temperature_max=settings.temperature_max,
            feed_depleted_cm=settings.feed_depleted_cm,
        )


DEFAULT_THRESHOLDS = AlertThresholds()


def classify(
    sample: TelemetrySample,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
) -> frozenset[AlertCategory]:
    """Map a sample to the alert categories it triggers.

    Both bounds of the temperature band are normal. The distance sensor sits
    above the hopper, so a larger distance means less feed left. When both
    conditions hold only COMBINED is reported.
    """
    temperature_abnormal = (
        sample.temperature < thresholds.temperature_min
        or sample.temperature > thresholds.temperature_max
    )
    feed_depleted = sample.feed_distance_cm > thresholds.feed_depleted_cm

    if temperature_abnormal and feed_depleted:
        return frozenset({AlertCategory.COMBINED})
    if temperature_abnormal:
        return frozenset({AlertCategory.TEMPERATURE_ABNORMAL})
    if feed_depleted:
        return frozenset({AlertCategory.FEED_DEPLETED})
    return frozenset()


class AlertCooldownTracker:
    """Per-category ledger of when an alert was last delivered.

    State is process-local and starts empty, so every category may fire
    once after a restart.
    """

    def __init__(self, cooldown: timedelta = timedelta(minutes=5)) -> None:
        self.cooldown = cooldown
        self._last_fired: dict[AlertCategory, datetime | None] = {
            category: None for category in AlertCategory
        }
        self._locks: dict[AlertCategory, asyncio.Lock] = {
            category: asyncio.Lock() for category in AlertCategory
        }

    def lock_for(self, category: AlertCategory) -> asyncio.Lock:
        """Lock serializing check, dispatch and mark for one category."""
        return self._locks[category]

    def last_fired(self, category: AlertCategory) -> datetime | None:
        return self._last_fired[category]

    def should_fire(self, category: AlertCategory, now: datetime) -> bool:
        """Check if the cooldown window for a category has elapsed."""
        last = self._last_fired[category]
        if last is None:
            return True
        return now - last > self.cooldown

    def remaining(self, category: AlertCategory, now: datetime) -> timedelta:
        """Get time left before the category may fire again."""
        last = self._last_fired[category]
        if last is None:
            return timedelta(0)
        return max(timedelta(0), self.cooldown - (now - last))

    def mark_fired(self, category: AlertCategory, now: datetime) -> None:
        """Record a delivered alert.

        A combined alert also restarts the window of both sub-conditions.
        """
        self._last_fired[category] = now
        if category is AlertCategory.COMBINED:
            self._last_fired[AlertCategory.TEMPERATURE_ABNORMAL] = now
            self._last_fired[AlertCategory.FEED_DEPLETED] = now

    def snapshot(self) -> dict[str, str | None]:
        """Get the ledger as ISO timestamps, keyed by category value."""
        return {
            category.value: last.isoformat() if last else None
            for category, last in self._last_fired.items()
        }


class Notifier(Protocol):
    """Outbound alert channel."""

    async def send(self, message: str) -> None:
        """Deliver a message; raises NotificationDispatchError on failure."""
        ...

    def format_alert(self, category: AlertCategory, sample: TelemetrySample) -> str:
        """Render the alert text for a category."""
        ...


class AlertLog(Protocol):
    """Audit trail of alert attempts."""

    async def insert_alert(
        self,
        alert_type: str,
        message: str,
        sent_successfully: bool = True,
        timestamp: datetime | None = None,
    ) -> int: ...


@dataclass
class AlertOutcome:
    """What happened to one category for one sample."""

    category: AlertCategory
    dispatched: bool
    reason: str


class AlertEngine:
    """Classify samples and notify, at most once per cooldown window."""

    def __init__(
        self,
        notifier: Notifier,
        tracker: AlertCooldownTracker,
        thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
        alert_log: AlertLog | None = None,
    ) -> None:
        self.notifier = notifier
        self.tracker = tracker
        self.thresholds = thresholds
        self.alert_log = alert_log

    async def process(
        self,
        sample: TelemetrySample,
        now: datetime | None = None,
    ) -> list[AlertOutcome]:
        """Run a sample through the classifier and the cooldown gate.

        Never raises on notification problems; failures leave the ledger
        untouched so the next qualifying sample retries.
        """
        now = now or datetime.now(UTC)
        outcomes = []
        for category in sorted(classify(sample, self.thresholds), key=lambda c: c.value):
            outcomes.append(await self._process_category(category, sample, now))
        return outcomes

    async def _process_category(
        self,
        category: AlertCategory,
        sample: TelemetrySample,
        now: datetime,
    ) -> AlertOutcome:
        async with self.tracker.lock_for(category):
            if not self.tracker.should_fire(category, now):
                remaining = self.tracker.remaining(category, now)
                logger.info(
                    "Alert %s skipped, cooldown %.0fs left (temp=%.1f, feed=%.1fcm)",
                    category.value,
                    remaining.total_seconds(),
                    sample.temperature,
                    sample.feed_distance_cm,
                )
                return AlertOutcome(category, dispatched=False, reason="cooldown")

            message = self.notifier.format_alert(category, sample)
            try:
                await self.notifier.send(message)
            except NotificationDispatchError as e:
                logger.error("Alert %s not delivered: %s", category.value, e)
                await self._record(category, message, sent=False, now=now)
                return AlertOutcome(category, dispatched=False, reason="dispatch_failed")
            except Exception:
                logger.exception("Unexpected error sending alert %s", category.value)
                await self._record(category, message, sent=False, now=now)
                return AlertOutcome(category, dispatched=False, reason="dispatch_failed")

            self.tracker.mark_fired(category, now)

        logger.warning(
            "Alert %s sent (temp=%.1f, feed=%.1fcm, observed %s)",
            category.value,
            sample.temperature,
            sample.feed_distance_cm,
            sample.observed_at,
        )
        await self._record(category, message, sent=True, now=now)
        return AlertOutcome(category, dispatched=True, reason="sent")

    async def _record(
        self,
        category: AlertCategory,
        message: str,
        sent: bool,
        now: datetime,
    ) -> None:
        """Write the attempt to the alert log, if one is attached."""
        if self.alert_log is None:
            return
        try:
            await self.alert_log.insert_alert(
                alert_type=category.value,
                message=message,
                sent_successfully=sent,
                timestamp=now,
            )
        except Exception as e:
            logger.error("Failed to record alert %s: %s", category.value, e)
