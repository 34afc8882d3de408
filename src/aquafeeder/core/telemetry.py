"""Telemetry samples and the ingest pipeline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from aquafeeder.core.errors import PersistenceError, ValidationError
from aquafeeder.core.schedule import parse_time_of_day

if TYPE_CHECKING:
    from aquafeeder.core.alerts import AlertEngine

logger = logging.getLogger(__name__)

MAX_LOG_HOURS = 24 * 90


@dataclass(frozen=True)
class TelemetrySample:
    """One stored reading from the feeder."""

    temperature: float
    feed_distance_cm: float
    observed_at: str
    received_at: datetime
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "temperature": self.temperature,
            "feed_distance_cm": self.feed_distance_cm,
            "observed_at": self.observed_at,
            "received_at": self.received_at.isoformat(),
        }


class TelemetryPayload(BaseModel):
    """Inbound telemetry body.

    The device firmware posts ``suhu``, ``pakan_cm`` and ``waktu``; both
    those keys and the English names are accepted.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    temperature: float = Field(
        validation_alias=AliasChoices("temperature", "suhu"),
        allow_inf_nan=False,
    )
    feed_distance_cm: float = Field(
        validation_alias=AliasChoices("feed_distance_cm", "pakan_cm"),
        allow_inf_nan=False,
        ge=0,
    )
    observed_at: str = Field(validation_alias=AliasChoices("observed_at", "waktu"))

    @field_validator("observed_at")
    @classmethod
    def check_observed_at(cls, v: str) -> str:
        try:
            return parse_time_of_day(v, field_name="observed_at")
        except ValidationError as e:
            raise ValueError(e.message) from e


def parse_payload(payload: Any) -> TelemetryPayload:
    """Validate a raw telemetry body.

    Raises:
        ValidationError: If a field is missing or malformed
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Telemetry body must be a JSON object")

    try:
        return TelemetryPayload.model_validate(dict(payload))
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Incomplete or invalid telemetry: {problems}") from e


def parse_hours(value: Any) -> int:
    """Validate a history window in hours.

    Raises:
        ValidationError: If value is not an integer in 1..MAX_LOG_HOURS
    """
    try:
        hours = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"hours must be an integer, got {value!r}") from e

    if not 1 <= hours <= MAX_LOG_HOURS:
        raise ValidationError(f"hours must be between 1 and {MAX_LOG_HOURS}")
    return hours


class SampleStore(Protocol):
    """Persistence for telemetry samples."""

    async def insert_sample(self, sample: TelemetrySample) -> TelemetrySample: ...

    async def get_latest_sample(self) -> TelemetrySample | None: ...

    async def get_recent_samples(self, hours: int = 1) -> list[TelemetrySample]: ...


class Broadcaster(Protocol):
    """Fire-and-forget event fan-out."""

    async def publish(self, event: str, payload: Any) -> None: ...


class TelemetryService:
    """Record samples, push them live and hand them to the alert engine."""

    def __init__(
        self,
        store: SampleStore,
        broadcaster: Broadcaster,
        alert_engine: AlertEngine,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.alert_engine = alert_engine
        self._alert_tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending_alerts(self) -> int:
        """Number of alert checks still in flight."""
        return len(self._alert_tasks)

    async def ingest(
        self,
        payload: Any,
        received_at: datetime | None = None,
    ) -> TelemetrySample:
        """Validate, store and publish one reading.

        Alerting runs in the background; its outcome never affects the
        returned sample.

        Raises:
            ValidationError: If the body is incomplete or malformed
            PersistenceError: If the sample could not be stored
        """
        data = parse_payload(payload)
        logger.info(
            "Telemetry received - temp: %.1f°C, feed: %.1fcm, time: %s",
            data.temperature,
            data.feed_distance_cm,
            data.observed_at,
        )

        sample = TelemetrySample(
            temperature=data.temperature,
            feed_distance_cm=data.feed_distance_cm,
            observed_at=data.observed_at,
            received_at=received_at or datetime.now(UTC),
        )

        try:
            stored = await self.store.insert_sample(sample)
        except Exception as e:
            logger.error("Failed to store telemetry sample: %s", e)
            raise PersistenceError(f"Failed to store telemetry sample: {e}") from e

        await self.broadcaster.publish("sensor-update", stored.to_dict())

        task = asyncio.create_task(self._check_alerts(stored))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

        return stored

    async def _check_alerts(self, sample: TelemetrySample) -> None:
        try:
            await self.alert_engine.process(sample)
        except Exception:
            logger.exception("Alert check failed for sample %s", sample.id)

    async def drain(self) -> None:
        """Wait for all background alert checks to finish."""
        while self._alert_tasks:
            await asyncio.gather(*list(self._alert_tasks), return_exceptions=True)

    async def latest(self) -> TelemetrySample | None:
        """Get the most recent sample, if any."""
        return await self.store.get_latest_sample()

    async def recent(self, hours: Any = 1) -> list[TelemetrySample]:
        """Get samples from the last N hours, newest first.

        Raises:
            ValidationError: If hours is not a positive integer
        """
        hours_value = parse_hours(hours)
        samples = await self.store.get_recent_samples(hours=hours_value)
        logger.info("Loaded %d samples from the last %d hours", len(samples), hours_value)
        return samples
