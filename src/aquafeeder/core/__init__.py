"""Core feeding and alerting logic."""

from aquafeeder.core.alerts import AlertCategory, AlertCooldownTracker, AlertEngine
from aquafeeder.core.feeding import FeedingTriggerEvaluator, FeedSource
from aquafeeder.core.telemetry import TelemetrySample, TelemetryService

__all__ = [
    "AlertCategory",
    "AlertCooldownTracker",
    "AlertEngine",
    "FeedSource",
    "FeedingTriggerEvaluator",
    "TelemetrySample",
    "TelemetryService",
]
