"""Infrastructure modules."""

from aquafeeder.infra.broadcast import BroadcastHub
from aquafeeder.infra.data_rotation import DataRotation
from aquafeeder.infra.database import Database
from aquafeeder.infra.scheduler import Scheduler

__all__ = ["BroadcastHub", "DataRotation", "Database", "Scheduler"]
