"""Application factory and dependency container."""

import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from aquafeeder.config.settings import Settings, load_settings
from aquafeeder.core.alerts import AlertCooldownTracker, AlertEngine, AlertThresholds
from aquafeeder.core.feeding import FeedingTriggerEvaluator
from aquafeeder.core.schedule import ScheduleService
from aquafeeder.core.telemetry import TelemetryService
from aquafeeder.infra.broadcast import BroadcastHub
from aquafeeder.infra.data_rotation import DataRotation
from aquafeeder.infra.database import Database
from aquafeeder.infra.scheduler import Scheduler, create_default_scheduler
from aquafeeder.services.telegram import TelegramNotifier
from aquafeeder.web.server import WebServer

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class Container:
    """Dependency container for the application.

    Holds all service instances and provides access to them.
    """

    settings: Settings
    clock: Clock
    database: Database
    broadcast: BroadcastHub
    notifier: TelegramNotifier
    cooldowns: AlertCooldownTracker
    alerts: AlertEngine
    telemetry: TelemetryService
    schedule: ScheduleService
    feeding: FeedingTriggerEvaluator
    rotation: DataRotation
    scheduler: Scheduler

    _shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def shutdown_event(self) -> asyncio.Event:
        """Set to stop run_app()."""
        return self._shutdown_event


def make_clock(settings: Settings) -> Clock:
    """Wall clock in the timezone schedule times are written in."""
    tz = settings.feeder.tz

    def clock() -> datetime:
        return datetime.now(tz)

    return clock


async def create_app(
    settings: Settings | None = None,
    clock: Clock | None = None,
) -> Container:
    """Create and initialize the application.

    Args:
        settings: Loaded settings (defaults to environment / .env)
        clock: Time source (defaults to the feeder timezone wall clock)

    Returns:
        Initialized Container with all dependencies
    """
    logger.info("Creating application...")

    if settings is None:
        settings = load_settings()
    if clock is None:
        clock = make_clock(settings)

    # Initialize database
    database = Database(settings.database)
    await database.connect()
    logger.info(f"Database initialized at {database.db_path}")

    broadcast = BroadcastHub(send_timeout=settings.server.broadcast_timeout)

    notifier = TelegramNotifier(settings=settings.telegram, alert_settings=settings.alert)

    cooldowns = AlertCooldownTracker(cooldown=settings.alert.cooldown)
    alerts = AlertEngine(
        notifier=notifier,
        tracker=cooldowns,
        thresholds=AlertThresholds.from_settings(settings.alert),
        alert_log=database,
    )

    telemetry = TelemetryService(
        store=database,
        broadcaster=broadcast,
        alert_engine=alerts,
    )

    schedule = ScheduleService(store=database)

    # The device listens on the same hub for feed commands.
    feeding = FeedingTriggerEvaluator(
        schedule=database,
        actuator=broadcast,
        broadcaster=broadcast,
        dedup_window=settings.feeder.dedup_window,
        history_size=settings.feeder.history_size,
        feed_log=database,
    )

    rotation = DataRotation(database, retention_days=settings.database.retention_days)

    async def feeding_callback() -> None:
        """Fire the feeder if the current minute is scheduled."""
        await feeding.evaluate_tick(clock())

    async def rotation_callback() -> None:
        """Rotate old data from database."""
        await rotation.run_rotation()

    scheduler = create_default_scheduler(
        feeding_callback=feeding_callback,
        rotation_callback=rotation_callback,
        feeding_interval=settings.feeder.check_interval,
        feeding_timeout=settings.feeder.evaluation_timeout,
        clock=clock,
    )

    container = Container(
        settings=settings,
        clock=clock,
        database=database,
        broadcast=broadcast,
        notifier=notifier,
        cooldowns=cooldowns,
        alerts=alerts,
        telemetry=telemetry,
        schedule=schedule,
        feeding=feeding,
        rotation=rotation,
        scheduler=scheduler,
    )

    logger.info("Application created successfully")
    return container


async def run_app(container: Container) -> None:
    """Run the application main loop.

    Args:
        container: Initialized Container from create_app()
    """
    logger.info("Starting application...")

    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        container.shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler, sig)

    web_server = WebServer(container)

    try:
        await container.notifier.start()
        await web_server.start()
        await container.scheduler.start()

        await container.notifier.notify_system_startup()

        logger.info("Application started, waiting for shutdown signal...")

        await container.shutdown_event.wait()

    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        raise

    finally:
        logger.info("Shutting down application...")

        # Stop services in reverse order
        await container.scheduler.stop()
        await web_server.stop()
        await container.broadcast.close()
        await container.telemetry.drain()

        with contextlib.suppress(Exception):
            await container.notifier.notify_system_shutdown()
        await container.notifier.stop()

        await container.database.close()

        logger.info("Application shutdown complete")


async def main(settings: Settings | None = None) -> None:
    """Build the application and run it until a shutdown signal.

    Args:
        settings: Loaded settings (defaults to environment / .env)
    """
    container = await create_app(settings=settings)
    await run_app(container)
