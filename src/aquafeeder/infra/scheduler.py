"""Background jobs: the per-minute feeding check and nightly data rotation."""

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from datetime import datetime, time, timedelta
from typing import Any

logger = logging.getLogger(__name__)

Job = Callable[[], Coroutine[Any, Any, Any]]
Clock = Callable[[], datetime]


class ScheduledTask:
    """A job repeated every N seconds or once a day at a wall-clock time.

    Runs of the same task never overlap: the loop awaits each run before
    sleeping again, and a manual trigger while a run is in flight is skipped.
    """

    def __init__(
        self,
        name: str,
        job: Job,
        interval_seconds: float | None = None,
        daily_at: time | None = None,
        run_immediately: bool = False,
        timeout_seconds: float | None = None,
        clock: Clock = datetime.now,
    ):
        """Initialize scheduled task.

        Args:
            name: Task name for logging and stats
            job: Coroutine function to run (no arguments)
            interval_seconds: Run every N seconds (exclusive with daily_at)
            daily_at: Run once a day at this wall-clock time
            run_immediately: Run once as soon as the task starts
            timeout_seconds: Cancel a run that takes longer than this
            clock: Source of wall-clock time for daily_at
        """
        if (interval_seconds is None) == (daily_at is None):
            raise ValueError("Specify exactly one of interval_seconds or daily_at")

        self.name = name
        self.job = job
        self.interval_seconds = interval_seconds
        self.daily_at = daily_at
        self.run_immediately = run_immediately
        self.timeout_seconds = timeout_seconds
        self.clock = clock

        self._loop_task: asyncio.Task | None = None
        self._run_lock = asyncio.Lock()
        self._last_run: datetime | None = None
        self._run_count = 0
        self._error_count = 0
        self._skip_count = 0

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def is_executing(self) -> bool:
        """True while a run is in flight."""
        return self._run_lock.locked()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "running": self.is_running,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "run_count": self._run_count,
            "error_count": self._error_count,
            "skip_count": self._skip_count,
        }

    def seconds_until_next(self, now: datetime) -> float:
        """Delay from ``now`` until the next daily run."""
        target = datetime.combine(now.date(), self.daily_at, tzinfo=now.tzinfo)
        if target <= now:
            target += timedelta(days=1)
        return (target - now).total_seconds()

    async def start(self) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"scheduled:{self.name}")
        logger.info(f"Started scheduled task: {self.name}")

    async def stop(self) -> None:
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._loop_task
        self._loop_task = None
        logger.info(f"Stopped scheduled task: {self.name}")

    async def _loop(self) -> None:
        if self.interval_seconds is not None:
            await self._loop_fixed_rate()
        else:
            await self._loop_daily()

    async def _loop_fixed_rate(self) -> None:
        """Run at start + k * interval, however long each run takes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time()

        if self.run_immediately:
            await self.run_once()

        while True:
            deadline += self.interval_seconds
            now = loop.time()
            if deadline <= now:
                missed = int((now - deadline) // self.interval_seconds) + 1
                deadline += missed * self.interval_seconds
                logger.warning(f"Task {self.name} overran, skipping {missed} tick(s)")
            await asyncio.sleep(deadline - now)
            await self.run_once()

    async def _loop_daily(self) -> None:
        if self.run_immediately:
            await self.run_once()

        while True:
            delay = self.seconds_until_next(self.clock())
            logger.debug(f"Task {self.name} next run in {delay:.0f}s")
            await asyncio.sleep(delay)
            await self.run_once()

    async def run_once(self) -> bool:
        """Run the job once, bounded by the task timeout.

        Errors and timeouts are counted and logged, never raised.

        Returns:
            False if skipped because another run was still in flight
        """
        if self._run_lock.locked():
            self._skip_count += 1
            logger.warning(f"Task {self.name} still running, skipping this run")
            return False

        async with self._run_lock:
            try:
                if self.timeout_seconds is None:
                    await self.job()
                else:
                    await asyncio.wait_for(self.job(), self.timeout_seconds)
            except TimeoutError:
                self._error_count += 1
                logger.error(f"Task {self.name} timed out after {self.timeout_seconds}s")
            except Exception as e:
                self._error_count += 1
                logger.error(f"Task {self.name} failed: {e}", exc_info=True)
            else:
                self._run_count += 1
                self._last_run = self.clock()
        return True


class Scheduler:
    """Owns the background tasks and starts or stops them together."""

    def __init__(self, clock: Clock = datetime.now) -> None:
        self.clock = clock
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def add_task(
        self,
        name: str,
        job: Job,
        interval_seconds: float | None = None,
        daily_at: time | None = None,
        run_immediately: bool = False,
        timeout_seconds: float | None = None,
    ) -> ScheduledTask:
        """Register a task. Only allowed before start()."""
        if name in self._tasks:
            raise ValueError(f"Task '{name}' already exists")
        if self._running:
            raise RuntimeError("Cannot add tasks while the scheduler is running")

        task = ScheduledTask(
            name=name,
            job=job,
            interval_seconds=interval_seconds,
            daily_at=daily_at,
            run_immediately=run_immediately,
            timeout_seconds=timeout_seconds,
            clock=self.clock,
        )
        self._tasks[name] = task
        return task

    def get_task(self, name: str) -> ScheduledTask | None:
        return self._tasks.get(name)

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "task_count": len(self._tasks),
            "tasks": {name: task.stats for name, task in self._tasks.items()},
        }

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for task in self._tasks.values():
            await task.start()
        logger.info(f"Scheduler started with {len(self._tasks)} tasks")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        await asyncio.gather(*(task.stop() for task in self._tasks.values()))
        logger.info("Scheduler stopped")

    async def run_task_now(self, name: str) -> bool:
        """Trigger a task outside its schedule.

        Returns:
            False if the task was mid-run and this trigger was skipped
        """
        task = self._tasks.get(name)
        if task is None:
            raise ValueError(f"Task '{name}' not found")
        return await task.run_once()


def create_default_scheduler(
    feeding_callback: Job,
    rotation_callback: Job,
    feeding_interval: float = 60,
    feeding_timeout: float | None = 30,
    clock: Clock = datetime.now,
) -> Scheduler:
    """Build the scheduler with the feeding check and nightly rotation.

    Args:
        feeding_callback: Evaluates the feeding schedule for the current minute
        rotation_callback: Deletes history past the retention period
        feeding_interval: Seconds between schedule evaluations
        feeding_timeout: Upper bound for one evaluation
        clock: Wall clock in the feeder timezone, used for the midnight run
    """
    scheduler = Scheduler(clock=clock)
    scheduler.add_task(
        name="feeding_schedule",
        job=feeding_callback,
        interval_seconds=feeding_interval,
        timeout_seconds=feeding_timeout,
    )
    scheduler.add_task(
        name="data_rotation",
        job=rotation_callback,
        daily_at=time(0, 0),
    )
    return scheduler
