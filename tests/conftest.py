"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from aquafeeder.config.settings import DatabaseSettings, Settings
from aquafeeder.core.errors import DuplicateEntryError
from aquafeeder.core.telemetry import TelemetrySample

# ============================================================================
# Fake collaborators
# ============================================================================


class FakeBroadcaster:
    """Records published events instead of sending them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def publish(self, event: str, payload: Any) -> None:
        self.events.append((event, payload))

    def named(self, event: str) -> list[Any]:
        return [payload for name, payload in self.events if name == event]


class FakeScheduleStore:
    """In-memory schedule store."""

    def __init__(self, times: list[str] | None = None) -> None:
        self.times: set[str] = set(times or [])

    async def list_schedule_times(self) -> list[str]:
        return sorted(self.times)

    async def add_schedule_time(self, time: str) -> None:
        if time in self.times:
            raise DuplicateEntryError(f"Schedule time already exists: {time}")
        self.times.add(time)

    async def remove_schedule_time(self, time: str) -> bool:
        if time not in self.times:
            return False
        self.times.remove(time)
        return True


class FakeSampleStore:
    """In-memory sample store assigning sequential ids."""

    def __init__(self) -> None:
        self.samples: list[TelemetrySample] = []

    async def insert_sample(self, sample: TelemetrySample) -> TelemetrySample:
        stored = TelemetrySample(
            temperature=sample.temperature,
            feed_distance_cm=sample.feed_distance_cm,
            observed_at=sample.observed_at,
            received_at=sample.received_at,
            id=len(self.samples) + 1,
        )
        self.samples.append(stored)
        return stored

    async def get_latest_sample(self) -> TelemetrySample | None:
        return self.samples[-1] if self.samples else None

    async def get_recent_samples(self, hours: int = 1) -> list[TelemetrySample]:
        return list(reversed(self.samples))


@pytest.fixture
def broadcaster() -> FakeBroadcaster:
    """Create fake broadcast hub."""
    return FakeBroadcaster()


@pytest.fixture
def schedule_store() -> FakeScheduleStore:
    """Create empty in-memory schedule store."""
    return FakeScheduleStore()


@pytest.fixture
def sample_store() -> FakeSampleStore:
    """Create empty in-memory sample store."""
    return FakeSampleStore()


# ============================================================================
# Mock Settings
# ============================================================================


@pytest.fixture
def mock_settings(tmp_path: Path) -> Settings:
    """Create test settings with mock values."""
    with patch.dict(
        "os.environ",
        {
            "TELEGRAM_BOT_TOKEN": "test_token_123",
            "TELEGRAM_CHAT_IDS": "123456,789012",
            "DATABASE_PATH": str(tmp_path / "settings.db"),
            "SERVER_STATIC_DIR": str(tmp_path / "public"),
        },
    ):
        return Settings()


# ============================================================================
# Mock Telegram
# ============================================================================


@pytest.fixture
def mock_telegram_bot() -> MagicMock:
    """Create mock Telegram bot."""
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.initialize = AsyncMock()
    bot.shutdown = AsyncMock()
    return bot


@pytest.fixture
def mock_notifier() -> MagicMock:
    """Create mock notifier that renders the category name as the message."""
    notifier = MagicMock()
    notifier.send = AsyncMock()
    notifier.format_alert = MagicMock(
        side_effect=lambda category, sample: f"alert:{category.value}"
    )
    return notifier


# ============================================================================
# Test Data Fixtures
# ============================================================================


@pytest.fixture
def base_time() -> datetime:
    """Fixed reference time for time-dependent tests."""
    return datetime(2026, 10, 19, 7, 30, 0, tzinfo=UTC)


@pytest.fixture
def make_sample(base_time: datetime) -> Callable[..., TelemetrySample]:
    """Factory for telemetry samples."""

    def factory(
        temperature: float = 26.0,
        feed_distance_cm: float = 5.0,
        observed_at: str = "07:30",
        received_at: datetime | None = None,
        id: int | None = None,
    ) -> TelemetrySample:
        return TelemetrySample(
            temperature=temperature,
            feed_distance_cm=feed_distance_cm,
            observed_at=observed_at,
            received_at=received_at or base_time,
            id=id,
        )

    return factory


# ============================================================================
# Temporary Files
# ============================================================================


@pytest.fixture
def temp_database_file(tmp_path: Path) -> Path:
    """Create temporary database file path."""
    return tmp_path / "test.db"


# ============================================================================
# Integration Test Helpers
# ============================================================================


@pytest.fixture
async def initialized_database(temp_database_file: Path) -> AsyncGenerator:
    """Create initialized database for integration tests."""
    from aquafeeder.infra.database import Database

    db = Database(DatabaseSettings(path=temp_database_file))
    await db.connect()

    yield db

    await db.close()


# ============================================================================
# Markers
# ============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
