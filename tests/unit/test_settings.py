"""Unit tests for settings."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from aquafeeder.config.settings import (
    AlertSettings,
    FeederSettings,
    Settings,
    TelegramSettings,
    get_settings,
    load_settings,
)


class TestTelegramSettings:
    """Tests for TelegramSettings."""

    def test_chat_ids_from_env(self, mock_settings: Settings):
        assert mock_settings.telegram.chat_ids == [123456, 789012]
        assert mock_settings.telegram.is_configured

    def test_single_chat_id(self):
        with patch.dict("os.environ", {"TELEGRAM_CHAT_IDS": "-100123"}):
            assert TelegramSettings().chat_ids == [-100123]

    def test_empty_chat_ids(self):
        with patch.dict("os.environ", {"TELEGRAM_CHAT_IDS": " "}):
            settings = TelegramSettings(bot_token="abc")
        assert settings.chat_ids == []
        assert not settings.is_configured


class TestAlertSettings:
    """Tests for AlertSettings."""

    def test_defaults(self):
        settings = AlertSettings(_env_file=None)
        assert settings.temperature_min == 20.0
        assert settings.temperature_max == 32.0
        assert settings.feed_depleted_cm == 13.5
        assert settings.cooldown == timedelta(minutes=5)

    def test_inverted_band_rejected(self):
        with pytest.raises(PydanticValidationError):
            AlertSettings(temperature_min=30, temperature_max=25)


class TestFeederSettings:
    """Tests for FeederSettings."""

    def test_defaults(self):
        settings = FeederSettings(_env_file=None)
        assert settings.check_interval == 60
        assert settings.dedup_window == timedelta(seconds=60)
        assert settings.history_size == 100

    def test_timezone(self):
        settings = FeederSettings(timezone="Asia/Jakarta")
        assert settings.tz.key == "Asia/Jakarta"

    def test_unknown_timezone_rejected(self):
        with pytest.raises(PydanticValidationError):
            FeederSettings(timezone="Mars/Olympus_Mons")


def test_load_settings_from_env_file(tmp_path):
    env_file = tmp_path / "feeder.env"
    env_file.write_text(
        "ALERT_COOLDOWN_SECONDS=120\nFEEDER_TIMEZONE=Asia/Jakarta\nSERVER_PORT=8080\n"
    )

    settings = load_settings(env_file)

    assert settings.alert.cooldown_seconds == 120
    assert settings.feeder.timezone == "Asia/Jakarta"
    assert settings.server.port == 8080


def test_load_settings_without_file_is_cached():
    get_settings.cache_clear()
    try:
        assert load_settings() is load_settings()
    finally:
        get_settings.cache_clear()
