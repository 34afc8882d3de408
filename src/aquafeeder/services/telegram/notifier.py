"""Telegram notification service for sending alerts and updates."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from telegram import Bot
from telegram.error import TelegramError

from aquafeeder.core.alerts import AlertCategory
from aquafeeder.core.errors import NotificationDispatchError

if TYPE_CHECKING:
    from aquafeeder.config.settings import AlertSettings, TelegramSettings
    from aquafeeder.core.telemetry import TelemetrySample

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Send notifications via Telegram bot."""

    def __init__(self, settings: TelegramSettings, alert_settings: AlertSettings):
        self.settings = settings
        self.alert_settings = alert_settings
        self._bot: Bot | None = None

    @property
    def bot(self) -> Bot:
        """Get or create bot instance."""
        if self._bot is None:
            self._bot = Bot(token=self.settings.bot_token)
        return self._bot

    async def start(self) -> None:
        """Initialize the bot's HTTP client."""
        if not self.settings.is_configured:
            logger.warning(
                "Telegram token or chat IDs missing, alerts will not be delivered"
            )
            return

        try:
            await self.bot.initialize()
            logger.info("Telegram notifier started")
        except TelegramError as e:
            logger.error(f"Telegram bot initialization failed: {e}")

    async def stop(self) -> None:
        """Release the bot's HTTP client."""
        if self._bot is not None:
            with contextlib.suppress(TelegramError):
                await self._bot.shutdown()
        logger.info("Telegram notifier stopped")

    async def send(self, message: str, parse_mode: str = "Markdown") -> None:
        """Send a message to every configured chat.

        Succeeds if at least one chat accepted the message.

        Raises:
            NotificationDispatchError: If nothing could be delivered
        """
        if not self.settings.is_configured:
            raise NotificationDispatchError("Telegram bot token or chat IDs not set")

        errors: list[str] = []
        for chat_id in self.settings.chat_ids:
            try:
                await asyncio.wait_for(
                    self.bot.send_message(
                        chat_id=chat_id, text=message, parse_mode=parse_mode
                    ),
                    timeout=self.settings.send_timeout,
                )
                logger.debug(f"Sent notification to {chat_id}")
            except TimeoutError:
                errors.append(f"{chat_id}: timed out")
                logger.error(
                    f"Send to {chat_id} timed out after {self.settings.send_timeout}s"
                )
            except TelegramError as e:
                errors.append(f"{chat_id}: {e}")
                logger.error(f"Failed to send to {chat_id}: {e}")

        if len(errors) == len(self.settings.chat_ids):
            raise NotificationDispatchError("; ".join(errors))

    async def send_best_effort(self, message: str) -> bool:
        """Send a message, logging instead of raising on failure."""
        try:
            await self.send(message)
        except NotificationDispatchError as e:
            logger.warning(f"Notification not delivered: {e}")
            return False
        return True

    # Alert formatting

    def format_alert(self, category: AlertCategory, sample: TelemetrySample) -> str:
        """Render the alert text for a category."""
        if category is AlertCategory.TEMPERATURE_ABNORMAL:
            return self.format_temperature_alert(sample)
        if category is AlertCategory.FEED_DEPLETED:
            return self.format_feed_alert(sample)
        return self.format_combined_alert(sample)

    def _temperature_hint(self, temperature: float) -> str:
        if temperature < self.alert_settings.temperature_min:
            return "❄️ Water is too cold!"
        return "🔥 Water is too hot!"

    def format_temperature_alert(self, sample: TelemetrySample) -> str:
        return (
            "🚨 *Abnormal Water Temperature*\n\n"
            f"🌡️ Temperature: *{sample.temperature:.1f}°C*\n"
            f"⏰ Time: {sample.observed_at}\n\n"
            f"{self._temperature_hint(sample.temperature)}"
        )

    def format_feed_alert(self, sample: TelemetrySample) -> str:
        return (
            "⚠️ *Feed Almost Empty*\n\n"
            f"📦 Sensor distance: *{sample.feed_distance_cm:.1f} cm*\n"
            f"⏰ Time: {sample.observed_at}\n\n"
            "🐟 Please refill the feeder soon!"
        )

    def format_combined_alert(self, sample: TelemetrySample) -> str:
        return (
            "🚨 *CRITICAL: Temperature Abnormal and Feed Almost Empty*\n\n"
            f"🌡️ Temperature: *{sample.temperature:.1f}°C*\n"
            f"📦 Sensor distance: *{sample.feed_distance_cm:.1f} cm*\n"
            f"⏰ Time: {sample.observed_at}\n\n"
            f"{self._temperature_hint(sample.temperature)}\n"
            "🐟 Refill the feeder and check the water!"
        )

    # Lifecycle notifications

    async def notify_system_startup(self) -> None:
        """Send system startup notification."""
        message = (
            "🐟 *Aquafeeder Started*\n\n"
            "System is online and monitoring.\n"
            f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M')}"
        )
        await self.send_best_effort(message)

    async def notify_system_shutdown(self) -> None:
        """Send system shutdown notification."""
        message = (
            "🔌 *Aquafeeder Shutting Down*\n\n"
            f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M')}\n"
            "Scheduled feeding is now disabled."
        )
        await self.send_best_effort(message)
