"""External services integration."""

from aquafeeder.services.telegram import TelegramNotifier

__all__ = ["TelegramNotifier"]
