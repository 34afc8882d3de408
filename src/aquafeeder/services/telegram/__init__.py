"""Telegram notification channel."""

from aquafeeder.services.telegram.notifier import TelegramNotifier

__all__ = ["TelegramNotifier"]
