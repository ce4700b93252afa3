"""Telegram Bot API integration."""

from .client import BotIdentity, TelegramBotClient

__all__ = ["BotIdentity", "TelegramBotClient"]
