"""Telegram bot surface."""

from .bot import TelegramBot

__all__ = ["TelegramBot"]
