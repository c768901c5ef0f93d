"""
Delivery destinations.

Each destination exposes an async ``post(item) -> bool`` used by the
scheduler as its post function.
"""

from .discord import DiscordWebhookPoster
from .telegram import TelegramPoster, create_telegram_poster

__all__ = [
    "DiscordWebhookPoster",
    "TelegramPoster",
    "create_telegram_poster",
]
