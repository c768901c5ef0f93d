"""
Telegram channel destination.

Posts queue items to a channel through the Bot API (aiogram): a photo, a
video or an album, with a "View Original" button linking to the source.
"""

from pathlib import Path
from typing import List, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import FSInputFile, InputMediaPhoto
from aiogram.utils.keyboard import InlineKeyboardBuilder
from loguru import logger

from stagehand.queue.models import QueueItem

# Ограничение Telegram на количество файлов в альбоме
MAX_MEDIA_GROUP = 10


def build_caption(item: QueueItem) -> str:
    author = item.payload.get("name")
    if author:
        return f"{item.title}\nby {author}"
    return item.title


class TelegramPoster:
    """Публикация элементов очереди в Telegram канал."""

    def __init__(self, bot: Bot, channel_id: str):
        self.bot = bot
        self.channel_id = channel_id

    def _keyboard(self, item: QueueItem):
        if not item.source_url:
            return None
        builder = InlineKeyboardBuilder()
        builder.button(text="View Original", url=item.source_url)
        return builder.as_markup()

    async def post(self, item: QueueItem) -> bool:
        """
        Публикация элемента.

        Returns:
            True если Telegram принял сообщение
        """
        paths = [Path(p) for p in item.media_paths]
        existing = [p for p in paths if p.is_file()]
        if not existing:
            logger.error(f"No local media files for '{item.title}': {paths}")
            return False

        caption = build_caption(item)
        try:
            if item.is_video:
                await self.bot.send_video(
                    chat_id=self.channel_id,
                    video=FSInputFile(existing[0]),
                    caption=caption,
                    reply_markup=self._keyboard(item),
                    supports_streaming=True,
                )
            elif len(existing) > 1:
                await self._send_album(item, existing, caption)
            else:
                await self.bot.send_photo(
                    chat_id=self.channel_id,
                    photo=FSInputFile(existing[0]),
                    caption=caption,
                    reply_markup=self._keyboard(item),
                )
        except TelegramAPIError as e:
            logger.error(f"Telegram rejected '{item.title}': {e}")
            return False

        return True

    async def _send_album(self, item: QueueItem, paths: List[Path], caption: str) -> None:
        # Альбомы не поддерживают кнопки, ссылка уходит в подпись
        if item.source_url:
            caption = f"{caption}\n\nOriginal: {item.source_url}"

        if len(paths) > MAX_MEDIA_GROUP:
            logger.warning(
                f"Album for '{item.title}' has {len(paths)} images, sending first {MAX_MEDIA_GROUP}"
            )

        media = [
            InputMediaPhoto(media=FSInputFile(path), caption=caption if i == 0 else None)
            for i, path in enumerate(paths[:MAX_MEDIA_GROUP])
        ]
        logger.info(f"Posting {len(media)} images as album")
        await self.bot.send_media_group(chat_id=self.channel_id, media=media)

    async def close(self) -> None:
        await self.bot.session.close()


def create_telegram_poster(bot_token: Optional[str], channel_id: Optional[str]) -> Optional[TelegramPoster]:
    """Создание TelegramPoster, None если токен или канал не заданы."""
    if not bot_token or not channel_id:
        logger.warning("BOT_TOKEN or CHANNEL_ID not set, Telegram destination disabled")
        return None
    return TelegramPoster(Bot(token=bot_token), channel_id)
