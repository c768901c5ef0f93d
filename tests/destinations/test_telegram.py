"""
Unit tests for the Telegram destination.

The aiogram Bot is replaced by a mock; nothing is sent.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import FSInputFile

from stagehand.destinations.telegram import TelegramPoster, build_caption, create_telegram_poster
from stagehand.queue.models import QueueItem

pytestmark = pytest.mark.unit


@pytest.fixture
def bot():
    bot = MagicMock()
    bot.send_photo = AsyncMock()
    bot.send_video = AsyncMock()
    bot.send_media_group = AsyncMock()
    bot.session.close = AsyncMock()
    return bot


@pytest.fixture
def poster(bot):
    return TelegramPoster(bot, "@channel")


def make_files(tmp_path, *names):
    paths = []
    for name in names:
        path = tmp_path / name
        path.write_bytes(b"media")
        paths.append(str(path))
    return paths


class TestTelegramPoster:
    """Tests for TelegramPoster class."""

    async def test_single_photo_with_source_button(self, poster, bot, sample_payload):
        item = QueueItem(sample_payload)

        assert await poster.post(item) is True

        kwargs = bot.send_photo.await_args.kwargs
        assert kwargs["chat_id"] == "@channel"
        assert isinstance(kwargs["photo"], FSInputFile)
        assert kwargs["caption"] == "Sunset over the bay\nby artist"
        button = kwargs["reply_markup"].inline_keyboard[0][0]
        assert button.text == "View Original"
        assert button.url == sample_payload["source_url"]

    async def test_video(self, poster, bot, tmp_path):
        (video,) = make_files(tmp_path, "clip.mp4")
        item = QueueItem({"title": "Clip", "is_video": True, "video_url": video})

        assert await poster.post(item) is True

        bot.send_video.assert_awaited_once()
        bot.send_photo.assert_not_awaited()
        assert bot.send_video.await_args.kwargs["reply_markup"] is None

    async def test_album_for_multiple_images(self, poster, bot, tmp_path):
        images = make_files(tmp_path, "a.jpg", "b.jpg", "c.jpg")
        item = QueueItem(
            {"title": "Set", "image_urls": images, "source_url": "https://x/post/1"}
        )

        assert await poster.post(item) is True

        media = bot.send_media_group.await_args.kwargs["media"]
        assert len(media) == 3
        assert media[0].caption == "Set\n\nOriginal: https://x/post/1"
        assert media[1].caption is None

    async def test_album_is_capped(self, poster, bot, tmp_path):
        images = make_files(tmp_path, *[f"{n}.jpg" for n in range(12)])

        assert await poster.post(QueueItem({"title": "Many", "image_urls": images})) is True

        assert len(bot.send_media_group.await_args.kwargs["media"]) == 10

    async def test_missing_files(self, poster, bot, tmp_path):
        item = QueueItem({"title": "Gone", "image_url": str(tmp_path / "gone.jpg")})

        assert await poster.post(item) is False
        bot.send_photo.assert_not_awaited()

    async def test_api_error_returns_false(self, poster, bot, sample_payload):
        bot.send_photo.side_effect = TelegramBadRequest(
            method=MagicMock(), message="Bad Request: chat not found"
        )

        assert await poster.post(QueueItem(sample_payload)) is False

    async def test_close(self, poster, bot):
        await poster.close()
        bot.session.close.assert_awaited_once()


def test_build_caption_without_author():
    assert build_caption(QueueItem({"title": "Solo"})) == "Solo"


def test_create_poster_requires_credentials():
    assert create_telegram_poster(None, "@channel") is None
    assert create_telegram_poster("123:abc", None) is None
