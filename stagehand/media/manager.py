"""
Media processing facade.

Single entry point for scrapers: locator in, ready-to-post local file out.
Hides fetching, caching and transcoding.
"""

from pathlib import Path
from typing import Optional

import aiohttp
from loguru import logger

from .cache import DAY_SECONDS, MediaCacheStore
from .downloader import (
    DEFAULT_BODY_TIMEOUT,
    DEFAULT_MAX_SIZE,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_USER_AGENT,
    MediaDownloader,
)
from .models import ProcessedMedia
from .processors.video import VideoTranscoder


class MediaProcessor:
    """
    Фасад обработки медиа: загрузка -> кэш -> транскодирование видео.

    Usage:
        processor = MediaProcessor.from_config(config)
        await processor.start()
        media = await processor.process_media_url(url)
        ...
        await processor.shutdown()
    """

    def __init__(
        self,
        cache_store: MediaCacheStore,
        downloader: MediaDownloader,
        transcoder: VideoTranscoder,
    ):
        self.cache_store = cache_store
        self.downloader = downloader
        self.transcoder = transcoder

    @classmethod
    def create(
        cls,
        cache_dir: Path,
        max_age_days: float = 15,
        eviction_interval: float = DAY_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        body_timeout: float = DEFAULT_BODY_TIMEOUT,
        max_size: int = DEFAULT_MAX_SIZE,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> "MediaProcessor":
        """Сборка всех компонентов с общим хранилищем кэша."""
        cache_store = MediaCacheStore(
            cache_dir, max_age_days=max_age_days, eviction_interval=eviction_interval
        )
        downloader = MediaDownloader(
            cache_store,
            session=session,
            probe_timeout=probe_timeout,
            body_timeout=body_timeout,
            max_size=max_size,
            user_agent=user_agent,
        )
        return cls(cache_store, downloader, VideoTranscoder(cache_store))

    @classmethod
    def from_config(cls, config, session: Optional[aiohttp.ClientSession] = None) -> "MediaProcessor":
        """Сборка из объекта Config."""
        return cls.create(
            cache_dir=config.cache_dir,
            max_age_days=config.max_cache_age_days,
            eviction_interval=config.eviction_interval_hours * 60 * 60,
            session=session,
            probe_timeout=config.fetch_probe_timeout,
            body_timeout=config.fetch_body_timeout,
            max_size=config.max_download_size_bytes,
            user_agent=config.user_agent,
        )

    async def start(self, run_eviction: bool = True) -> None:
        """
        Инициализация: директории кэша, HTTP сессия, проверка FFmpeg.

        Args:
            run_eviction: Запустить периодическую очистку кэша (сразу и каждые N часов)
        """
        self.cache_store.init_dirs()
        await self.downloader.start()
        await self.transcoder.check_ffmpeg()
        if run_eviction:
            self.cache_store.start_eviction()
        logger.info("Media processor started")

    async def process_media_url(
        self, locator: str, is_video_hint: bool = False
    ) -> ProcessedMedia:
        """
        Загрузка медиа и транскодирование видео.

        Args:
            locator: URL медиа
            is_video_hint: Вызывающий знает, что это видео

        Returns:
            ProcessedMedia с локальным путём, готовым к публикации

        Raises:
            FetchError: загрузка не удалась
            TranscodeError: кодирование видео не удалось
        """
        fetched = await self.downloader.fetch(locator, assume_video=is_video_hint)

        if fetched.is_video:
            transcoded_path = await self.transcoder.transcode(fetched.file_path)
            return ProcessedMedia(
                local_path=transcoded_path,
                is_video=True,
                content_type=fetched.content_type,
            )

        return ProcessedMedia(
            local_path=fetched.file_path,
            is_video=False,
            content_type=fetched.content_type,
        )

    async def shutdown(self) -> None:
        """Остановка очистки и закрытие HTTP сессии."""
        logger.info("Media processor shutting down...")
        await self.cache_store.stop_eviction()
        await self.downloader.close()

    def log_statistics(self) -> None:
        """Логировать статистику загрузок и транскодирования."""
        downloads = self.downloader.get_statistics()
        transcodes = self.transcoder.get_statistics()
        logger.info(
            f"Media stats: {downloads['downloaded']} downloaded, "
            f"{downloads['cache_hits']} cache hits, "
            f"{transcodes['transcoded']} transcoded, {transcodes['failed']} transcode failures"
        )
