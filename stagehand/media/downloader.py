"""
Media downloader module.

Downloads remote media into the cache store with a HEAD probe, a hard size
limit, request timeouts and per-fingerprint deduplication of concurrent
fetches.
"""

import asyncio
import os
from pathlib import Path
from typing import Dict, Optional

import aiofiles
import aiohttp
from loguru import logger

from stagehand.exceptions import FetchError

from .cache import PARTIAL_SUFFIX, MediaCacheStore
from .content_type import (
    extension_for,
    guess_content_type,
    infer_content_type,
    is_video_locator,
    normalize_content_type,
    skips_probe,
)
from .fingerprint import fingerprint
from .models import CacheKind, FetchResult

DEFAULT_USER_AGENT = "Mozilla/5.0 Stagehand/1.1.0"
DEFAULT_PROBE_TIMEOUT = 10.0
DEFAULT_BODY_TIMEOUT = 30.0
DEFAULT_MAX_SIZE = 50 * 1024 * 1024  # 50MB
CHUNK_SIZE = 64 * 1024


class MediaDownloader:
    """Загрузка медиа по URL в кэш."""

    def __init__(
        self,
        cache_store: MediaCacheStore,
        session: Optional[aiohttp.ClientSession] = None,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        body_timeout: float = DEFAULT_BODY_TIMEOUT,
        max_size: int = DEFAULT_MAX_SIZE,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """
        Args:
            cache_store: Хранилище кэша (пути и проверка свежести)
            session: Внешняя aiohttp сессия (иначе создаётся в start())
            probe_timeout: Таймаут HEAD запроса, секунды
            body_timeout: Таймаут загрузки тела, секунды
            max_size: Максимальный размер файла в байтах
            user_agent: User-Agent для всех запросов
        """
        self.cache_store = cache_store
        self.probe_timeout = probe_timeout
        self.body_timeout = body_timeout
        self.max_size = max_size
        self.user_agent = user_agent

        self._session = session
        self._owns_session = session is None

        # fingerprint -> задача загрузки
        self._in_flight: Dict[str, asyncio.Task] = {}

        self._downloaded_count = 0
        self._cache_hit_count = 0

    async def start(self) -> None:
        """Создание HTTP сессии (если не передана извне)."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=20, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True

    async def close(self) -> None:
        """Закрытие собственной HTTP сессии."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("MediaDownloader is not started")
        return self._session

    async def fetch(self, locator: str, assume_video: bool = False) -> FetchResult:
        """
        Загрузка ресурса в кэш (или возврат свежего файла из кэша).

        Параллельные вызовы с одним локатором ждут одну и ту же загрузку.

        Args:
            locator: URL медиа
            assume_video: Вызывающий знает, что это видео

        Returns:
            FetchResult с путём к файлу в кэше

        Raises:
            FetchError: сеть, таймаут или превышение лимита размера
        """
        key = fingerprint(locator)

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._fetch(locator, key, assume_video), name=f"fetch_{key[:12]}"
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))
        else:
            logger.debug(f"Joining in-flight download for {locator}")

        return await asyncio.shield(task)

    async def _fetch(self, locator: str, key: str, assume_video: bool) -> FetchResult:
        kinds = (CacheKind.VIDEO,) if assume_video else (CacheKind.IMAGE, CacheKind.VIDEO)
        cached = self.cache_store.lookup(key, kinds)
        if cached:
            path, kind = cached
            is_video = kind is CacheKind.VIDEO
            self._cache_hit_count += 1
            logger.info(f"Using cached {'video' if is_video else 'image'}: {path.name}")
            return FetchResult(
                file_path=path,
                content_type=guess_content_type(path.suffix),
                is_video=is_video,
                from_cache=True,
            )

        if skips_probe(locator):
            logger.debug(f"Source rejects HEAD requests, inferring type: {locator}")
            content_type = infer_content_type(locator)
            if content_type and content_type.startswith("video/"):
                assume_video = True
        else:
            content_type = await self._probe(locator)

        return await self._download(locator, key, content_type, assume_video)

    async def _probe(self, locator: str) -> Optional[str]:
        """HEAD запрос за Content-Type. Ошибка не фатальна."""
        try:
            timeout = aiohttp.ClientTimeout(total=self.probe_timeout)
            async with self.session.head(
                locator,
                headers={"User-Agent": self.user_agent},
                timeout=timeout,
                allow_redirects=True,
            ) as response:
                if response.status >= 400:
                    logger.debug(
                        f"HEAD request for {locator} returned {response.status}, falling back to GET"
                    )
                    return None
                return response.headers.get(aiohttp.hdrs.CONTENT_TYPE)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"HEAD request failed for {locator}, falling back to GET: {e!r}")
            return None

    async def _download(
        self,
        locator: str,
        key: str,
        content_type: Optional[str],
        assume_video: bool,
    ) -> FetchResult:
        """GET запрос с записью во временный файл и атомарным переименованием."""
        part_path: Optional[Path] = None
        try:
            timeout = aiohttp.ClientTimeout(total=self.body_timeout)
            async with self.session.get(
                locator,
                headers={"User-Agent": self.user_agent, "Accept": "*/*"},
                timeout=timeout,
            ) as response:
                if response.status >= 400:
                    raise FetchError(
                        f"Failed to download media: HTTP {response.status}",
                        url=locator,
                        status=response.status,
                    )

                if not content_type:
                    content_type = response.headers.get(aiohttp.hdrs.CONTENT_TYPE)

                is_video = assume_video or is_video_locator(locator, content_type)
                ext = extension_for(locator, content_type, is_video=is_video)
                kind = CacheKind.VIDEO if is_video else CacheKind.IMAGE
                file_path = self.cache_store.resolve_path(key, kind, ext)

                declared = response.content_length
                if declared is not None and declared > self.max_size:
                    raise FetchError(
                        f"Media too large: {declared} bytes (limit {self.max_size})",
                        url=locator,
                        reason="size_limit",
                    )

                file_path.parent.mkdir(parents=True, exist_ok=True)
                part_path = file_path.with_name(file_path.name + PARTIAL_SUFFIX)

                logger.info(f"Downloading {'video' if is_video else 'image'} from {locator}")
                received = 0
                async with aiofiles.open(part_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        received += len(chunk)
                        if received > self.max_size:
                            raise FetchError(
                                f"Media exceeded size limit of {self.max_size} bytes",
                                url=locator,
                                reason="size_limit",
                            )
                        await f.write(chunk)

            os.replace(part_path, file_path)
            part_path = None
            self._downloaded_count += 1
            logger.debug(f"Saved {received} bytes to {file_path}")

            return FetchResult(
                file_path=file_path,
                content_type=normalize_content_type(content_type),
                is_video=is_video,
            )

        except FetchError:
            raise
        except asyncio.TimeoutError as e:
            raise FetchError(
                "Failed to download media: timeout", url=locator, reason="timeout"
            ) from e
        except aiohttp.ClientError as e:
            raise FetchError(
                f"Failed to download media: {e}", url=locator, reason=type(e).__name__
            ) from e
        except OSError as e:
            raise FetchError(
                f"Failed to write media to cache: {e}", url=locator, reason="io"
            ) from e
        finally:
            if part_path is not None:
                try:
                    part_path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Could not remove partial download {part_path}: {e}")

    def get_statistics(self) -> dict:
        """Статистика загрузок."""
        return {
            "downloaded": self._downloaded_count,
            "cache_hits": self._cache_hit_count,
            "in_flight": len(self._in_flight),
        }
