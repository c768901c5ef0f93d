"""
Media cache store.

Maps content fingerprints to files inside typed cache directories
(images / raw videos / transcoded videos), answers freshness queries by
file age and sweeps stale files on a fixed period.
"""

import asyncio
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger

from stagehand.exceptions import CacheIOError

from .models import CacheKind

DAY_SECONDS = 24 * 60 * 60
DEFAULT_MAX_AGE_DAYS = 15
DEFAULT_EVICTION_INTERVAL = DAY_SECONDS

# Суффикс незавершённой записи
PARTIAL_SUFFIX = ".part"


class MediaCacheStore:
    """Управляет файлами кэша медиа на диске."""

    def __init__(
        self,
        cache_dir: Path,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
        eviction_interval: float = DEFAULT_EVICTION_INTERVAL,
    ):
        """
        Args:
            cache_dir: Корень кэша (images/, videos/, transcoded/ внутри)
            max_age_days: Возраст, после которого файл считается устаревшим
            eviction_interval: Период очистки в секундах
        """
        self.cache_dir = Path(cache_dir)
        self.max_age_days = max_age_days
        self.eviction_interval = eviction_interval

        self.directories: Dict[CacheKind, Path] = {
            kind: self.cache_dir / kind.value for kind in CacheKind
        }

        self._eviction_task: Optional[asyncio.Task] = None

    @property
    def max_age_seconds(self) -> float:
        return self.max_age_days * DAY_SECONDS

    def init_dirs(self) -> None:
        """Создание директорий кэша."""
        for directory in self.directories.values():
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CacheIOError(
                    f"Cannot create cache directory: {e}",
                    path=directory,
                    operation="mkdir",
                ) from e
        logger.debug(f"Cache directories initialized under {self.cache_dir}")

    def directory_for(self, kind: CacheKind) -> Path:
        return self.directories[kind]

    def resolve_path(self, fingerprint: str, kind: CacheKind, extension: str) -> Path:
        """Путь к файлу кэша. Без I/O."""
        return self.directories[kind] / f"{fingerprint}{extension}"

    def transcoded_path_for(self, raw_path: Path, extension: str = ".mp4") -> Path:
        """Путь результата транскодирования: то же имя, контейнер extension."""
        return self.directories[CacheKind.TRANSCODED] / f"{Path(raw_path).stem}{extension}"

    def is_valid(self, path: Path, max_age: Optional[float] = None) -> bool:
        """
        Файл существует и не старше max_age.

        Args:
            path: Путь к файлу кэша
            max_age: Максимальный возраст в секундах (по умолчанию из настроек)
        """
        max_age = self.max_age_seconds if max_age is None else max_age
        try:
            stat = Path(path).stat()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error checking cache file validity {path}: {e}")
            return False

        if not Path(path).is_file():
            return False

        return time.time() - stat.st_mtime <= max_age

    def lookup(self, fingerprint: str, kinds: Tuple[CacheKind, ...] = (
        CacheKind.IMAGE, CacheKind.VIDEO,
    )) -> Optional[Tuple[Path, CacheKind]]:
        """
        Поиск свежего файла по отпечатку в любой из директорий kinds.

        Расширение заранее неизвестно, поэтому ищем по маске '<hash>.*'.
        """
        for kind in kinds:
            directory = self.directories[kind]
            if not directory.is_dir():
                continue
            candidates = [
                p for p in directory.glob(f"{fingerprint}.*")
                if not p.name.endswith(PARTIAL_SUFFIX) and self.is_valid(p)
            ]
            if candidates:
                freshest = max(candidates, key=lambda p: p.stat().st_mtime)
                return freshest, kind
        return None

    def _clean_directory(self, directory: Path, max_age: float, now: float) -> List[Path]:
        """Удаление устаревших файлов в одной директории."""
        removed: List[Path] = []
        try:
            entries = list(directory.iterdir())
        except OSError as e:
            raise CacheIOError(
                f"Cannot scan cache directory: {e}", path=directory, operation="scan"
            ) from e

        for file_path in entries:
            try:
                if not file_path.is_file():
                    continue
                if now - file_path.stat().st_mtime > max_age:
                    file_path.unlink()
                    removed.append(file_path)
                    logger.info(f"Removed old cache file: {file_path.name}")
            except FileNotFoundError:
                continue  # удалён параллельно
            except OSError as e:
                logger.warning(f"Failed to remove cache file {file_path}: {e}")

        return removed

    def evict_stale(self, max_age: Optional[float] = None) -> List[Path]:
        """
        Удаление файлов старше max_age во всех директориях кэша.

        Ошибка сканирования одной директории логируется и не прерывает очистку.

        Args:
            max_age: Максимальный возраст в секундах (по умолчанию из настроек)

        Returns:
            Список удалённых файлов
        """
        max_age = self.max_age_seconds if max_age is None else max_age
        now = time.time()
        removed: List[Path] = []

        logger.info("Starting cache cleanup...")
        for kind, directory in self.directories.items():
            try:
                removed.extend(self._clean_directory(directory, max_age, now))
            except CacheIOError as e:
                logger.error(f"Error cleaning {kind.value} cache: {e}")

        logger.info(f"Cache cleanup completed: {len(removed)} files removed")
        return removed

    async def _eviction_loop(self) -> None:
        """Очистка при старте, затем каждые eviction_interval секунд."""
        while True:
            try:
                await asyncio.to_thread(self.evict_stale)
            except Exception as e:
                logger.exception(f"Error during cache cleanup: {e}")
            await asyncio.sleep(self.eviction_interval)

    def start_eviction(self) -> None:
        """Запуск периодической очистки."""
        if self._eviction_task and not self._eviction_task.done():
            logger.warning("Cache eviction already running")
            return
        self._eviction_task = asyncio.create_task(
            self._eviction_loop(), name="cache_eviction"
        )

    async def stop_eviction(self) -> None:
        """Остановка периодической очистки."""
        if not self._eviction_task:
            return
        self._eviction_task.cancel()
        try:
            await self._eviction_task
        except asyncio.CancelledError:
            pass
        self._eviction_task = None
