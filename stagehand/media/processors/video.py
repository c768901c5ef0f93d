"""
Video transcoder.

Normalizes raw cached videos to an H.264/AAC MP4 profile with faststart,
caching the result next to the other cache directories.
"""

import asyncio
import os
from pathlib import Path
from typing import Dict, Optional

import ffmpeg
from loguru import logger

from stagehand.exceptions import TranscodeError

from ..cache import MediaCacheStore
from ..models import TranscodeSettings

# Сколько символов stderr ffmpeg попадает в сообщение об ошибке
STDERR_TAIL = 2000


class VideoTranscoder:
    """Транскодирование видео через FFmpeg с кэшированием результата."""

    def __init__(
        self,
        cache_store: MediaCacheStore,
        settings: Optional[TranscodeSettings] = None,
    ):
        """
        Args:
            cache_store: Хранилище кэша (директория transcoded/ и свежесть)
            settings: Профиль кодирования (фиксированный)
        """
        self.cache_store = cache_store
        self.settings = settings or TranscodeSettings()

        # output path -> задача кодирования
        self._in_flight: Dict[Path, asyncio.Task] = {}
        self._ffmpeg_available: Optional[bool] = None

        # Статистика
        self._transcoded_count = 0
        self._cache_hit_count = 0
        self._failed_count = 0

    def output_path_for(self, raw_path: Path) -> Path:
        """Детерминированный путь результата для входного файла."""
        return self.cache_store.transcoded_path_for(raw_path, self.settings.extension)

    async def transcode(self, raw_path: Path) -> Path:
        """
        Транскодирование видео (или возврат свежего результата из кэша).

        Args:
            raw_path: Путь к исходному видео в кэше

        Returns:
            Путь к транскодированному файлу

        Raises:
            TranscodeError: ошибка FFmpeg или пустой результат
        """
        raw_path = Path(raw_path)
        output_path = self.output_path_for(raw_path)

        if self.cache_store.is_valid(output_path):
            self._cache_hit_count += 1
            logger.info(f"Using cached transcoded video: {output_path.name}")
            return output_path

        task = self._in_flight.get(output_path)
        if task is None:
            task = asyncio.create_task(
                self._transcode(raw_path, output_path),
                name=f"transcode_{output_path.stem[:12]}",
            )
            self._in_flight[output_path] = task
            task.add_done_callback(
                lambda _t, p=output_path: self._in_flight.pop(p, None)
            )

        return await asyncio.shield(task)

    async def _transcode(self, raw_path: Path, output_path: Path) -> Path:
        if not raw_path.is_file():
            raise TranscodeError("Input video not found", input_path=raw_path)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        # Временный файл с тем же расширением: ffmpeg пишет туда, затем rename
        tmp_path = output_path.with_name(f"{output_path.stem}.tmp{output_path.suffix}")

        logger.info(f"Transcoding video: {raw_path.name}")
        try:
            await asyncio.to_thread(self._run_ffmpeg, raw_path, tmp_path)

            if not tmp_path.exists() or tmp_path.stat().st_size == 0:
                raise TranscodeError(
                    "FFmpeg produced no output", input_path=raw_path
                )

            os.replace(tmp_path, output_path)
        except TranscodeError:
            self._failed_count += 1
            raise
        except OSError as e:
            self._failed_count += 1
            raise TranscodeError(
                f"Transcoding failed: {e}", input_path=raw_path
            ) from e
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove partial output {tmp_path}: {e}")

        self._transcoded_count += 1
        logger.info(f"Video transcoding completed: {output_path.name}")
        return output_path

    def _run_ffmpeg(self, input_path: Path, output_path: Path) -> None:
        """
        Выполнение FFmpeg (синхронный метод для потока).

        Raises:
            TranscodeError: ненулевой код выхода FFmpeg
        """
        stream = ffmpeg.input(str(input_path)).output(
            str(output_path), **self.settings.output_args()
        )
        logger.debug(f"Executing FFmpeg command: {' '.join(ffmpeg.compile(stream))}")

        try:
            ffmpeg.run(stream, overwrite_output=True, quiet=True)
        except ffmpeg.Error as e:
            stderr_output = (
                e.stderr.decode("utf-8", errors="replace") if e.stderr else ""
            )
            logger.error(f"FFmpeg processing failed for {input_path}")
            logger.debug(f"FFmpeg stderr: {stderr_output}")
            raise TranscodeError(
                "Transcoding failed: ffmpeg exited with an error",
                input_path=input_path,
                stderr=stderr_output[-STDERR_TAIL:],
            ) from e
        except FileNotFoundError as e:
            raise TranscodeError(
                "Transcoding failed: ffmpeg not found in PATH", input_path=input_path
            ) from e

    async def check_ffmpeg(self) -> bool:
        """
        Проверка наличия FFmpeg.

        Returns:
            True если `ffmpeg -version` завершился успешно
        """
        if self._ffmpeg_available is not None:
            return self._ffmpeg_available

        try:
            proc = await asyncio.create_subprocess_exec(
                "ffmpeg",
                "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            await proc.communicate()
            self._ffmpeg_available = proc.returncode == 0
            if not self._ffmpeg_available:
                logger.warning(f"FFmpeg health check failed with code {proc.returncode}")
        except FileNotFoundError:
            logger.warning("FFmpeg not found in PATH. Video transcoding will fail.")
            self._ffmpeg_available = False

        return self._ffmpeg_available

    def get_statistics(self) -> dict:
        """Статистика транскодирования."""
        return {
            "transcoded": self._transcoded_count,
            "cache_hits": self._cache_hit_count,
            "failed": self._failed_count,
        }
