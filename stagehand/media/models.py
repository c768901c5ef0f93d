"""
Data models for media processing.

Contains all dataclasses and type definitions used across media modules.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class CacheKind(Enum):
    """Поддиректории кэша по типу медиа и стадии обработки."""

    IMAGE = "images"
    VIDEO = "videos"
    TRANSCODED = "transcoded"


@dataclass(frozen=True, slots=True)
class ResolvedKind:
    """Результат классификации локатора."""

    is_video: bool
    extension: str

    @property
    def cache_kind(self) -> CacheKind:
        return CacheKind.VIDEO if self.is_video else CacheKind.IMAGE


@dataclass(slots=True)
class FetchResult:
    """Файл в кэше после загрузки (или найденный в кэше)."""

    file_path: Path
    content_type: Optional[str]
    is_video: bool
    from_cache: bool = False


@dataclass(slots=True)
class ProcessedMedia:
    """Готовый к публикации локальный файл."""

    local_path: Path
    is_video: bool
    content_type: Optional[str]


@dataclass(frozen=True, slots=True)
class TranscodeSettings:
    """Профиль кодирования: H.264/AAC MP4 с faststart."""

    video_codec: str = "libx264"
    crf: int = 23
    preset: str = "medium"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    pixel_format: str = "yuv420p"
    movflags: str = "+faststart"
    container: str = "mp4"

    @property
    def extension(self) -> str:
        return f".{self.container}"

    def output_args(self) -> dict:
        """Аргументы для ffmpeg.output()."""
        return {
            "vcodec": self.video_codec,
            "crf": self.crf,
            "preset": self.preset,
            "acodec": self.audio_codec,
            "b:a": self.audio_bitrate,
            "pix_fmt": self.pixel_format,
            "movflags": self.movflags,
            "format": self.container,
        }
