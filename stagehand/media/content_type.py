"""
Content-type resolution for media locators.

Classifies a locator as image or video and picks a file extension from
three independent signals: the locator's own path, the HTTP Content-Type
header, and locator pattern heuristics.
"""

import mimetypes
import re
from typing import Optional
from urllib.parse import urlparse

from .models import ResolvedKind

VIDEO_EXTENSIONS = frozenset({".mp4", ".webm", ".mov", ".avi", ".mkv"})

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
}

DEFAULT_IMAGE_EXTENSION = ".jpg"
DEFAULT_VIDEO_EXTENSION = ".mp4"
UNKNOWN_EXTENSION = ".bin"

# Last-resort video signals
_VIDEO_PATTERNS = (
    re.compile(r"/video/", re.IGNORECASE),
    re.compile(r"\.mp4", re.IGNORECASE),
    re.compile(r"\.webm", re.IGNORECASE),
    re.compile(r"bluesky.*video", re.IGNORECASE),
    re.compile(r"video\.bsky\.app", re.IGNORECASE),
)

# Hosts that reject HEAD requests
_NO_PROBE_HOSTS = ("bsky.social", "video.bsky.app")

# Расширение из пути: ".jpg", ".webm"; не ".getBlob" и не ".atproto"
_EXTENSION_PATTERN = re.compile(r"^\.[a-z0-9]{1,5}$")


def normalize_content_type(content_type: Optional[str]) -> Optional[str]:
    """'Image/PNG; charset=binary' -> 'image/png'."""
    if not content_type:
        return None
    value = content_type.split(";", 1)[0].strip().lower()
    return value or None


def locator_extension(locator: str) -> Optional[str]:
    """Расширение из пути URL (без query), либо None."""
    path = urlparse(locator).path
    last_segment = path.rsplit("/", 1)[-1]
    if "." not in last_segment:
        return None
    ext = "." + last_segment.rsplit(".", 1)[-1].lower()
    if not _EXTENSION_PATTERN.match(ext):
        return None
    return ext


def matches_video_pattern(locator: str) -> bool:
    return any(pattern.search(locator) for pattern in _VIDEO_PATTERNS)


def is_video_locator(locator: str, content_type: Optional[str] = None) -> bool:
    """
    Классификация видео/изображение.

    Порядок: расширение пути -> Content-Type -> эвристики локатора -> изображение.
    """
    if locator_extension(locator) in VIDEO_EXTENSIONS:
        return True

    normalized = normalize_content_type(content_type)
    if normalized:
        if normalized.startswith("video/"):
            return True
        if normalized.startswith("image/"):
            return False

    return matches_video_pattern(locator)


def extension_for(
    locator: str, content_type: Optional[str] = None, is_video: bool = False
) -> str:
    """
    Расширение файла для кэша.

    Собственное расширение локатора, затем таблица Content-Type, затем
    категория Content-Type. Без сигналов: '.mp4' для видео, иначе '.bin'.
    """
    ext = locator_extension(locator)
    if ext:
        return ext

    normalized = normalize_content_type(content_type)
    if normalized:
        if normalized in CONTENT_TYPE_EXTENSIONS:
            return CONTENT_TYPE_EXTENSIONS[normalized]
        if normalized.startswith("image/"):
            return DEFAULT_IMAGE_EXTENSION
        if normalized.startswith("video/"):
            return DEFAULT_VIDEO_EXTENSION

    if is_video:
        return DEFAULT_VIDEO_EXTENSION
    return UNKNOWN_EXTENSION


def resolve_kind(locator: str, content_type: Optional[str] = None) -> ResolvedKind:
    """Классификация и расширение одним вызовом."""
    is_video = is_video_locator(locator, content_type)
    return ResolvedKind(
        is_video=is_video,
        extension=extension_for(locator, content_type, is_video=is_video),
    )


def skips_probe(locator: str) -> bool:
    """Источник известен тем, что отклоняет HEAD запросы."""
    host = (urlparse(locator).hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in _NO_PROBE_HOSTS)


def infer_content_type(locator: str) -> Optional[str]:
    """Content-Type по шаблону локатора для источников без HEAD."""
    if "video.bsky.app" in locator:
        return "video/mp4"
    if "getBlob" in locator:
        return "image/jpeg"
    return None


def guess_content_type(extension: str) -> Optional[str]:
    """Content-Type для файла из кэша по его расширению."""
    for content_type, ext in CONTENT_TYPE_EXTENSIONS.items():
        if ext == extension and content_type != "image/jpg":
            return content_type
    guessed, _ = mimetypes.guess_type(f"file{extension}")
    return guessed
