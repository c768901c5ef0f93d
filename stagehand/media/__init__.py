"""
Media processing module.

Resolves media locators to local, ready-to-post files.

Main components:
- MediaProcessor: facade used by scrapers (process_media_url)
- MediaDownloader: HEAD probe + size-limited download into the cache
- MediaCacheStore: typed cache directories, freshness checks, eviction
- VideoTranscoder: FFmpeg normalization of raw videos
- content_type / fingerprint: pure helpers for cache keys and media kinds
"""

from .cache import MediaCacheStore
from .content_type import resolve_kind
from .downloader import MediaDownloader
from .fingerprint import fingerprint
from .manager import MediaProcessor
from .models import CacheKind, FetchResult, ProcessedMedia, ResolvedKind, TranscodeSettings
from .processors import VideoTranscoder

__all__ = [
    "MediaProcessor",
    "MediaDownloader",
    "MediaCacheStore",
    "VideoTranscoder",
    "CacheKind",
    "FetchResult",
    "ProcessedMedia",
    "ResolvedKind",
    "TranscodeSettings",
    "fingerprint",
    "resolve_kind",
]
