"""
Stagehand - scheduled media reposting.

Fetches and normalizes media into a local cache, keeps a durable queue of
posts and delivers them to Telegram and Discord on a cron schedule.
"""

__version__ = "1.1.0"

from .config import Config
from .exceptions import (
    CacheIOError,
    ConfigError,
    FetchError,
    QueueCorruptError,
    QueueLockedError,
    QueuePersistError,
    StagehandError,
    TranscodeError,
)
from .media import MediaProcessor
from .queue import PostScheduler, QueueItem, QueueStore

__all__ = [
    "Config",
    "MediaProcessor",
    "QueueStore",
    "QueueItem",
    "PostScheduler",
    "StagehandError",
    "ConfigError",
    "FetchError",
    "TranscodeError",
    "CacheIOError",
    "QueuePersistError",
    "QueueCorruptError",
    "QueueLockedError",
    "__version__",
]
