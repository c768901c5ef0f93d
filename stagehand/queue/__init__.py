"""
Post queue module.

- QueueStore: durable queue with per-destination delivery tracking
- PostScheduler: cron-driven delivery of queued items
"""

from .models import QueueItem, derive_source_img_url, generate_item_id
from .scheduler import PostFunction, PostScheduler
from .store import QueueStore

__all__ = [
    "QueueItem",
    "QueueStore",
    "PostScheduler",
    "PostFunction",
    "derive_source_img_url",
    "generate_item_id",
]
