"""
Data models for the post queue.
"""

import copy
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

# Ключи, которыми владеет очередь; всё остальное - данные скрапера
ID_KEY = "id"
TIMESTAMP_KEY = "timestamp"
DELIVERY_STATUS_KEY = "delivery_status"
SOURCE_IMG_URL_KEY = "source_img_url"
LEGACY_DELIVERY_STATUS_KEY = "postedTo"

RESERVED_KEYS = frozenset(
    {ID_KEY, TIMESTAMP_KEY, DELIVERY_STATUS_KEY, SOURCE_IMG_URL_KEY, LEGACY_DELIVERY_STATUS_KEY}
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_item_id() -> str:
    """
    Идентификатор '<epoch ms>-<7 случайных символов>'.

    Уникальность не гарантирована, только практически достаточна.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"{int(time.time() * 1000)}-{suffix}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_web_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def derive_source_img_url(payload: Dict[str, Any]) -> Optional[str]:
    """Исходный URL изображения: original_image_url, download_url, image_url."""
    for key in ("original_image_url", "download_url", "image_url"):
        if _is_web_url(payload.get(key)):
            return payload[key]
    return None


@dataclass
class QueueItem:
    """Элемент очереди публикации."""

    payload: Dict[str, Any]
    id: str = field(default_factory=generate_item_id)
    timestamp: str = field(default_factory=utc_timestamp)
    delivery_status: Dict[str, bool] = field(default_factory=dict)
    source_img_url: Optional[str] = None

    @property
    def title(self) -> str:
        return str(self.payload.get("title") or "Untitled")

    @property
    def is_video(self) -> bool:
        return bool(self.payload.get("is_video"))

    @property
    def source_url(self) -> Optional[str]:
        return self.payload.get("source_url")

    @property
    def media_paths(self) -> List[str]:
        """Локальные пути медиа в порядке публикации."""
        if self.is_video and self.payload.get("video_url"):
            return [self.payload["video_url"]]
        image_urls = self.payload.get("image_urls")
        if isinstance(image_urls, list) and image_urls:
            return [str(p) for p in image_urls]
        if self.payload.get("image_url"):
            return [self.payload["image_url"]]
        return []

    def is_delivered(self, destination: str) -> bool:
        return self.delivery_status.get(destination) is True

    def is_fully_delivered(self, destinations: Iterable[str]) -> bool:
        return all(self.is_delivered(d) for d in destinations)

    def pending_destinations(self, destinations: Iterable[str]) -> List[str]:
        return [d for d in destinations if not self.is_delivered(d)]

    def copy(self) -> "QueueItem":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Плоский словарь для JSON: данные скрапера + служебные поля."""
        data = {k: v for k, v in self.payload.items() if k not in RESERVED_KEYS}
        data[TIMESTAMP_KEY] = self.timestamp
        data[ID_KEY] = self.id
        data[DELIVERY_STATUS_KEY] = dict(self.delivery_status)
        data[SOURCE_IMG_URL_KEY] = self.source_img_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueItem":
        """
        Восстановление из JSON.

        Принимает и старый формат с 'postedTo'; отсутствующие служебные
        поля заполняются (id, timestamp) или остаются пустыми.

        Raises:
            ValueError: данные не являются словарём
        """
        if not isinstance(data, dict):
            raise ValueError(f"Queue item must be an object, got {type(data).__name__}")

        status = data.get(DELIVERY_STATUS_KEY)
        if not isinstance(status, dict):
            status = data.get(LEGACY_DELIVERY_STATUS_KEY)
        if not isinstance(status, dict):
            status = {}

        return cls(
            payload={k: v for k, v in data.items() if k not in RESERVED_KEYS},
            id=str(data.get(ID_KEY) or generate_item_id()),
            timestamp=str(data.get(TIMESTAMP_KEY) or utc_timestamp()),
            delivery_status={str(k): v is True for k, v in status.items()},
            source_img_url=data.get(SOURCE_IMG_URL_KEY),
        )
