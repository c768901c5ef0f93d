"""
Shared fixtures for all tests.

Common fixtures plus a fake aiohttp session that records every request and
serves canned responses, so no test touches the network.
"""

import asyncio
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from stagehand.media.cache import MediaCacheStore


class FakeStream:
    def __init__(self, body: bytes):
        self._body = body

    async def iter_chunked(self, size: int):
        for start in range(0, len(self._body), size):
            await asyncio.sleep(0)
            yield self._body[start:start + size]


class FakeResponse:
    """Async context manager imitating aiohttp.ClientResponse."""

    def __init__(
        self,
        status: int = 200,
        content_type: Optional[str] = None,
        body: bytes = b"",
        content_length: Optional[int] = None,
        delay: float = 0,
        error: Optional[BaseException] = None,
    ):
        self.status = status
        self.headers = {"Content-Type": content_type} if content_type else {}
        self.body = body
        self.content_length = content_length
        self.content = FakeStream(body)
        self.delay = delay
        self.error = error

    async def __aenter__(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class FakeSession:
    """Minimal aiohttp.ClientSession replacement."""

    def __init__(self):
        self.head_responses: Dict[str, FakeResponse] = {}
        self.get_responses: Dict[str, FakeResponse] = {}
        self.post_responses: List[FakeResponse] = []
        self.calls: List[Tuple[str, str]] = []
        self.post_kwargs: List[dict] = []
        self.closed = False

    def add(self, url: str, get: FakeResponse, head: Optional[FakeResponse] = None):
        self.get_responses[url] = get
        if head is not None:
            self.head_responses[url] = head

    def head(self, url, **kwargs):
        self.calls.append(("HEAD", url))
        return self.head_responses.get(url, FakeResponse(status=405))

    def get(self, url, **kwargs):
        self.calls.append(("GET", url))
        return self.get_responses.get(url, FakeResponse(status=404))

    def post(self, url, **kwargs):
        self.calls.append(("POST", url))
        self.post_kwargs.append(kwargs)
        if self.post_responses:
            return self.post_responses.pop(0)
        return FakeResponse(status=204)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)

    async def close(self):
        self.closed = True


def _age_file(path: Path, age_seconds: float) -> Path:
    mtime = time.time() - age_seconds
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def age_file():
    """Set file modification time to simulate age: age_file(path, seconds)."""
    return _age_file


@pytest.fixture
def cache_store(tmp_path: Path) -> MediaCacheStore:
    """Cache store with initialized directories."""
    store = MediaCacheStore(tmp_path / "cache", max_age_days=15)
    store.init_dirs()
    return store


@pytest.fixture
def queue_file(tmp_path: Path) -> Path:
    """Queue file path inside a not yet existing directory."""
    return tmp_path / "queue" / "queue.json"


@pytest.fixture
def sample_payload(tmp_path: Path) -> Dict[str, Any]:
    """Scraped image record as produced by a scraper."""
    image = tmp_path / "image.jpg"
    image.write_bytes(b"\xff\xd8\xff fake jpeg")
    return {
        "title": "Sunset over the bay",
        "site_name": "FurAffinity",
        "source_url": "https://www.furaffinity.net/view/123/",
        "name": "artist",
        "is_video": False,
        "image_url": str(image),
        "original_image_url": "https://d.furaffinity.net/art/artist/123/sunset.jpg",
    }


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_response():
    """Factory for canned responses."""
    return FakeResponse
