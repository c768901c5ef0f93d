"""
Fixtures specific to media processing tests.
"""

from unittest.mock import AsyncMock

import pytest

from stagehand.media.downloader import MediaDownloader
from stagehand.media.manager import MediaProcessor
from stagehand.media.processors.video import VideoTranscoder


@pytest.fixture
def downloader(cache_store, fake_session) -> MediaDownloader:
    """Downloader bound to the fake session with a small size limit."""
    return MediaDownloader(cache_store, session=fake_session, max_size=1024)


@pytest.fixture
def transcoder(cache_store) -> VideoTranscoder:
    return VideoTranscoder(cache_store)


@pytest.fixture
def processor(cache_store, downloader, transcoder) -> MediaProcessor:
    """Facade with ffmpeg health check stubbed out."""
    transcoder.check_ffmpeg = AsyncMock(return_value=True)
    return MediaProcessor(cache_store, downloader, transcoder)
