"""
Unit tests for VideoTranscoder.

FFmpeg is never executed: ffmpeg.run is patched.
"""

import asyncio
import time
from pathlib import Path
from unittest.mock import AsyncMock, patch

import ffmpeg
import pytest

from stagehand.exceptions import TranscodeError
from stagehand.media.models import CacheKind, TranscodeSettings

pytestmark = pytest.mark.unit

FFMPEG_RUN = "stagehand.media.processors.video.ffmpeg.run"


def fake_ffmpeg_run(stream, **kwargs):
    """Write a non-empty output file where ffmpeg would."""
    output = Path(ffmpeg.compile(stream)[-1])
    output.write_bytes(b"transcoded")


@pytest.fixture
def raw_video(cache_store) -> Path:
    path = cache_store.resolve_path("abc", CacheKind.VIDEO, ".webm")
    path.write_bytes(b"raw webm")
    return path


class TestVideoTranscoder:
    """Tests for VideoTranscoder class."""

    def test_output_path_is_deterministic(self, transcoder, raw_video, cache_store):
        expected = cache_store.directory_for(CacheKind.TRANSCODED) / "abc.mp4"
        assert transcoder.output_path_for(raw_video) == expected
        assert transcoder.output_path_for(raw_video) == expected

    def test_settings_profile(self):
        args = TranscodeSettings().output_args()
        assert args["vcodec"] == "libx264"
        assert args["crf"] == 23
        assert args["preset"] == "medium"
        assert args["acodec"] == "aac"
        assert args["b:a"] == "128k"
        assert args["pix_fmt"] == "yuv420p"
        assert args["movflags"] == "+faststart"

    async def test_transcode_writes_output(self, transcoder, raw_video):
        with patch(FFMPEG_RUN, side_effect=fake_ffmpeg_run) as mock_run:
            output = await transcoder.transcode(raw_video)

        assert output.read_bytes() == b"transcoded"
        assert output.suffix == ".mp4"
        mock_run.assert_called_once()
        args = ffmpeg.compile(mock_run.call_args.args[0])
        assert "+faststart" in args
        assert "libx264" in args
        # Результат пишется во временный файл, затем переименовывается
        assert args[-1].endswith(".tmp.mp4")

    async def test_second_call_is_cache_hit(self, transcoder, raw_video):
        with patch(FFMPEG_RUN, side_effect=fake_ffmpeg_run) as mock_run:
            first = await transcoder.transcode(raw_video)
            second = await transcoder.transcode(raw_video)

        assert first == second
        assert mock_run.call_count == 1
        assert transcoder.get_statistics() == {"transcoded": 1, "cache_hits": 1, "failed": 0}

    async def test_concurrent_calls_share_one_encode(self, transcoder, raw_video):
        def slow_run(stream, **kwargs):
            time.sleep(0.05)
            fake_ffmpeg_run(stream)

        with patch(FFMPEG_RUN, side_effect=slow_run) as mock_run:
            results = await asyncio.gather(
                transcoder.transcode(raw_video), transcoder.transcode(raw_video)
            )

        assert results[0] == results[1]
        assert mock_run.call_count == 1

    async def test_encoder_failure_raises_and_leaves_no_output(
        self, transcoder, raw_video
    ):
        error = ffmpeg.Error("ffmpeg", b"", b"Invalid data found when processing input")

        def failing_run(stream, **kwargs):
            Path(ffmpeg.compile(stream)[-1]).write_bytes(b"partial")
            raise error

        with patch(FFMPEG_RUN, side_effect=failing_run):
            with pytest.raises(TranscodeError) as exc_info:
                await transcoder.transcode(raw_video)

        assert "Invalid data" in exc_info.value.stderr
        output = transcoder.output_path_for(raw_video)
        assert not output.exists()
        assert list(output.parent.iterdir()) == []
        assert transcoder.get_statistics()["failed"] == 1

    async def test_empty_output_is_error(self, transcoder, raw_video):
        with patch(FFMPEG_RUN, return_value=(b"", b"")):
            with pytest.raises(TranscodeError):
                await transcoder.transcode(raw_video)

        assert not transcoder.output_path_for(raw_video).exists()

    async def test_missing_input(self, transcoder, cache_store):
        missing = cache_store.resolve_path("nope", CacheKind.VIDEO, ".mp4")
        with pytest.raises(TranscodeError):
            await transcoder.transcode(missing)

    async def test_ffmpeg_binary_missing(self, transcoder, raw_video):
        with patch(FFMPEG_RUN, side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(TranscodeError, match="not found"):
                await transcoder.transcode(raw_video)

    async def test_check_ffmpeg_missing_binary(self, transcoder):
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError)
        ):
            assert await transcoder.check_ffmpeg() is False

    async def test_check_ffmpeg_is_cached(self, transcoder):
        proc = AsyncMock()
        proc.returncode = 0
        proc.communicate = AsyncMock(return_value=(b"ffmpeg version 6", b""))
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=proc)
        ) as mock_exec:
            assert await transcoder.check_ffmpeg() is True
            assert await transcoder.check_ffmpeg() is True

        mock_exec.assert_called_once()
