"""
Unit tests for Config.
"""

import os
from pathlib import Path

import pytest

from stagehand.config import Config
from stagehand.exceptions import ConfigError

pytestmark = pytest.mark.unit

ENV_VARS = (
    "BOT_TOKEN",
    "CHANNEL_ID",
    "DISCORD_WEBHOOK_URL",
    "CACHE_DIR",
    "MAX_CACHE_AGE_DAYS",
    "DEFAULT_CRON_SCHEDULE",
    "IMAGES_PER_INTERVAL",
    "QUEUE_FILE_PATH",
    "MAX_DOWNLOAD_SIZE_MB",
    "FETCH_PROBE_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    # load_dotenv пишет прямо в os.environ
    for name in ENV_VARS:
        os.environ.pop(name, None)


class TestConfig:
    """Tests for Config dataclass."""

    def test_defaults(self, tmp_path):
        config = Config(cache_dir=tmp_path / "cache")

        assert config.max_cache_age_days == 15
        assert config.default_cron_schedule == "0 */1 * * *"
        assert config.images_per_interval == 1
        assert config.max_download_size_bytes == 50 * 1024 * 1024
        assert config.max_cache_age_seconds == 15 * 24 * 60 * 60
        assert config.queue_file.is_absolute()

    def test_destinations(self, tmp_path):
        assert Config(cache_dir=tmp_path).destinations == ["telegram"]
        assert Config(
            cache_dir=tmp_path, discord_webhook_url="https://discord.com/api/webhooks/1/x"
        ).destinations == ["telegram", "discord"]

    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_cache_age_days", 0),
            ("fetch_probe_timeout", -1),
            ("max_download_size_mb", 0),
            ("images_per_interval", 0),
            ("images_per_interval", True),
            ("default_cron_schedule", "every hour"),
        ],
    )
    def test_validation(self, tmp_path, field, value):
        with pytest.raises(ConfigError) as exc_info:
            Config(cache_dir=tmp_path, **{field: value})

        assert exc_info.value.context["field"] == field

    def test_to_dict_masks_secrets(self, tmp_path):
        config = Config(
            cache_dir=tmp_path,
            bot_token="123456:ABCDEFGH",
            discord_webhook_url="https://discord.com/api/webhooks/1/secret",
        )

        data = config.to_dict()

        assert data["bot_token"].endswith("EFGH")
        assert "123456" not in data["bot_token"]
        assert data["discord_webhook_url"].startswith("****")
        assert data["cache_dir"] == str(tmp_path)
        assert data["destinations"] == ["telegram", "discord"]

    def test_from_dict_ignores_unknown_keys(self, tmp_path):
        config = Config.from_dict({"cache_dir": tmp_path, "unknown": 1, "images_per_interval": 3})
        assert config.images_per_interval == 3

    def test_from_env(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "\n".join(
                [
                    "BOT_TOKEN=token",
                    "CHANNEL_ID=@channel",
                    f"CACHE_DIR={tmp_path / 'media'}",
                    "MAX_CACHE_AGE_DAYS=7",
                    "DEFAULT_CRON_SCHEDULE=*/30 * * * *",
                    "IMAGES_PER_INTERVAL=2",
                    f"QUEUE_FILE_PATH={tmp_path / 'q.json'}",
                ]
            )
        )

        config = Config.from_env(env_file)

        assert config.bot_token == "token"
        assert config.channel_id == "@channel"
        assert config.cache_dir == tmp_path / "media"
        assert config.max_cache_age_days == 7
        assert config.default_cron_schedule == "*/30 * * * *"
        assert config.images_per_interval == 2
        assert config.queue_file == tmp_path / "q.json"
        assert config.destinations == ["telegram"]

    def test_from_env_bad_number(self, tmp_path, monkeypatch):
        monkeypatch.setenv("IMAGES_PER_INTERVAL", "many")

        with pytest.raises(ConfigError):
            Config.from_env(tmp_path / "missing.env")

    def test_from_env_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = Config.from_env(tmp_path / "missing.env")

        assert config.cache_dir == (Path(".") / "cache").absolute()
