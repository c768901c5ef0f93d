import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import psutil
from croniter import croniter
from dotenv import load_dotenv

from stagehand.exceptions import ConfigError
from stagehand.utils import logger, mask_secret

DEFAULT_CACHE_DIR = Path("./cache")
DEFAULT_QUEUE_FILE = Path("./queue/queue.json")
DEFAULT_CRON_SCHEDULE = "0 */1 * * *"  # каждый час
DEFAULT_USER_AGENT = "Mozilla/5.0 Stagehand/1.1.0"

# Минимальное свободное место под кэш медиа
MIN_FREE_DISK_GB = 1

TELEGRAM_DESTINATION = "telegram"
DISCORD_DESTINATION = "discord"

_SECRET_FIELDS = ("bot_token", "discord_webhook_url")


@dataclass
class Config:
    """
    Основная конфигурация бота.
    """

    bot_token: Optional[str] = None
    channel_id: Optional[str] = None
    discord_webhook_url: Optional[str] = None

    # Кэш медиа
    cache_dir: Path = DEFAULT_CACHE_DIR
    max_cache_age_days: float = 15
    eviction_interval_hours: float = 24

    # Загрузка
    fetch_probe_timeout: float = 10.0
    fetch_body_timeout: float = 30.0
    max_download_size_mb: int = 50
    user_agent: str = DEFAULT_USER_AGENT

    # Очередь и расписание
    queue_file: Path = DEFAULT_QUEUE_FILE
    default_cron_schedule: str = DEFAULT_CRON_SCHEDULE
    images_per_interval: int = 1
    autosave_interval_minutes: float = 5

    log_level: str = "INFO"
    log_file: Path = Path("stagehand.log")

    def __post_init__(self):
        """
        Нормализация путей и валидация значений.
        """
        self.cache_dir = Path(self.cache_dir).absolute()
        self.queue_file = Path(self.queue_file).absolute()
        self.log_file = Path(self.log_file)

        self._validate()
        self._validate_system_requirements()

    def _validate(self):
        """Валидация числовых полей и расписания."""
        positive_fields = (
            "max_cache_age_days",
            "eviction_interval_hours",
            "fetch_probe_timeout",
            "fetch_body_timeout",
            "max_download_size_mb",
            "autosave_interval_minutes",
        )
        for name in positive_fields:
            value = getattr(self, name)
            if value is None or value <= 0:
                raise ConfigError(
                    f"Invalid {name}: {value}. Must be positive",
                    field_name=name,
                    field_value=value,
                )

        if (
            isinstance(self.images_per_interval, bool)
            or not isinstance(self.images_per_interval, int)
            or self.images_per_interval < 1
        ):
            raise ConfigError(
                f"Invalid images_per_interval: {self.images_per_interval}. Must be positive integer",
                field_name="images_per_interval",
                field_value=self.images_per_interval,
            )

        if not croniter.is_valid(self.default_cron_schedule):
            raise ConfigError(
                f"Invalid cron schedule: {self.default_cron_schedule!r}",
                field_name="default_cron_schedule",
                field_value=self.default_cron_schedule,
            )

    def _validate_system_requirements(self):
        """Проверка свободного места под кэш (только предупреждение)."""
        probe_path = self.cache_dir
        while not probe_path.exists() and probe_path != probe_path.parent:
            probe_path = probe_path.parent

        try:
            free_space_gb = psutil.disk_usage(str(probe_path)).free / (1024**3)
            if free_space_gb < MIN_FREE_DISK_GB:
                logger.warning(
                    f"Low disk space for media cache: {free_space_gb:.1f}GB free at {probe_path}"
                )
        except OSError as e:
            logger.warning(f"Could not check disk space for {probe_path}: {e}")

    @property
    def destinations(self) -> List[str]:
        """Имена направлений доставки в порядке публикации."""
        names = [TELEGRAM_DESTINATION]
        if self.discord_webhook_url:
            names.append(DISCORD_DESTINATION)
        return names

    @property
    def max_cache_age_seconds(self) -> float:
        return self.max_cache_age_days * 24 * 60 * 60

    @property
    def max_download_size_bytes(self) -> int:
        return self.max_download_size_mb * 1024 * 1024

    def to_dict(self) -> Dict[str, Any]:
        """Словарь для диагностики, секреты замаскированы."""
        result: Dict[str, Any] = {}
        for k, v in asdict(self).items():
            if k in _SECRET_FIELDS:
                result[k] = mask_secret(v)
            elif isinstance(v, Path):
                result[k] = str(v)
            else:
                result[k] = v
        result["destinations"] = self.destinations
        return result

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Создаёт Config из словаря, игнорируя неизвестные ключи."""
        allowed = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in allowed})

    @classmethod
    def from_env(cls, env_path: Union[str, Path] = ".env") -> "Config":
        """Загружает конфиг из .env и переменных окружения."""
        if Path(env_path).exists():
            load_dotenv(dotenv_path=env_path)

        try:
            config_dict: Dict[str, Any] = {
                "bot_token": os.getenv("BOT_TOKEN"),
                "channel_id": os.getenv("CHANNEL_ID"),
                "discord_webhook_url": os.getenv("DISCORD_WEBHOOK_URL") or None,
                "cache_dir": Path(os.getenv("CACHE_DIR", str(DEFAULT_CACHE_DIR))),
                "max_cache_age_days": float(os.getenv("MAX_CACHE_AGE_DAYS", 15)),
                "eviction_interval_hours": float(
                    os.getenv("EVICTION_INTERVAL_HOURS", 24)
                ),
                "fetch_probe_timeout": float(os.getenv("FETCH_PROBE_TIMEOUT", 10)),
                "fetch_body_timeout": float(os.getenv("FETCH_BODY_TIMEOUT", 30)),
                "max_download_size_mb": int(os.getenv("MAX_DOWNLOAD_SIZE_MB", 50)),
                "user_agent": os.getenv("USER_AGENT", DEFAULT_USER_AGENT),
                "queue_file": Path(
                    os.getenv("QUEUE_FILE_PATH", str(DEFAULT_QUEUE_FILE))
                ),
                "default_cron_schedule": os.getenv(
                    "DEFAULT_CRON_SCHEDULE", DEFAULT_CRON_SCHEDULE
                ),
                "images_per_interval": int(os.getenv("IMAGES_PER_INTERVAL", 1)),
                "autosave_interval_minutes": float(
                    os.getenv("AUTOSAVE_INTERVAL_MINUTES", 5)
                ),
                "log_level": os.getenv("LOG_LEVEL", "INFO"),
                "log_file": Path(os.getenv("LOG_FILE", "stagehand.log")),
            }
            return cls(**config_dict)

        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

