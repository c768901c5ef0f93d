import logging
from pathlib import Path
from typing import Any, Union

from loguru import logger
from rich import print as rprint

_DEFAULT_LOG_FILE = "stagehand.log"


def setup_logging(log_level: str = "INFO", log_file: Union[str, Path] = _DEFAULT_LOG_FILE):
    """
    Настройка логирования.

    - Асинхронное логирование в файл с ротацией (уровень из конфигурации)
    - Консольное логирование только WARNING и ERROR
    - Шумные библиотеки ограничены уровнем WARNING
    """
    logger.remove()

    try:
        log_file_path = Path(log_file).resolve()
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file_path,
            level=log_level.upper(),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            enqueue=True,  # Асинхронная запись
            backtrace=True,
            diagnose=False,
            rotation="10 MB",
            retention="3 days",
            compression="gz",
        )

        logger.add(
            lambda msg: rprint(msg, end=""),
            level="WARNING",
            format="{time:HH:mm:ss} | {level: <8} | {message}",
            colorize=False,
        )

        logger.info(
            f"Logging initialized (file: {log_file_path} {log_level.upper()}+, console: WARNING+)"
        )
    except Exception as e:
        logger.exception(f"Failed to configure logging: {e}")

    for lib_name in ["aiohttp", "aiogram", "asyncio"]:
        logging.getLogger(lib_name).setLevel(logging.WARNING)


def mask_secret(value: Any, visible: int = 4) -> str:
    """Маскирует токены и вебхуки для вывода в логи."""
    if not value:
        return ""
    text = str(value)
    if len(text) <= visible:
        return "*" * len(text)
    return f"{'*' * (len(text) - visible)}{text[-visible:]}"
