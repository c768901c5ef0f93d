import time
from pathlib import Path
from typing import Any, Dict, Optional, Union


class StagehandError(Exception):
    """
    Базовое исключение Stagehand с контекстом для диагностики.

    Добавляет timestamp и context, которые выводятся в str() для логов.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.timestamp = time.time()
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = self.message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" [Context: {context_str}]"
        return base_msg


class ConfigError(StagehandError):
    """
    Исключение для ошибок конфигурации с валидацией полей.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 field_value: Optional[Any] = None, **kwargs):
        context = kwargs.pop('context', {})
        if field_name:
            context['field'] = field_name
        if field_value is not None:
            context['value'] = str(field_value)[:100]  # Ограничиваем длину для безопасности
        super().__init__(message, context=context)


class FetchError(StagehandError):
    """
    Ошибка загрузки: сеть, таймаут или превышение лимита размера.
    """

    def __init__(self, message: str, url: Optional[str] = None,
                 status: Optional[int] = None, reason: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if url:
            context['url'] = url
        if status is not None:
            context['status'] = status
        if reason:
            context['reason'] = reason
        super().__init__(message, context=context)
        self.url = url
        self.status = status
        self.reason = reason


class TranscodeError(StagehandError):
    """
    Ошибка кодировщика (ненулевой код выхода ffmpeg или пустой результат).
    """

    def __init__(self, message: str, input_path: Optional[Union[str, Path]] = None,
                 stderr: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if input_path:
            context['input_path'] = str(input_path)
        super().__init__(message, context=context)
        self.input_path = input_path
        # Полный stderr не кладём в context - он бывает огромным
        self.stderr = stderr


class CacheIOError(StagehandError):
    """
    Ошибка файловой системы при чтении/записи кэша медиа.
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None,
                 operation: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if path:
            context['path'] = str(path)
        if operation:
            context['operation'] = operation
        super().__init__(message, context=context)


class QueuePersistError(StagehandError):
    """
    Ошибка записи состояния очереди на диск.
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None, **kwargs):
        context = kwargs.pop('context', {})
        if path:
            context['path'] = str(path)
        super().__init__(message, context=context)


class QueueCorruptError(StagehandError):
    """
    Сохранённая очередь не читается или имеет неверную структуру.
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None, **kwargs):
        context = kwargs.pop('context', {})
        if path:
            context['path'] = str(path)
        super().__init__(message, context=context)


class QueueLockedError(StagehandError):
    """
    Файл очереди занят другим процессом stagehand.
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None, **kwargs):
        context = kwargs.pop('context', {})
        if path:
            context['path'] = str(path)
        super().__init__(message, context=context)
