"""
Durable post queue.

Ordered list of pending posts with per-destination delivery flags,
persisted as JSON with a backup copy and atomic replacement of the
primary file. Every mutation goes through one asyncio lock and is written
through to disk immediately; a periodic auto-save runs on top.
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiofiles
import orjson
from filelock import FileLock, Timeout
from loguru import logger

from stagehand.exceptions import QueueCorruptError, QueueLockedError, QueuePersistError

from .models import QueueItem, derive_source_img_url

DEFAULT_AUTOSAVE_INTERVAL = 5 * 60  # 5 минут


class QueueStore:
    """
    Очередь публикаций с отслеживанием доставки по направлениям.

    Usage:
        store = QueueStore(Path("queue/queue.json"), ["telegram", "discord"])
        await store.load()
        store.start_autosave()

        await store.enqueue({"title": ..., "image_url": ...})
        item = await store.peek_front()
        await store.mark_delivered(0, "telegram", item_id=item.id)

        await store.shutdown()
    """

    def __init__(
        self,
        queue_file: Path,
        destinations: Sequence[str],
        autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
    ):
        """
        Args:
            queue_file: Основной файл очереди (рядом создаются .backup, .temp и .lock)
            destinations: Направления доставки в порядке публикации
            autosave_interval: Период автосохранения в секундах
        """
        if not destinations:
            raise ValueError("At least one destination is required")

        self.queue_file = Path(queue_file)
        self.backup_file = self.queue_file.with_name(self.queue_file.name + ".backup")
        self.temp_file = self.queue_file.with_name(self.queue_file.name + ".temp")
        self.lock_file = self.queue_file.with_name(self.queue_file.name + ".lock")
        self.autosave_interval = autosave_interval

        self._destinations: Tuple[str, ...] = tuple(destinations)
        self._items: List[QueueItem] = []
        self._lock = asyncio.Lock()
        self._autosave_task: Optional[asyncio.Task] = None
        self._loaded = False
        self._file_lock: Optional[FileLock] = None

    @property
    def destinations(self) -> Tuple[str, ...]:
        return self._destinations

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    @property
    def owns_file(self) -> bool:
        return self._file_lock is not None and self._file_lock.is_locked

    def acquire_file_lock(self) -> None:
        """
        Эксклюзивное владение файлом очереди на время жизни хранилища.

        Второй процесс с тем же файлом получит QueueLockedError вместо того,
        чтобы молча перезаписать чужие изменения.

        Raises:
            QueueLockedError: файл уже занят другим процессом
        """
        if self.owns_file:
            return

        self.queue_file.parent.mkdir(parents=True, exist_ok=True)
        file_lock = FileLock(str(self.lock_file), timeout=0)
        try:
            file_lock.acquire()
        except Timeout as e:
            raise QueueLockedError(
                "Queue file is in use by another stagehand process", path=self.queue_file
            ) from e

        self._file_lock = file_lock
        logger.debug(f"Acquired queue lock {self.lock_file}")

    def release_file_lock(self) -> None:
        if self._file_lock is None:
            return
        self._file_lock.release()
        self._file_lock = None
        logger.debug(f"Released queue lock {self.lock_file}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """
        Загрузка очереди: основной файл -> резервная копия -> пустая очередь.

        При восстановлении из резервной копии основной файл сразу
        перезаписывается. Пустая очередь тоже сохраняется на диск.
        """
        async with self._lock:
            items: Optional[List[QueueItem]] = None
            primary_corrupt = False

            try:
                items = await self._read_state(self.queue_file)
            except FileNotFoundError:
                logger.info(f"Queue file {self.queue_file} does not exist")
            except QueueCorruptError as e:
                primary_corrupt = True
                logger.error(f"Error reading main queue file: {e}")

            if items is not None:
                self._items = items
            else:
                recovered = await self._recover_from_backup()
                if recovered is not None:
                    self._items = recovered
                    logger.warning(
                        f"Queue successfully recovered from backup ({len(recovered)} items)"
                    )
                    await self._save_locked()
                else:
                    if primary_corrupt:
                        logger.critical(
                            "Queue file and backup are unreadable, starting with an EMPTY queue"
                        )
                    self._items = []
                    await self._save_locked()

            if self._migrate_items():
                if await self._save_locked():
                    logger.info("Queue items updated with delivery tracking")

            self._loaded = True
            count = len(self._items)
            logger.info(f"Queue loaded with {count} item{'s' if count != 1 else ''}")

    async def _recover_from_backup(self) -> Optional[List[QueueItem]]:
        try:
            logger.info("Attempting to recover queue from backup file...")
            return await self._read_state(self.backup_file)
        except FileNotFoundError:
            logger.info("No queue backup file found")
        except QueueCorruptError as e:
            logger.error(f"Error reading backup queue file: {e}")
        return None

    async def _read_state(self, path: Path) -> List[QueueItem]:
        """
        Чтение и проверка файла очереди.

        Raises:
            FileNotFoundError: файла нет
            QueueCorruptError: файл не JSON или структура не {"queue": [...]}
        """
        try:
            async with aiofiles.open(path, mode="rb") as f:
                content = await f.read()
        except FileNotFoundError:
            raise
        except OSError as e:
            raise QueueCorruptError(f"Cannot read queue file: {e}", path=path) from e

        try:
            data = orjson.loads(content)
        except orjson.JSONDecodeError as e:
            raise QueueCorruptError(f"Invalid JSON: {e}", path=path) from e

        if not isinstance(data, dict) or not isinstance(data.get("queue"), list):
            raise QueueCorruptError("Invalid queue structure", path=path)

        try:
            return [QueueItem.from_dict(entry) for entry in data["queue"]]
        except ValueError as e:
            raise QueueCorruptError(f"Invalid queue item: {e}", path=path) from e

    def _migrate_items(self) -> bool:
        """
        Дополнение старых элементов: статусы для всех направлений,
        source_img_url; удаление полностью доставленных.

        Returns:
            True если что-то изменилось
        """
        changed = False

        for item in self._items:
            for destination in self._destinations:
                if destination not in item.delivery_status:
                    item.delivery_status[destination] = False
                    changed = True

            if not item.source_img_url:
                source_img_url = derive_source_img_url(
                    {k: v for k, v in item.payload.items() if k != "image_url"}
                )
                if source_img_url:
                    item.source_img_url = source_img_url
                    changed = True

        delivered = [i for i in self._items if i.is_fully_delivered(self._destinations)]
        for item in delivered:
            self._items.remove(item)
            logger.info(f"Dropping fully delivered item on load: {item.title}")
            changed = True

        return changed

    @staticmethod
    def _json_safe(payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Данные в том виде, в каком они вернутся после перезагрузки
        (Path и прочие объекты становятся строками).
        """
        try:
            return orjson.loads(orjson.dumps(dict(payload), default=str))
        except TypeError as e:
            raise ValueError(f"Queue item payload is not JSON serializable: {e}") from e

    def _serialize(self) -> bytes:
        snapshot = {"queue": [item.to_dict() for item in self._items]}
        return orjson.dumps(snapshot, option=orjson.OPT_INDENT_2, default=str)

    async def _write_state(self) -> None:
        """
        Запись: сначала резервная копия целиком, затем основной файл
        через временный файл и атомарное переименование.

        Raises:
            QueuePersistError: ошибка сериализации или записи
        """
        try:
            data = self._serialize()
        except TypeError as e:
            raise QueuePersistError(f"Cannot serialize queue: {e}", path=self.queue_file) from e

        try:
            self.queue_file.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(self.backup_file, mode="wb") as f:
                await f.write(data)

            async with aiofiles.open(self.temp_file, mode="wb") as f:
                await f.write(data)

            os.replace(self.temp_file, self.queue_file)
        except OSError as e:
            raise QueuePersistError(f"Error saving queue to disk: {e}", path=self.queue_file) from e

    async def _save_locked(self) -> bool:
        """Сохранение под уже захваченной блокировкой."""
        try:
            await self._write_state()
            logger.debug(f"Queue saved ({len(self._items)} items)")
            return True
        except QueuePersistError as e:
            logger.error(f"Failed to save queue: {e}")
            return False

    async def save(self) -> bool:
        """
        Сохранение очереди на диск.

        Returns:
            False при ошибке записи (состояние в памяти остаётся актуальным)
        """
        async with self._lock:
            return await self._save_locked()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_queue(self) -> List[QueueItem]:
        """Копия всех элементов."""
        async with self._lock:
            return [item.copy() for item in self._items]

    async def peek_front(self) -> Optional[QueueItem]:
        """Следующий элемент без изменения очереди."""
        async with self._lock:
            return self._items[0].copy() if self._items else None

    def length(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def has_been_delivered(self, index: int, destination: str) -> bool:
        """Доставлен ли элемент index в destination."""
        if not 0 <= index < len(self._items):
            return False
        return self._items[index].is_delivered(destination)

    async def get_next_for_destination(
        self, destination: str
    ) -> Optional[Tuple[int, QueueItem]]:
        """Первый элемент, ещё не доставленный в destination."""
        async with self._lock:
            for index, item in enumerate(self._items):
                if not item.is_delivered(destination):
                    return index, item.copy()
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _resolve_index(self, index: int, item_id: Optional[str]) -> Optional[int]:
        """
        Индекс элемента с учётом возможного сдвига списка.

        Если item_id задан и элемент на index другой, ищем по id.
        """
        if item_id is None:
            return index if 0 <= index < len(self._items) else None

        if 0 <= index < len(self._items) and self._items[index].id == item_id:
            return index

        for i, item in enumerate(self._items):
            if item.id == item_id:
                logger.debug(f"Queue item {item_id} moved from index {index} to {i}")
                return i
        return None

    async def enqueue(self, payload: Dict[str, Any]) -> QueueItem:
        """
        Добавление элемента в конец очереди с немедленным сохранением.

        Args:
            payload: Данные скрапера (title, site_name, image_url, ...)

        Returns:
            Копия созданного элемента

        Raises:
            ValueError: данные нельзя сохранить в JSON
        """
        payload = self._json_safe(payload)
        item = QueueItem(
            payload=payload,
            delivery_status={d: False for d in self._destinations},
            source_img_url=derive_source_img_url(payload),
        )

        async with self._lock:
            self._items.append(item)
            logger.info(
                f"Adding item to queue with source_img_url: {item.source_img_url or 'none'}"
            )
            await self._save_locked()
            return item.copy()

    async def mark_delivered(
        self, index: int, destination: str, item_id: Optional[str] = None
    ) -> bool:
        """
        Отметка доставки в destination; элемент удаляется, когда доставлен
        во все направления.

        Args:
            index: Позиция элемента
            destination: Имя направления
            item_id: Ожидаемый id (защита от сдвига индексов)

        Returns:
            False если элемент или направление не найдены
        """
        if destination not in self._destinations:
            logger.warning(f"Unknown destination: {destination}")
            return False

        async with self._lock:
            resolved = self._resolve_index(index, item_id)
            if resolved is None:
                return False

            item = self._items[resolved]
            item.delivery_status[destination] = True

            if item.is_fully_delivered(self._destinations):
                del self._items[resolved]
                logger.info(f"All destinations posted item: {item.title}, removed from queue")

            await self._save_locked()
            return True

    async def remove_at(self, index: int, item_id: Optional[str] = None) -> Optional[QueueItem]:
        """Удаление элемента независимо от статуса доставки."""
        async with self._lock:
            resolved = self._resolve_index(index, item_id)
            if resolved is None:
                return None

            removed = self._items.pop(resolved)
            logger.info(f"Removed item from queue: {removed.title}")
            await self._save_locked()
            return removed

    async def move_to_front(self, index: int) -> bool:
        """Перемещение элемента в начало очереди."""
        async with self._lock:
            if not 0 <= index < len(self._items):
                return False
            if index == 0:
                return True

            item = self._items.pop(index)
            self._items.insert(0, item)
            logger.info(f"Moved item to front of queue: {item.title}")
            await self._save_locked()
            return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self.autosave_interval)
            if await self.save():
                logger.debug(f"Queue auto-saved ({len(self._items)} items)")

    def start_autosave(self) -> None:
        """Запуск периодического автосохранения."""
        if self._autosave_task and not self._autosave_task.done():
            return
        self._autosave_task = asyncio.create_task(
            self._autosave_loop(), name="queue_autosave"
        )

    async def stop_autosave(self) -> None:
        if not self._autosave_task:
            return
        self._autosave_task.cancel()
        try:
            await self._autosave_task
        except asyncio.CancelledError:
            pass
        self._autosave_task = None

    async def shutdown(self) -> bool:
        """Остановка автосохранения, финальное сохранение и освобождение файла."""
        await self.stop_autosave()
        saved = await self.save()
        logger.info(f"Queue state saved on shutdown ({len(self._items)} items)")
        self.release_file_lock()
        return saved
