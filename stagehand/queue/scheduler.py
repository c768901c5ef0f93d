"""
Cron-driven delivery scheduler.

On every tick pulls up to N items from the front of the queue and posts each
one to the destinations it has not reached yet. A tick where no destination
accepted the front item ends the batch early.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Dict, Mapping, Optional

from croniter import croniter
from loguru import logger

from stagehand.exceptions import ConfigError

from .models import QueueItem
from .store import QueueStore

DEFAULT_CRON_SCHEDULE = "0 */1 * * *"

PostFunction = Callable[[QueueItem], Awaitable[bool]]


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class PostScheduler:
    """
    Планировщик публикаций по cron расписанию.

    Usage:
        scheduler = PostScheduler(store, "0 */1 * * *", items_per_tick=1)
        await scheduler.start({"telegram": post_to_telegram})
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: QueueStore,
        cron_schedule: str = DEFAULT_CRON_SCHEDULE,
        items_per_tick: int = 1,
        post_functions: Optional[Mapping[str, PostFunction]] = None,
    ):
        if not croniter.is_valid(cron_schedule):
            raise ConfigError(
                f"Invalid cron expression: {cron_schedule!r}",
                field_name="cron_schedule",
                field_value=cron_schedule,
            )
        if not _is_positive_int(items_per_tick):
            raise ConfigError(
                f"Invalid items per tick: {items_per_tick!r}. Must be positive integer",
                field_name="items_per_tick",
                field_value=items_per_tick,
            )

        self.store = store
        self.cron_schedule = cron_schedule
        self.items_per_tick = items_per_tick
        self.post_functions: Dict[str, PostFunction] = dict(post_functions or {})

        self._loop_task: Optional[asyncio.Task] = None
        self._tick_lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._stopping = False

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def next_run(self, now: Optional[datetime] = None) -> datetime:
        """Время следующего срабатывания по текущему расписанию."""
        base = now or datetime.now()
        return croniter(self.cron_schedule, base).get_next(datetime)

    async def start(self, post_functions: Optional[Mapping[str, PostFunction]] = None) -> bool:
        """
        Запуск cron цикла.

        Args:
            post_functions: Направление -> корутина публикации элемента

        Returns:
            False если планировщик уже запущен
        """
        if self.is_running:
            logger.warning("Scheduler already running")
            return False

        if post_functions is not None:
            self.post_functions = dict(post_functions)

        missing = [d for d in self.store.destinations if d not in self.post_functions]
        if missing:
            logger.warning(f"No post function for destinations: {', '.join(missing)}")

        self._stopping = False
        self._wakeup.clear()
        self._loop_task = asyncio.create_task(self._run_loop(), name="post_scheduler")
        logger.info(
            f"Scheduler started with cron schedule: {self.cron_schedule} "
            f"(next run {self.next_run():%Y-%m-%d %H:%M:%S})"
        )
        return True

    async def _sleep_until_next_run(self) -> bool:
        """
        Ожидание следующего срабатывания.

        Returns:
            True если цикл разбужен раньше срока (смена расписания или остановка)
        """
        delay = max(0.0, (self.next_run() - datetime.now()).total_seconds())
        waiter = asyncio.ensure_future(self._wakeup.wait())
        try:
            # Отмена задачи цикла проходит через asyncio.wait без потерь
            done, _ = await asyncio.wait({waiter}, timeout=delay)
        finally:
            waiter.cancel()

        if waiter in done:
            self._wakeup.clear()
            return True
        return False

    async def _run_loop(self) -> None:
        while not self._stopping:
            woken = await self._sleep_until_next_run()
            if self._stopping:
                break
            if woken:
                continue

            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduled tick failed")

    async def tick(self) -> int:
        """
        Один проход планировщика.

        Returns:
            Количество обработанных элементов (0 если проход уже идёт)
        """
        if self._tick_lock.locked():
            logger.warning("Previous scheduler tick still running, skipping")
            return 0

        async with self._tick_lock:
            processed = 0
            for _ in range(self.items_per_tick):
                item = await self.store.peek_front()
                if item is None:
                    logger.info("Queue is empty, nothing to post")
                    break

                delivered_any = await self._deliver(item)
                processed += 1

                if not delivered_any:
                    logger.warning(
                        f"No destination accepted '{item.title}', stopping this batch"
                    )
                    break

            return processed

    async def _deliver(self, item: QueueItem) -> bool:
        """
        Публикация элемента в каждое недоставленное направление по порядку.

        Returns:
            True если хотя бы одно направление приняло элемент
        """
        delivered_any = False

        for destination in item.pending_destinations(self.store.destinations):
            post = self.post_functions.get(destination)
            if post is None:
                continue

            try:
                success = await post(item)
            except Exception:
                logger.exception(f"Error posting '{item.title}' to {destination}")
                success = False

            if success:
                await self.store.mark_delivered(0, destination, item_id=item.id)
                delivered_any = True
                logger.info(f"Posted '{item.title}' to {destination}")
            else:
                logger.error(f"Failed to post '{item.title}' to {destination}, will retry")

        return delivered_any

    def set_cron_schedule(self, expression: str) -> bool:
        """
        Смена расписания. Неверное выражение отклоняется, старое остаётся.
        """
        if not isinstance(expression, str) or not croniter.is_valid(expression):
            logger.error(f"Invalid cron expression: {expression!r}")
            return False

        self.cron_schedule = expression
        if self.is_running:
            self._wakeup.set()
        logger.info(f"Cron schedule updated to: {expression}")
        return True

    def set_items_per_tick(self, count: int) -> bool:
        """Смена количества элементов за проход (только целое > 0)."""
        if not _is_positive_int(count):
            logger.error(f"Invalid items per tick: {count!r}")
            return False

        self.items_per_tick = count
        logger.info(f"Items per tick set to: {count}")
        return True

    async def stop(self) -> None:
        """Остановка cron цикла и сохранение очереди."""
        if self._loop_task is not None:
            # Флаг завершает цикл, даже если отмена потеряется при пробуждении
            self._stopping = True
            self._wakeup.set()
            self._loop_task.cancel()
            await asyncio.wait({self._loop_task})
            self._loop_task = None
            logger.info("Scheduler stopped")

        await self.store.save()
