"""
Command-line interface for Stagehand.

Runs the posting service and exposes operator commands for the queue and
the media cache.
"""

import argparse
import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Sequence

import aiohttp
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from stagehand.config import DISCORD_DESTINATION, TELEGRAM_DESTINATION, Config
from stagehand.destinations import DiscordWebhookPoster, TelegramPoster, create_telegram_poster
from stagehand.exceptions import ConfigError, FetchError, QueueLockedError, TranscodeError
from stagehand.media import MediaProcessor
from stagehand.queue import PostFunction, PostScheduler, QueueStore
from stagehand.utils import logger, setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Парсер аргументов командной строки."""
    parser = argparse.ArgumentParser(
        prog="stagehand",
        description="Stagehand - scheduled media reposting to Telegram and Discord",
        epilog="""
Examples:
  stagehand run
  stagehand add https://example.com/art.png --title "Sunset" --source-url https://example.com/post/1
  stagehand list
  stagehand front 3
            """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--env-file", type=Path, default=Path(".env"), help="Path to .env file (default: ./.env)"
    )
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Run the scheduler until interrupted")

    add = subparsers.add_parser("add", help="Download media and add it to the queue")
    add.add_argument("media_url", help="Direct URL of the image or video")
    add.add_argument("--title", required=True, help="Post title")
    add.add_argument("--source-url", required=True, help="Page the media was taken from")
    add.add_argument("--site", default=None, help="Source site name")
    add.add_argument("--author", default=None, help="Artist or author name")
    add.add_argument("--video", action="store_true", help="Treat the media as video")

    subparsers.add_parser("list", help="Show queued items")

    remove = subparsers.add_parser("remove", help="Remove item from the queue")
    remove.add_argument("index", type=int, help="Queue position (0 = next)")

    front = subparsers.add_parser("front", help="Move item to the front of the queue")
    front.add_argument("index", type=int, help="Queue position (0 = next)")

    subparsers.add_parser("evict", help="Remove stale files from the media cache")
    subparsers.add_parser("tick", help="Run one scheduler pass now")

    return parser


def build_post_functions(
    config: Config, session: aiohttp.ClientSession
) -> tuple[Dict[str, PostFunction], Optional[TelegramPoster]]:
    """Функции публикации для настроенных направлений."""
    post_functions: Dict[str, PostFunction] = {}

    telegram = create_telegram_poster(config.bot_token, config.channel_id)
    if telegram is not None:
        post_functions[TELEGRAM_DESTINATION] = telegram.post

    if config.discord_webhook_url:
        discord = DiscordWebhookPoster(config.discord_webhook_url, session)
        post_functions[DISCORD_DESTINATION] = discord.post

    return post_functions, telegram


def build_payload(args: argparse.Namespace, local_path: Path, is_video: bool) -> dict:
    """Данные элемента очереди из аргументов команды add."""
    payload = {
        "title": args.title,
        "site_name": args.site,
        "source_url": args.source_url,
        "name": args.author,
        "is_video": is_video,
    }
    if is_video:
        payload["original_video_url"] = args.media_url
        payload["video_url"] = str(local_path)
    else:
        payload["original_image_url"] = args.media_url
        payload["image_url"] = str(local_path)
    return {k: v for k, v in payload.items() if v is not None}


@asynccontextmanager
async def _open_store(config: Config) -> AsyncIterator[QueueStore]:
    """
    Хранилище очереди с эксклюзивным владением файлом.

    Raises:
        QueueLockedError: файл очереди занят запущенным `stagehand run`
    """
    store = QueueStore(
        config.queue_file,
        config.destinations,
        autosave_interval=config.autosave_interval_minutes * 60,
    )
    store.acquire_file_lock()
    try:
        await store.load()
        yield store
    finally:
        store.release_file_lock()


async def run_service(config: Config) -> int:
    """Основной режим: очистка кэша, автосохранение и планировщик до сигнала."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows

    async with _open_store(config) as store, aiohttp.ClientSession() as session:
        processor = MediaProcessor.from_config(config, session=session)
        await processor.start(run_eviction=True)
        store.start_autosave()

        post_functions, telegram = build_post_functions(config, session)
        scheduler = PostScheduler(
            store,
            config.default_cron_schedule,
            config.images_per_interval,
        )
        await scheduler.start(post_functions)
        rprint(
            f"[bold green]Stagehand running[/bold green] "
            f"({len(store)} queued, destinations: {', '.join(config.destinations)})"
        )

        try:
            await stop_event.wait()
        finally:
            logger.info("Shutting down...")
            await scheduler.stop()
            await store.shutdown()
            processor.log_statistics()
            await processor.shutdown()
            if telegram is not None:
                await telegram.close()

    rprint("[bold yellow]Stagehand stopped[/bold yellow]")
    return 0


async def cmd_add(config: Config, args: argparse.Namespace) -> int:
    # Файл очереди захватывается до загрузки, чтобы не качать медиа впустую
    async with _open_store(config) as store:
        async with aiohttp.ClientSession() as session:
            processor = MediaProcessor.from_config(config, session=session)
            await processor.start(run_eviction=False)
            try:
                media = await processor.process_media_url(
                    args.media_url, is_video_hint=args.video
                )
            except (FetchError, TranscodeError) as e:
                rprint(f"[bold red]Error processing media:[/bold red] {e}")
                return 1
            finally:
                await processor.shutdown()

        item = await store.enqueue(build_payload(args, media.local_path, media.is_video))
        rprint(
            f"[green]Added to queue at position {len(store) - 1}:[/green] {item.title} "
            f"({'video' if media.is_video else 'image'})"
        )
    return 0


async def cmd_list(config: Config) -> int:
    async with _open_store(config) as store:
        items = await store.get_queue()
    if not items:
        rprint("Queue is empty.")
        return 0

    table = Table(title=f"Queue ({len(items)} items)")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Type")
    for destination in store.destinations:
        table.add_column(destination)
    table.add_column("Added")

    for index, item in enumerate(items):
        statuses = ["✓" if item.is_delivered(d) else "-" for d in store.destinations]
        table.add_row(
            str(index),
            item.title,
            "video" if item.is_video else "image",
            *statuses,
            item.timestamp[:19],
        )

    Console().print(table)
    return 0


async def cmd_remove(config: Config, index: int) -> int:
    async with _open_store(config) as store:
        removed = await store.remove_at(index)
    if removed is None:
        rprint(f"[red]No item at position {index}[/red]")
        return 1
    rprint(f"Removed: {removed.title}")
    return 0


async def cmd_front(config: Config, index: int) -> int:
    async with _open_store(config) as store:
        moved = await store.move_to_front(index)
    if not moved:
        rprint(f"[red]No item at position {index}[/red]")
        return 1
    rprint(f"Moved item {index} to the front of the queue")
    return 0


async def cmd_evict(config: Config) -> int:
    processor = MediaProcessor.from_config(config)
    processor.cache_store.init_dirs()
    removed = await asyncio.to_thread(processor.cache_store.evict_stale)
    rprint(f"Removed {len(removed)} stale cache files")
    return 0


async def cmd_tick(config: Config) -> int:
    async with _open_store(config) as store, aiohttp.ClientSession() as session:
        post_functions, telegram = build_post_functions(config, session)
        scheduler = PostScheduler(
            store,
            config.default_cron_schedule,
            config.images_per_interval,
            post_functions=post_functions,
        )
        try:
            processed = await scheduler.tick()
        finally:
            await store.shutdown()
            if telegram is not None:
                await telegram.close()
    rprint(f"Processed {processed} item{'s' if processed != 1 else ''}, {len(store)} left in queue")
    return 0


async def dispatch(config: Config, args: argparse.Namespace) -> int:
    try:
        if args.command == "run":
            return await run_service(config)
        if args.command == "add":
            return await cmd_add(config, args)
        if args.command == "list":
            return await cmd_list(config)
        if args.command == "remove":
            return await cmd_remove(config, args.index)
        if args.command == "front":
            return await cmd_front(config, args.index)
        if args.command == "evict":
            return await cmd_evict(config)
        if args.command == "tick":
            return await cmd_tick(config)
    except QueueLockedError as e:
        rprint(
            f"[bold red]Queue is busy:[/bold red] {e}\n"
            "Stop the running `stagehand run` service before changing the queue."
        )
        return 1
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Точка входа CLI."""
    args = create_parser().parse_args(argv)

    try:
        config = Config.from_env(args.env_file)
    except ConfigError as e:
        rprint(f"[bold red]Configuration error:[/bold red] {e}")
        return 1

    setup_logging(args.log_level or config.log_level, config.log_file)
    logger.debug(f"Configuration: {config.to_dict()}")

    try:
        return asyncio.run(dispatch(config, args))
    except KeyboardInterrupt:
        rprint("\n[bold yellow]Interrupted[/bold yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
