"""
Discord webhook destination.

Sends an embed pointing at the remote image when one is known, otherwise
uploads the local file with the embed, otherwise a plain text message.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse

import aiofiles
import aiohttp
import orjson
from loguru import logger

from stagehand.media.content_type import guess_content_type
from stagehand.queue.models import QueueItem

DEFAULT_COLOR = 0x7289DA
SITE_COLORS = {
    "FurAffinity": 0xFF7300,
    "e621": 0x00549E,
    "SoFurry": 0x543E94,
    "Weasyl": 0x990000,
    "Bluesky": 0x0085FF,
    "Twitter": 0x1DA1F2,
}

# Ограничение Discord на количество embed в сообщении
MAX_EMBEDS = 10
REQUEST_TIMEOUT = 30
VIDEO_NOTE = "This post contains a video. Click the title to watch."


def embed_image_url(url: Optional[str]) -> Optional[str]:
    """URL, пригодный для embed: только https (http повышается до https)."""
    if not url:
        return None
    parsed = urlparse(url)
    if not parsed.netloc:
        return None
    if parsed.scheme == "http":
        return urlunparse(parsed._replace(scheme="https"))
    if parsed.scheme != "https":
        return None
    return url


class DiscordWebhookPoster:
    """Публикация элементов очереди через Discord webhook."""

    def __init__(self, webhook_url: str, session: aiohttp.ClientSession):
        self.webhook_url = webhook_url
        self.session = session

    def _base_embed(self, item: QueueItem) -> Dict[str, Any]:
        site = item.payload.get("site_name") or "unknown source"
        embed: Dict[str, Any] = {
            "title": item.title,
            "color": SITE_COLORS.get(site, DEFAULT_COLOR),
            "footer": {
                "text": f"Video from {site} (click to view)" if item.is_video else f"Posted from {site}"
            },
            "timestamp": item.timestamp or datetime.now(timezone.utc).isoformat(),
        }
        if item.source_url:
            embed["url"] = item.source_url
        if item.payload.get("name"):
            embed["author"] = {"name": item.payload["name"]}
        if item.is_video:
            embed["description"] = VIDEO_NOTE
        return embed

    def build_embeds(self, item: QueueItem) -> List[Dict[str, Any]]:
        """
        Embed с удалённым изображением; для нескольких оригиналов -
        до MAX_EMBEDS штук. Пустой список если подходящего URL нет.
        """
        originals = item.payload.get("original_image_urls")
        if not item.is_video and isinstance(originals, list) and len(originals) > 1:
            embeds = []
            for url in originals[:MAX_EMBEDS]:
                image_url = embed_image_url(url)
                if not image_url:
                    logger.warning(f"Skipping invalid embed image URL: {url}")
                    continue
                embed = self._base_embed(item) if not embeds else {"color": DEFAULT_COLOR}
                if embeds and item.source_url:
                    # Discord группирует embed с одинаковым url в одну галерею
                    embed["url"] = item.source_url
                embed["image"] = {"url": image_url}
                embeds.append(embed)
            return embeds

        image_url = embed_image_url(item.source_img_url)
        if not image_url:
            return []
        embed = self._base_embed(item)
        embed["image"] = {"url": image_url}
        return [embed]

    async def post(self, item: QueueItem) -> bool:
        """
        Публикация элемента.

        Returns:
            True если webhook ответил успешно
        """
        try:
            embeds = self.build_embeds(item)
            if embeds:
                return await self._send_json({"embeds": embeds}, item)

            local = next((Path(p) for p in item.media_paths if Path(p).is_file()), None)
            if local is not None:
                return await self._send_file(item, local)

            site = item.payload.get("site_name") or "unknown source"
            content = f"{item.title} from {site}: {item.source_url or ''}".strip()
            return await self._send_json({"content": content}, item)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Discord webhook request failed for '{item.title}': {e!r}")
            return False
        except OSError as e:
            logger.error(f"Could not read media for Discord upload: {e}")
            return False

    async def _send_json(self, payload: Dict[str, Any], item: QueueItem) -> bool:
        async with self.session.post(
            self.webhook_url,
            data=orjson.dumps(payload),
            headers={"Content-Type": "application/json"},
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
        ) as response:
            return await self._check(response, item)

    async def _send_file(self, item: QueueItem, path: Path) -> bool:
        async with aiofiles.open(path, "rb") as f:
            content = await f.read()

        form = aiohttp.FormData()
        form.add_field(
            "payload_json",
            orjson.dumps({"embeds": [self._base_embed(item)]}).decode(),
            content_type="application/json",
        )
        form.add_field(
            "file",
            content,
            filename=path.name,
            content_type=guess_content_type(path.suffix) or "application/octet-stream",
        )

        logger.info(f"Uploading local file to Discord: {path.name}")
        async with self.session.post(
            self.webhook_url,
            data=form,
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
        ) as response:
            return await self._check(response, item)

    async def _check(self, response: aiohttp.ClientResponse, item: QueueItem) -> bool:
        if response.status >= 400:
            body = await response.text()
            logger.error(
                f"Discord webhook returned {response.status} for '{item.title}': {body[:500]}"
            )
            return False
        return True
