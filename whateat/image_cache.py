"""Process-wide LRU of downloaded images keyed by URL."""

import asyncio
import logging
from collections import OrderedDict

import requests

from whateat import config

logger = logging.getLogger(__name__)


class ImageCache:
    def __init__(
        self,
        capacity: int = config.IMAGE_CACHE_SIZE,
        session: requests.Session | None = None,
        timeout: float = config.REQUEST_TIMEOUT_SECONDS,
    ):
        self.capacity = capacity
        self.session = session or requests.Session()
        self.timeout = timeout
        self._entries: OrderedDict[str, bytes] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def get(self, url: str) -> bytes | None:
        data = self._entries.get(url)
        if data is not None:
            self._entries.move_to_end(url)
        return data

    def put(self, url: str, data: bytes) -> None:
        self._entries[url] = data
        self._entries.move_to_end(url)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cached image", extra={"url": evicted})

    def clear(self) -> None:
        self._entries.clear()

    async def load(self, url: str) -> bytes | None:
        """Cached bytes for *url*, downloading them on a miss. None if the download fails."""
        cached = self.get(url)
        if cached is not None:
            return cached

        try:
            response = await asyncio.to_thread(self.session.get, url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Image download failed", extra={"url": url, "error": str(e)})
            return None

        if not 200 <= response.status_code < 300:
            logger.warning("Image download rejected", extra={"url": url, "status": response.status_code})
            return None

        self.put(url, response.content)
        return response.content


_shared_cache: ImageCache | None = None


def shared_image_cache() -> ImageCache:
    global _shared_cache
    if _shared_cache is None:
        _shared_cache = ImageCache()
    return _shared_cache
