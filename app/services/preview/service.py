from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from app.models.preview.record import MetadataRecord
from app.repositories.preview.cache import CacheError, PreviewCache
from app.workers.fetcher import fetch_preview

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[MetadataRecord]]


class PreviewService:
    """Cache-aside lookup of Open Graph previews."""

    def __init__(self, cache: PreviewCache, fetcher: Fetcher = fetch_preview) -> None:
        self._cache = cache
        self._fetch = fetcher

    async def preview(self, url: str) -> MetadataRecord:
        """Return the preview for *url*, fetching it only on a cache miss.

        A stored record is returned as-is, even when all its fields are
        empty, so pages without Open Graph tags are fetched once.

        Raises:
            FetchError: the page could not be downloaded; nothing is cached.
            CacheError: the cache could not be read.
        """
        record = await self._cache.get(url)
        if record is not None:
            logger.debug("Cache hit for %s", url)
            return record

        logger.debug("Cache miss for %s, fetching", url)
        record = await self._fetch(url)
        await self._store(url, record)
        return record

    async def _store(self, url: str, record: MetadataRecord) -> None:
        """Best-effort cache write; the preview is served either way."""
        try:
            await self._cache.set(url, record)
        except CacheError as exc:
            logger.warning("Could not cache preview for %s: %s", url, exc)
