from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from app.core.collections import CollectionNames
from app.core.config import settings
from app.models.preview.record import MetadataRecord
from app.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Raised when the cache backend cannot serve a read or a write."""


class PreviewCache(Protocol):
    """Key-value store of previews, keyed by the normalised URL."""

    async def get(self, url: str) -> MetadataRecord | None:
        """Return the stored record, or ``None`` if *url* was never stored."""

    async def set(self, url: str, record: MetadataRecord) -> None:
        """Store *record* under *url*, replacing any previous value."""


def cache_key(url: str) -> str:
    """Namespaced storage key for *url*; the URL is used verbatim."""
    return f"{settings.cache_key_prefix}{url}"


class PreviewCacheRepository(BaseRepository):
    """MongoDB-backed ``PreviewCache``.

    Each entry is a ``{"key": ..., "value": ...}`` document where ``value``
    is the record serialised as JSON.  Writes are blind upserts with no
    expiry.
    """

    COLLECTION_NAME = CollectionNames.URL_PREVIEW

    async def ensure_indexes(self) -> None:
        await self._col.create_index("key", unique=True)

    async def get(self, url: str) -> MetadataRecord | None:
        key = cache_key(url)
        try:
            result = await self._col.find_one({"key": key})
        except PyMongoError as exc:
            logger.exception("MongoDB read failed for key=%s", key)
            raise CacheError("Cache read error") from exc
        if result is None:
            return None
        try:
            return MetadataRecord.model_validate_json(result["value"])
        except (KeyError, TypeError, ValidationError) as exc:
            raise CacheError(f"Corrupt cache entry for key={key}") from exc

    async def set(self, url: str, record: MetadataRecord) -> None:
        key = cache_key(url)
        try:
            await self._col.update_one(
                {"key": key},
                {"$set": {"value": record.model_dump_json(by_alias=True)}},
                upsert=True,
            )
        except PyMongoError as exc:
            logger.exception("MongoDB write failed for key=%s", key)
            raise CacheError("Cache write error") from exc
