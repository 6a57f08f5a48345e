from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.preview.record import MetadataRecord


class InMemoryCache:
    """``PreviewCache`` backed by a dict, counting reads and writes."""

    def __init__(self) -> None:
        self.store: dict[str, MetadataRecord] = {}
        self.gets = 0
        self.sets = 0

    async def get(self, url: str) -> MetadataRecord | None:
        self.gets += 1
        return self.store.get(url)

    async def set(self, url: str, record: MetadataRecord) -> None:
        self.sets += 1
        self.store[url] = record


@pytest.fixture
def memory_cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def client():
    """TestClient with lifespan startup/shutdown hooks fully mocked."""
    with (
        patch(
            "app.core.database.DatabaseManager.connect",
            new_callable=AsyncMock,
        ),
        patch(
            "app.core.database.DatabaseManager.disconnect",
            new_callable=AsyncMock,
        ),
        patch(
            "app.core.database.DatabaseManager.get_collection",
            return_value=MagicMock(),
        ),
        patch(
            "app.repositories.preview.cache.PreviewCacheRepository.ensure_indexes",
            new_callable=AsyncMock,
        ),
        patch(
            "app.main.close_http_client",
            new_callable=AsyncMock,
        ),
    ):
        with TestClient(app) as c:
            yield c
