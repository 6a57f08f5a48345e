from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

import app.workers.fetcher as fetcher_module
from app.models.preview.record import EMPTY_RECORD, MetadataRecord
from app.repositories.preview.cache import CacheError
from app.services.preview.service import PreviewService
from app.workers.fetcher import FetchError, fetch_preview

_HTML = (
    "<html><head>"
    '<meta property="og:title" content="Fetched">'
    '<link rel="shortcut icon" href="/favicon.ico">'
    "</head></html>"
)
_RECORD = MetadataRecord(title="Fetched", icon="/favicon.ico")


@pytest.fixture(autouse=True)
def fresh_http_client():
    fetcher_module._http_client = None
    yield
    fetcher_module._http_client = None


# ---------------------------------------------------------------------------
# Fetcher tests
# ---------------------------------------------------------------------------


class TestFetcher:
    @respx.mock
    async def test_successful_fetch_extracts_record(self):
        respx.get("https://example.com/").mock(
            return_value=httpx.Response(200, text=_HTML)
        )
        result = await fetch_preview("https://example.com/")
        assert result == _RECORD

    @respx.mock
    async def test_error_status_is_still_parsed(self):
        respx.get("https://example.com/missing").mock(
            return_value=httpx.Response(
                404, text='<meta property="og:title" content="Not Found">'
            )
        )
        result = await fetch_preview("https://example.com/missing")
        assert result.title == "Not Found"

    @respx.mock
    async def test_non_html_body_yields_empty_record(self):
        respx.get("https://example.com/data.json").mock(
            return_value=httpx.Response(200, json={"a": 1})
        )
        assert await fetch_preview("https://example.com/data.json") == EMPTY_RECORD

    async def test_invalid_url_raises_fetch_error(self):
        with patch("app.workers.fetcher.get_http_client") as mock_get:
            mock_get.return_value.stream.side_effect = httpx.InvalidURL("invalid url")
            with pytest.raises(FetchError, match="Invalid URL"):
                await fetch_preview("http://")

    @respx.mock
    async def test_request_error_raises_fetch_error(self):
        respx.get("https://example.com/").mock(
            side_effect=httpx.RemoteProtocolError("peer closed")
        )
        with pytest.raises(FetchError, match="Request error"):
            await fetch_preview("https://example.com/")

    async def test_timeout_is_not_retried_by_default(self):
        with patch(
            "app.workers.fetcher._do_fetch", new_callable=AsyncMock
        ) as mock_fetch:
            mock_fetch.side_effect = httpx.TimeoutException("timed out")
            with pytest.raises(FetchError, match="after 1 attempts"):
                await fetch_preview("https://example.com/")
        assert mock_fetch.call_count == 1

    async def test_timeout_retries_when_enabled(self):
        with (
            patch("app.workers.fetcher.settings") as mock_settings,
            patch("asyncio.sleep", new_callable=AsyncMock),
            patch(
                "app.workers.fetcher._do_fetch", new_callable=AsyncMock
            ) as mock_fetch,
        ):
            mock_settings.http_max_retries = 1
            mock_fetch.side_effect = httpx.TimeoutException("timed out")
            with pytest.raises(FetchError):
                await fetch_preview("https://example.com/")
        assert mock_fetch.call_count == 2

    async def test_connect_error_retries_when_enabled(self):
        with (
            patch("app.workers.fetcher.settings") as mock_settings,
            patch("asyncio.sleep", new_callable=AsyncMock),
            patch(
                "app.workers.fetcher._do_fetch", new_callable=AsyncMock
            ) as mock_fetch,
        ):
            mock_settings.http_max_retries = 1
            mock_fetch.side_effect = httpx.ConnectError("refused")
            with pytest.raises(FetchError):
                await fetch_preview("https://example.com/")
        assert mock_fetch.call_count == 2

    async def test_close_http_client(self):
        client = fetcher_module.get_http_client()
        await fetcher_module.close_http_client()
        assert client.is_closed
        assert fetcher_module._http_client is None


# ---------------------------------------------------------------------------
# PreviewService tests
# ---------------------------------------------------------------------------


class TestPreviewService:
    @pytest.fixture
    def fetcher(self):
        return AsyncMock(return_value=_RECORD)

    @pytest.fixture
    def service(self, memory_cache, fetcher):
        return PreviewService(memory_cache, fetcher=fetcher)

    async def test_miss_fetches_and_stores(self, service, memory_cache, fetcher):
        result = await service.preview("http://example.com")
        assert result == _RECORD
        fetcher.assert_called_once_with("http://example.com")
        assert memory_cache.store["http://example.com"] == _RECORD

    async def test_hit_never_fetches(self, service, memory_cache, fetcher):
        cached = MetadataRecord(title="Cached")
        memory_cache.store["http://example.com"] = cached
        result = await service.preview("http://example.com")
        assert result == cached
        fetcher.assert_not_called()
        assert memory_cache.sets == 0

    async def test_second_preview_is_served_from_cache(self, service, fetcher):
        await service.preview("http://example.com")
        await service.preview("http://example.com")
        assert fetcher.call_count == 1

    async def test_cached_empty_record_is_not_refetched(
        self, service, memory_cache, fetcher
    ):
        memory_cache.store["http://example.com"] = EMPTY_RECORD
        result = await service.preview("http://example.com")
        assert result.is_empty()
        fetcher.assert_not_called()

    async def test_fetch_error_propagates_and_skips_cache(
        self, service, memory_cache, fetcher
    ):
        fetcher.side_effect = FetchError("DNS lookup failed")
        with pytest.raises(FetchError, match="DNS lookup failed"):
            await service.preview("http://unreachable.example")
        assert memory_cache.store == {}

    async def test_cache_read_error_propagates(self, fetcher):
        cache = AsyncMock()
        cache.get.side_effect = CacheError("Cache read error")
        with pytest.raises(CacheError):
            await PreviewService(cache, fetcher=fetcher).preview("http://example.com")
        fetcher.assert_not_called()

    async def test_cache_write_error_is_logged_not_raised(self, fetcher):
        cache = AsyncMock()
        cache.get.return_value = None
        cache.set.side_effect = CacheError("Cache write error")
        with patch("app.services.preview.service.logger") as mock_logger:
            result = await PreviewService(cache, fetcher=fetcher).preview(
                "http://example.com"
            )
        assert result == _RECORD
        mock_logger.warning.assert_called_once()
