"""Async HTTP fetcher.

Responsible solely for downloading a page and running its body through the
Open Graph extractor.  The body is streamed, so extraction starts with the
first chunk and the page is never buffered whole.

Uses httpx.AsyncClient which is meant to be long-lived and reused.
A single shared client is managed by the module; see ``get_http_client``
and ``close_http_client`` for lifecycle hooks.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    wait_exponential,
)

from app.core.config import settings
from app.extractors.opengraph import extract_async
from app.models.preview.record import MetadataRecord

logger = logging.getLogger(__name__)

# Module-level shared client
_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Return the shared AsyncClient.  Creates one if missing."""
    global _http_client  # noqa: PLW0603
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout),
            follow_redirects=True,
            verify=settings.http_verify_ssl,
            headers={"User-Agent": settings.http_user_agent},
        )
    return _http_client


async def close_http_client() -> None:
    """Close the shared AsyncClient gracefully."""
    global _http_client  # noqa: PLW0603
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
        _http_client = None
        logger.info("HTTP client closed.")


class FetchError(Exception):
    """Raised when the page behind a URL cannot be downloaded."""


@retry(
    retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
    stop=lambda rs: rs.attempt_number >= settings.http_max_retries + 1,
    wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=False,
)
async def _fetch_with_retry(url: str) -> MetadataRecord:
    """Single fetch attempt; tenacity retries on transient errors."""
    return await _do_fetch(url)


async def fetch_preview(url: str) -> MetadataRecord:
    """Download *url* and return the Open Graph record found in its body.

    With the default ``http_max_retries`` of 0 a single attempt is made.
    When retries are enabled, timeouts and connection failures are retried
    with exponential backoff via tenacity.  Raises :class:`FetchError` on
    permanent failures or when all attempts are exhausted.

    The ``stop`` condition uses a lambda so ``settings.http_max_retries``
    is read per-attempt, not at import time.
    """
    try:
        return await _fetch_with_retry(url)
    except RetryError as exc:
        raise FetchError(
            f"Failed to fetch {url} after {settings.http_max_retries + 1} attempts: "
            f"{exc.last_attempt.exception()}"
        ) from exc


async def _do_fetch(url: str) -> MetadataRecord:
    """Stream a single GET of *url* through the extractor.

    The status code is not inspected: error pages are parsed like any other
    HTML.
    """
    client = get_http_client()

    try:
        async with client.stream("GET", url) as response:
            if response.is_error:
                logger.debug("Parsing %s despite HTTP %d", url, response.status_code)
            return await extract_async(response.aiter_text())
    except httpx.InvalidURL as exc:
        raise FetchError(f"Invalid URL '{url}': {exc}") from exc
    except httpx.TimeoutException:
        raise  # propagate for retry logic
    except httpx.ConnectError:
        raise  # propagate for retry logic
    except httpx.RequestError as exc:
        raise FetchError(f"Request error for '{url}': {exc}") from exc
