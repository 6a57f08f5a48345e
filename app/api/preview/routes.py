from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from app.api.preview.validation import URLValidationError, normalize_url
from app.core.config import settings
from app.core.database import db
from app.models.common import envelope
from app.models.preview.schemas import PreviewData
from app.repositories.preview.cache import CacheError, PreviewCacheRepository
from app.services.preview.service import PreviewService
from app.workers.fetcher import FetchError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["preview"])


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


def _get_service() -> PreviewService:
    """FastAPI dependency that builds a ``PreviewService`` for each request.

    Motor checks a pooled connection out for each cache operation and hands
    it back when the operation ends, success or not.
    """
    return PreviewService(PreviewCacheRepository.from_db(db))


class ClientDisconnected(Exception):
    """The client hung up before its preview was ready."""


async def _cancel_on_disconnect(request: Request, task: asyncio.Task) -> bool:
    """Cancel *task* if the client hangs up before it finishes.

    Returns True when the task was cancelled here.
    """
    while not task.done():
        if await request.is_disconnected():
            task.cancel()
            return True
        await asyncio.sleep(settings.disconnect_poll_interval)
    return False


async def _run_preview(request: Request, service: PreviewService, url: str):
    task = asyncio.ensure_future(service.preview(url))
    watcher = asyncio.ensure_future(_cancel_on_disconnect(request, task))
    try:
        return await task
    except asyncio.CancelledError:
        # Only a cancel issued by the watcher is ours to absorb.
        if watcher.done() and not watcher.cancelled() and watcher.result():
            raise ClientDisconnected(url) from None
        raise
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------


@router.get("/", summary="Unfurl a URL into its Open Graph preview")
async def get_preview(
    request: Request,
    url: str = "",
    service: PreviewService = Depends(_get_service),
) -> dict[str, Any]:
    """Return the preview of *url*, served from cache when possible.

    Always answers **200**; ``status`` and ``message`` in the envelope tell
    success from failure.
    """
    try:
        normalised_url = normalize_url(url)
    except URLValidationError as exc:
        logger.warning("GET / rejected url=%r: %s", url, exc)
        return envelope(None, str(exc), False)

    try:
        record = await _run_preview(request, service, normalised_url)
    except FetchError as exc:
        logger.warning("GET / fetch error for %s: %s", normalised_url, exc)
        return envelope(None, str(exc), False)
    except CacheError as exc:
        logger.error("GET / cache error for %s: %s", normalised_url, exc)
        return envelope(None, str(exc), False)
    except ClientDisconnected:
        logger.info("Client disconnected, abandoned preview of %s", normalised_url)
        return envelope(None, "Client disconnected.", False)

    return envelope(PreviewData(url=normalised_url, data=record), "", True)
