from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler as default_http_handler
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.router import router
from app.core.config import settings
from app.core.database import db
from app.models.common import envelope
from app.repositories.preview.cache import PreviewCacheRepository
from app.workers.fetcher import close_http_client


def _configure_logging() -> None:
    """Configure the ``app`` logger namespace.

    ``logging.basicConfig`` is a no-op when the root logger already has
    handlers (e.g. when uvicorn sets up its own handlers before our lifespan
    runs).  Configuring the ``app`` namespace directly, with
    ``propagate = False``, ensures all application logs reach stdout
    regardless of uvicorn's root-logger setup.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    )
    app_log = logging.getLogger("app")
    app_log.setLevel(level)
    if not app_log.handlers:
        app_log.addHandler(handler)
    app_log.propagate = False


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # ── Startup ──────────────────────────────────────────────────────
    await db.connect()
    await PreviewCacheRepository.from_db(db).ensure_indexes()
    yield
    # ── Shutdown ─────────────────────────────────────────────────────
    await close_http_client()
    await db.disconnect()


app = FastAPI(
    title="URL Preview",
    description="Unfurls URLs into cached Open Graph previews.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(
    request: Request, exc: StarletteHTTPException
) -> Response:
    """Unknown routes get the standard envelope instead of a bare 404."""
    if exc.status_code == 404:
        return JSONResponse(
            envelope(None, f"This url {request.url.path} is not supported.", False)
        )
    return await default_http_handler(request, exc)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    uvicorn.run(app, host=settings.host, port=settings.port)
