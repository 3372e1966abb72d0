"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection (shared across all
requests via ``request.app.state.db``), initialises the schema and builds one
:class:`~statecrawl.scraper.pipeline.CrawlPipeline` (``app.state.pipeline``)
so concurrent requests share its concurrency cap.  On shutdown both are
closed.

Routers
-------
    /crawl      crawl one URL or a batch
    /records    stored crawl history
    /spider     article headline and league standings crawlers
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import time
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from statecrawl import __version__
from statecrawl.config import settings
from statecrawl.db import get_connection, init_db
from statecrawl.db.records import SqliteRecordStore
from statecrawl.logger import setup_logger
from statecrawl.scraper.pipeline import CrawlPipeline

from statecrawl.api.routers import crawl as crawl_router
from statecrawl.api.routers import records as records_router
from statecrawl.api.routers import spider as spider_router

logger = logging.getLogger(__name__)

_ENDPOINTS = [
    "GET  /status",
    "POST /crawl",
    "POST /crawl/batch",
    "GET  /records?url=",
    "GET  /records/recent",
    "GET  /spider/article?article_id=",
    "POST /spider/standings",
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the DB and pipeline on startup and close them on shutdown."""
    setup_logger(settings.log_dir, settings.log_level)
    conn = get_connection()
    init_db(conn)
    app.state.db = conn
    app.state.pipeline = CrawlPipeline(SqliteRecordStore(conn))
    app.state.started_at = time()
    logger.info("API ready (db=%s)", settings.db_path)
    try:
        yield
    finally:
        await app.state.pipeline.aclose()
        conn.close()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="statecrawl API",
        description=(
            "Crawl server-rendered pages, recover their embedded client "
            "state and query the stored crawl history."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.0f ms)",
            request.method, request.url.path, response.status_code,
            (time() - started) * 1000,
        )
        return response

    @app.get("/status")
    def status() -> dict[str, Any]:
        """Liveness check with uptime and the available endpoints."""
        started = getattr(app.state, "started_at", time())
        return {
            "success": True,
            "service": "statecrawl",
            "version": __version__,
            "uptime_seconds": round(time() - started, 3),
            "endpoints": _ENDPOINTS,
        }

    app.include_router(crawl_router.router, prefix="/crawl", tags=["crawl"])
    app.include_router(records_router.router, prefix="/records", tags=["records"])
    app.include_router(spider_router.router, prefix="/spider", tags=["spider"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn statecrawl.api.app:app --reload
app = create_app()
