"""Shared fixtures.

Every test runs against a throwaway workspace (``tmp_path``) so nothing is
written to ``~/.statecrawl_data``, and the ``statecrawl`` logger is reset
afterwards so handlers bound to captured streams do not leak between tests.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Generator, Union

import pytest

from statecrawl.db.connection import get_connection
from statecrawl.db.migrations import init_db
from statecrawl.scraper.errors import NetworkError
from statecrawl.scraper.models import FetchResult, PipelineConfig


class StubFetcher:
    """In-memory stand-in for :class:`RetryingFetcher`.

    ``pages`` maps URL → body, or URL → exception to raise.  Unknown URLs
    raise a 404 :class:`NetworkError`.  Tracks calls and peak concurrency.
    """

    def __init__(self, pages: dict[str, Union[str, Exception]], delay: float = 0.0):
        self.pages = pages
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak = 0
        self.closed = False

    async def __aenter__(self) -> "StubFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.closed = True

    async def fetch(self, url: str, attempt: int = 0) -> FetchResult:
        self.calls.append(url)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            page = self.pages.get(url, NetworkError(url, "HTTP 404", status_code=404))
            if isinstance(page, Exception):
                raise page
            return FetchResult(url=url, body=page, status_code=200)
        finally:
            self.in_flight -= 1


@pytest.fixture(autouse=True)
def _isolated_workspace(tmp_path, monkeypatch) -> Generator[None, None, None]:
    monkeypatch.setattr("statecrawl.config.settings.workspace_dir", tmp_path)
    yield
    logger = logging.getLogger("statecrawl")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def fast_config() -> PipelineConfig:
    """Pipeline config with no pacing delay."""
    return PipelineConfig(
        request_delay_ms=0,
        max_retries=3,
        timeout_ms=1000,
        max_concurrent_requests=2,
    )


@pytest.fixture()
def stub_fetcher():
    """Factory for :class:`StubFetcher` instances."""
    return StubFetcher
