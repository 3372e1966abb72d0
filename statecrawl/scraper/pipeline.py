"""Crawl pipeline: dedup → slot → fetch → extract → persist → release → pace.

``crawl_one`` handles a single URL and raises on failure after recording it;
``crawl_many`` walks a sequence one URL at a time and turns failures into
``None`` entries so a batch always runs to the end.

Concurrent ``crawl_one`` calls on the same pipeline share one
:class:`~statecrawl.scraper.limiter.ConcurrencyLimiter`.  The existence check
is not atomic with the append that follows it: two concurrent calls for the
same new URL may both fetch and both append a record.
"""

from __future__ import annotations

import asyncio
import logging
from time import time
from typing import AsyncIterator, Iterable, Optional, Protocol

from statecrawl.db.models import STATUS_FAILED, STATUS_SUCCESS, CrawlRecord
from statecrawl.scraper.errors import ExtractionError, NetworkError
from statecrawl.scraper.extractor import StateExtractor, data_keys, extract_title
from statecrawl.scraper.fetcher import RetryingFetcher
from statecrawl.scraper.limiter import ConcurrencyLimiter
from statecrawl.scraper.models import Extracted, PipelineConfig

logger = logging.getLogger(__name__)

NO_STATE_MESSAGE = "no recoverable state found"


class RecordStore(Protocol):
    def exists(self, source_url: str) -> Optional[CrawlRecord]:
        """Most recent record for *source_url*, or ``None``."""
        ...

    def append(self, record: CrawlRecord) -> CrawlRecord:
        ...


async def _pause(seconds: float) -> None:
    await asyncio.sleep(seconds)


class CrawlPipeline:
    """Fetch pages, extract their embedded state and record the outcome.

    Args:
        store: Where records are looked up and appended.
        config: Pipeline knobs; defaults to values from ``settings``.
        fetcher: Override the HTTP fetcher (tests inject one backed by a
            mocked transport).
    """

    def __init__(
        self,
        store: RecordStore,
        config: Optional[PipelineConfig] = None,
        fetcher: Optional[RetryingFetcher] = None,
    ):
        self.store = store
        self.config = config or PipelineConfig.from_settings()
        self.fetcher = fetcher or RetryingFetcher(self.config)
        self.extractor = StateExtractor(
            self.config.global_name, enable_evaluation=self.config.enable_evaluation
        )
        self.limiter = ConcurrencyLimiter(self.config.max_concurrent_requests)

    async def __aenter__(self) -> "CrawlPipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.fetcher.aclose()

    # ------------------------------------------------------------------
    # Single target
    # ------------------------------------------------------------------
    async def crawl_one(self, url: str) -> CrawlRecord:
        """Crawl *url* unless a record for it already exists.

        Raises:
            NetworkError: The fetch failed after all retries (a ``failed``
                record has been stored).
            ExtractionError: The page was fetched but held no usable state
                (a ``failed`` record has been stored).
        """
        existing = self.store.exists(url)
        if existing is not None:
            logger.info("Already crawled, skipping: %s", url)
            return existing

        try:
            async with self.limiter.slot():
                return await self._crawl_in_slot(url)
        finally:
            await _pause(self.config.request_delay)

    async def _crawl_in_slot(self, url: str) -> CrawlRecord:
        try:
            result = await self.fetcher.fetch(url)
        except NetworkError as exc:
            self._record_failure(url, str(exc))
            raise

        outcome = self.extractor.extract(result.body)
        title = extract_title(result.body)

        if isinstance(outcome, Extracted):
            record = self.store.append(
                CrawlRecord(
                    source_url=url,
                    status=STATUS_SUCCESS,
                    scraped_at=time(),
                    extracted_data=outcome.data,
                    title=title,
                    data_type=(
                        "heuristic" if outcome.strategy == "heuristic"
                        else self.config.global_name
                    ),
                    data_keys=data_keys(outcome.data),
                )
            )
            logger.info("Saved state for %s (%d top-level keys)", url, len(record.data_keys))
            return record

        self._record_failure(url, NO_STATE_MESSAGE, title=title)
        raise ExtractionError(url, outcome.reason)

    def _record_failure(self, url: str, message: str, title: str = "") -> None:
        logger.error("Crawl failed for %s: %s", url, message)
        self.store.append(
            CrawlRecord(
                source_url=url,
                status=STATUS_FAILED,
                scraped_at=time(),
                error_message=message,
                title=title,
            )
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------
    async def crawl_many(self, urls: Iterable[str]) -> AsyncIterator[Optional[CrawlRecord]]:
        """Yield one record (or ``None`` on failure) per URL, in order.

        Each URL is finished, persistence included, before the next starts.
        """
        total = 0
        succeeded = 0
        for url in urls:
            total += 1
            try:
                record: Optional[CrawlRecord] = await self.crawl_one(url)
            except Exception as exc:
                logger.error("Batch entry failed for %s: %s", url, exc)
                record = None
            else:
                succeeded += 1
            yield record
        logger.info("Batch finished: %d/%d succeeded", succeeded, total)

    async def crawl_batch(self, urls: Iterable[str]) -> list[Optional[CrawlRecord]]:
        """Drain :meth:`crawl_many` into a list."""
        return [record async for record in self.crawl_many(urls)]
