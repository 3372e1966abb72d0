"""Scraper package: fetch pages and recover embedded state."""

from statecrawl.scraper.errors import (
    CrawlError,
    EvaluationError,
    ExtractionError,
    NetworkError,
    SchemaMismatch,
)
from statecrawl.scraper.extractor import StateExtractor, extract_state
from statecrawl.scraper.fetcher import RetryingFetcher
from statecrawl.scraper.limiter import ConcurrencyLimiter
from statecrawl.scraper.models import (
    Extracted,
    ExtractionOutcome,
    FetchResult,
    Malformed,
    NotFound,
    PipelineConfig,
)
from statecrawl.scraper.pipeline import CrawlPipeline

__all__ = [
    "ConcurrencyLimiter",
    "CrawlError",
    "CrawlPipeline",
    "EvaluationError",
    "Extracted",
    "ExtractionError",
    "ExtractionOutcome",
    "FetchResult",
    "Malformed",
    "NetworkError",
    "NotFound",
    "PipelineConfig",
    "RetryingFetcher",
    "SchemaMismatch",
    "StateExtractor",
    "extract_state",
]
