"""Exception taxonomy for the crawl pipeline."""

from __future__ import annotations

from typing import Optional, Sequence, Union


class CrawlError(Exception):
    """Base class for every failure surfaced by the crawler."""


class NetworkError(CrawlError):
    """Transport, timeout, redirect-limit or non-2xx failure.

    Raised by the fetcher only after its retry budget is spent.
    """

    def __init__(self, url: str, message: str, attempts: int = 1,
                 status_code: Optional[int] = None):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.attempts = attempts
        self.status_code = status_code


class ExtractionError(CrawlError):
    """No recoverable embedded state in an otherwise fetched page."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class EvaluationError(CrawlError):
    """The restricted evaluator could not reduce a function-wrapped payload."""


class SchemaMismatch(CrawlError):
    """Extracted state does not have the shape a caller expected."""

    def __init__(self, path: Sequence[Union[str, int]], reason: str):
        rendered = "".join(
            f"[{seg}]" if isinstance(seg, int) else f".{seg}" for seg in path
        ) or "<root>"
        super().__init__(f"{rendered}: {reason}")
        self.path = list(path)
        self.reason = reason
