"""Data models for the crawl pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from statecrawl.config import Settings, settings as _default_settings


@dataclass
class FetchResult:
    """The raw HTTP response for a single URL fetch."""

    url: str
    body: str
    status_code: int


# ---------------------------------------------------------------------------
# Extraction outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Extracted:
    """Structured state recovered from a page.

    ``strategy`` names the cascade step that produced it: ``primary``,
    ``relaxed`` or ``heuristic``.
    """

    data: Any
    strategy: str = "primary"


@dataclass(frozen=True)
class NotFound:
    reason: str = "no embedded state found"


@dataclass(frozen=True)
class Malformed:
    reason: str


ExtractionOutcome = Union[Extracted, NotFound, Malformed]


# ---------------------------------------------------------------------------
# Pipeline configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineConfig:
    """Immutable knobs for one :class:`~statecrawl.scraper.pipeline.CrawlPipeline`."""

    request_delay_ms: int = 1000
    max_retries: int = 3
    timeout_ms: int = 10000
    max_concurrent_requests: int = 5
    max_redirects: int = 5
    global_name: str = "window.__NUXT__"
    enable_evaluation: bool = True
    user_agent: Optional[str] = None
    use_random_user_agent: bool = False

    def __post_init__(self) -> None:
        if self.request_delay_ms < 0:
            raise ValueError("request_delay_ms must be >= 0")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be >= 1")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be >= 0")
        if not self.global_name.strip():
            raise ValueError("global_name must not be empty")

    @property
    def request_delay(self) -> float:
        """Inter-request delay in seconds."""
        return self.request_delay_ms / 1000

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None) -> "PipelineConfig":
        s = s or _default_settings
        return cls(
            request_delay_ms=s.request_delay_ms,
            max_retries=s.max_retries,
            timeout_ms=s.timeout_ms,
            max_concurrent_requests=s.max_concurrent_requests,
            max_redirects=s.max_redirects,
            global_name=s.state_global_name,
            enable_evaluation=s.enable_function_eval,
            user_agent=s.user_agent,
            use_random_user_agent=s.use_random_user_agent,
        )
