"""Crawl endpoints.

Routes
------
POST /crawl         Body: {"url": "https://..."}       → crawl_one
POST /crawl/batch   Body: {"urls": ["https://...", …]} → crawl_many
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field, HttpUrl

from statecrawl.db.models import CrawlRecord
from statecrawl.scraper.errors import ExtractionError, NetworkError

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class CrawlRequest(BaseModel):
    url: HttpUrl


class BatchCrawlRequest(BaseModel):
    urls: list[HttpUrl] = Field(..., min_length=1, max_length=100)


class RecordResponse(BaseModel):
    id: Optional[int]
    source_url: str
    status: str
    scraped_at: float
    extracted_data: Any = None
    error_message: Optional[str] = None
    title: str = ""
    data_type: Optional[str] = None
    data_keys: list[str] = []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def record_response(record: CrawlRecord) -> dict[str, Any]:
    return record.to_dict()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", response_model=RecordResponse, status_code=201)
async def crawl_endpoint(body: CrawlRequest, request: Request) -> dict[str, Any]:
    """Crawl one URL (or return its stored record) and persist the result."""
    pipeline = request.app.state.pipeline
    try:
        record = await pipeline.crawl_one(str(body.url))
    except NetworkError as exc:
        raise HTTPException(status_code=502, detail=f"Fetch failed: {exc}") from exc
    except ExtractionError as exc:
        raise HTTPException(status_code=422, detail=f"Extraction failed: {exc.reason}") from exc
    return record_response(record)


@router.post("/batch", response_model=list[Optional[RecordResponse]])
async def crawl_batch_endpoint(body: BatchCrawlRequest, request: Request) -> list[Any]:
    """Crawl URLs in order; failed entries come back as ``null``."""
    pipeline = request.app.state.pipeline
    records = await pipeline.crawl_batch(str(u) for u in body.urls)
    return [record_response(r) if r is not None else None for r in records]
