"""Site-specific crawlers built on the generic pipeline.

Routes
------
GET  /spider/article?article_id=<id>   Crawl an article page, return its headline
POST /spider/standings                  Body: {"url": "...", "league": "..."}
                                        Crawl a league table and upsert its rows
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, HttpUrl

from statecrawl.config import settings
from statecrawl.db.models import STATUS_SUCCESS, CrawlRecord
from statecrawl.db.standings import upsert_standings
from statecrawl.scraper.accessor import extract_article_title, extract_standings
from statecrawl.scraper.errors import ExtractionError, NetworkError, SchemaMismatch

router = APIRouter()


class StandingsRequest(BaseModel):
    url: HttpUrl
    league: str


async def _crawl(request: Request, url: str) -> CrawlRecord:
    pipeline = request.app.state.pipeline
    try:
        record = await pipeline.crawl_one(url)
    except NetworkError as exc:
        raise HTTPException(status_code=502, detail=f"Fetch failed: {exc}") from exc
    except ExtractionError as exc:
        raise HTTPException(status_code=422, detail=f"Extraction failed: {exc.reason}") from exc
    if record.status != STATUS_SUCCESS:
        raise HTTPException(
            status_code=422,
            detail=f"Stored crawl for {url} failed: {record.error_message}",
        )
    return record


@router.get("/article")
async def article(request: Request, article_id: str = Query(..., min_length=1)) -> dict[str, Any]:
    """Crawl the article page for *article_id* and return its headline."""
    url = settings.article_url_template.format(article_id=article_id)
    record = await _crawl(request, url)
    try:
        title = extract_article_title(record.extracted_data)
    except SchemaMismatch as exc:
        raise HTTPException(status_code=422, detail=f"Unexpected page state: {exc}") from exc
    return {"url": url, "title": title, "record_id": record.id}


@router.post("/standings")
async def standings(body: StandingsRequest, request: Request) -> dict[str, Any]:
    """Crawl a league table page and store its rows keyed by team."""
    record = await _crawl(request, str(body.url))
    try:
        rows = extract_standings(record.extracted_data)
    except SchemaMismatch as exc:
        raise HTTPException(status_code=422, detail=f"Unexpected page state: {exc}") from exc
    conn = request.app.state.db
    count = upsert_standings(conn, (row.to_standing(body.league) for row in rows))
    return {
        "league": body.league,
        "count": count,
        "teams": [row.team_name for row in rows],
    }
