"""Read-only access to stored crawl records.

Routes
------
GET /records?url=<url>        History for one URL, newest first
GET /records/recent?limit=10  Most recent records across all URLs
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request

from statecrawl.api.routers.crawl import RecordResponse, record_response
from statecrawl.db.records import list_records, recent_records

router = APIRouter()


@router.get("", response_model=list[RecordResponse])
def records_for_url(request: Request, url: str = Query(..., min_length=1)) -> list[dict[str, Any]]:
    """Return every stored record for *url*."""
    conn = request.app.state.db
    return [record_response(r) for r in list_records(conn, url)]


@router.get("/recent", response_model=list[RecordResponse])
def recent(request: Request, limit: int = Query(10, ge=1, le=100)) -> list[dict[str, Any]]:
    """Return the most recently scraped records."""
    conn = request.app.state.db
    return [record_response(r) for r in recent_records(conn, limit=limit)]
