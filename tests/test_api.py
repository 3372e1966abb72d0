"""Tests for the FastAPI endpoints.

The lifespan is pointed at an in-memory SQLite connection and a pipeline
whose fetcher is a ``StubFetcher`` (see conftest), so no network calls are
made and nothing touches the on-disk workspace DB.
"""

from __future__ import annotations

import json
import sqlite3
import sys

import pytest
from fastapi.testclient import TestClient

from statecrawl.api.app import create_app
from statecrawl.db.standings import list_standings
from statecrawl.scraper.models import PipelineConfig
from statecrawl.scraper.pipeline import CrawlPipeline


def _nuxt_page(state, title: str = "Page") -> str:
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<script>window.__NUXT__={json.dumps(state, ensure_ascii=False)};</script>"
        "</body></html>"
    )


TABLE_URL = "https://a.test/standings/csl"
ARTICLE_URL = "https://news.test/articles/42"
PLAIN_URL = "https://a.test/about"

PAGES = {
    TABLE_URL: _nuxt_page(
        {
            "data": [
                {},
                {"standingData": {"content": {"rounds": [{"content": {"data": [
                    {"team_id": 51, "rank": "1", "team_name": "Beijing", "points": 61},
                    {"team_id": 50, "rank": "2", "team_name": "Shanghai", "points": 58},
                ]}}]}}},
            ]
        },
        title="CSL Table",
    ),
    ARTICLE_URL: _nuxt_page({"data": [{"newData": {"title": "Derby ends level"}}]}),
    PLAIN_URL: "<html><head><title>About</title></head><body></body></html>",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(conn: sqlite3.Connection, stub_fetcher, monkeypatch):
    """TestClient whose lifespan uses the in-memory DB and a stub fetcher."""
    config = PipelineConfig(request_delay_ms=0)
    # ``statecrawl.api.app`` resolves to the FastAPI instance re-exported by
    # ``statecrawl.api``, so patch the module object directly.
    app_module = sys.modules["statecrawl.api.app"]
    monkeypatch.setattr(app_module, "get_connection", lambda: conn)
    monkeypatch.setattr(
        app_module,
        "CrawlPipeline",
        lambda store: CrawlPipeline(store, config, fetcher=stub_fetcher(PAGES)),
    )
    monkeypatch.setattr(
        "statecrawl.config.settings.article_url_template",
        "https://news.test/articles/{article_id}",
    )
    with TestClient(create_app(), raise_server_exceptions=True) as c:
        yield c


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def test_status(client) -> None:
    resp = client.get("/status")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["service"] == "statecrawl"
    assert "POST /crawl" in body["endpoints"]


# ---------------------------------------------------------------------------
# /crawl
# ---------------------------------------------------------------------------

class TestCrawl:
    def test_crawl_success(self, client) -> None:
        resp = client.post("/crawl", json={"url": TABLE_URL})
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "success"
        assert body["title"] == "CSL Table"
        assert body["data_keys"] == ["data"]
        assert body["data_type"] == "window.__NUXT__"

    def test_repeat_crawl_returns_stored_record(self, client) -> None:
        first = client.post("/crawl", json={"url": TABLE_URL}).json()
        second = client.post("/crawl", json={"url": TABLE_URL}).json()
        assert second["id"] == first["id"]

    def test_fetch_failure_is_502(self, client) -> None:
        resp = client.post("/crawl", json={"url": "https://a.test/missing"})
        assert resp.status_code == 502
        assert "HTTP 404" in resp.json()["detail"]

    def test_missing_state_is_422(self, client) -> None:
        resp = client.post("/crawl", json={"url": PLAIN_URL})
        assert resp.status_code == 422
        assert resp.json()["detail"].startswith("Extraction failed")

    def test_invalid_url_is_rejected(self, client) -> None:
        resp = client.post("/crawl", json={"url": "not a url"})
        assert resp.status_code == 422

    def test_batch(self, client) -> None:
        resp = client.post("/crawl/batch", json={"urls": [PLAIN_URL, TABLE_URL]})
        assert resp.status_code == 200
        body = resp.json()
        assert body[0] is None
        assert body[1]["source_url"] == TABLE_URL

    def test_empty_batch_is_rejected(self, client) -> None:
        resp = client.post("/crawl/batch", json={"urls": []})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# /records
# ---------------------------------------------------------------------------

class TestRecords:
    def test_history_for_url(self, client) -> None:
        client.post("/crawl", json={"url": PLAIN_URL})
        resp = client.get("/records", params={"url": PLAIN_URL})
        assert resp.status_code == 200
        body = resp.json()
        assert len(body) == 1
        assert body[0]["status"] == "failed"
        assert body[0]["error_message"] == "no recoverable state found"

    def test_unknown_url_has_no_history(self, client) -> None:
        resp = client.get("/records", params={"url": "https://a.test/never"})
        assert resp.json() == []

    def test_recent(self, client) -> None:
        client.post("/crawl", json={"url": TABLE_URL})
        client.post("/crawl", json={"url": ARTICLE_URL})
        resp = client.get("/records/recent", params={"limit": 1})
        assert [r["source_url"] for r in resp.json()] == [ARTICLE_URL]

    def test_recent_limit_is_bounded(self, client) -> None:
        assert client.get("/records/recent", params={"limit": 0}).status_code == 422


# ---------------------------------------------------------------------------
# /spider
# ---------------------------------------------------------------------------

class TestSpider:
    def test_article_title(self, client) -> None:
        resp = client.get("/spider/article", params={"article_id": "42"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["url"] == ARTICLE_URL
        assert body["title"] == "Derby ends level"
        assert body["record_id"] is not None

    def test_article_fetch_failure(self, client) -> None:
        resp = client.get("/spider/article", params={"article_id": "7"})
        assert resp.status_code == 502

    def test_standings_are_upserted(self, client, conn) -> None:
        resp = client.post("/spider/standings", json={"url": TABLE_URL, "league": "csl"})
        assert resp.status_code == 200
        assert resp.json() == {"league": "csl", "count": 2, "teams": ["Beijing", "Shanghai"]}
        table = list_standings(conn, "csl")
        assert [(s.team_id, s.rank, s.points) for s in table] == [("51", 1, "61"), ("50", 2, "58")]

    def test_standings_shape_mismatch(self, client) -> None:
        resp = client.post("/spider/standings", json={"url": ARTICLE_URL, "league": "csl"})
        assert resp.status_code == 422
        assert "Unexpected page state" in resp.json()["detail"]

    def test_previously_failed_crawl_is_422(self, client) -> None:
        client.post("/crawl", json={"url": PLAIN_URL})
        resp = client.post("/spider/standings", json={"url": PLAIN_URL, "league": "csl"})
        assert resp.status_code == 422
        assert "Stored crawl" in resp.json()["detail"]
