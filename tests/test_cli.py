"""Tests for the statecrawl CLI.

The workspace is redirected to ``tmp_path`` (see conftest), so each test
gets a fresh on-disk DB.  Network access is replaced by patching the
pipeline/fetcher constructors that ``cli.main`` uses.
"""

from __future__ import annotations

from typer.testing import CliRunner

from cli.main import app
from statecrawl.config import settings
from statecrawl.db import open_db
from statecrawl.db.records import list_records
from statecrawl.scraper.models import PipelineConfig
from statecrawl.scraper.pipeline import CrawlPipeline

runner = CliRunner()

STATE_PAGE = (
    "<html><head><title>Table</title></head><body>"
    '<script>window.__NUXT__={"data":[1,2],"layout":"x"}</script>'
    "</body></html>"
)
PAGES = {
    "https://a.test/ok": STATE_PAGE,
    "https://a.test/plain": "<html><body>nothing here</body></html>",
}


def _patch_pipeline(monkeypatch, stub_fetcher) -> None:
    config = PipelineConfig(request_delay_ms=0)
    monkeypatch.setattr(
        "cli.main.CrawlPipeline",
        lambda store: CrawlPipeline(store, config, fetcher=stub_fetcher(PAGES)),
    )


def test_db_init_creates_database() -> None:
    result = runner.invoke(app, ["db", "init"])
    assert result.exit_code == 0
    assert "Database ready" in result.stdout
    assert settings.db_path.exists()


class TestCrawlCommand:
    def test_all_succeed(self, monkeypatch, stub_fetcher) -> None:
        _patch_pipeline(monkeypatch, stub_fetcher)
        result = runner.invoke(app, ["crawl", "https://a.test/ok"])
        assert result.exit_code == 0
        assert "✓ https://a.test/ok" in result.stdout
        assert "Done: 1/1 succeeded." in result.stdout

        with open_db() as conn:
            records = list_records(conn, "https://a.test/ok")
        assert records[0].extracted_data == {"data": [1, 2], "layout": "x"}

    def test_failures_exit_non_zero(self, monkeypatch, stub_fetcher) -> None:
        _patch_pipeline(monkeypatch, stub_fetcher)
        result = runner.invoke(app, ["crawl", "https://a.test/plain", "https://a.test/ok"])
        assert result.exit_code == 1
        assert "✗ https://a.test/plain" in result.stdout
        assert "✓ https://a.test/ok" in result.stdout
        assert "Done: 1/2 succeeded." in result.stdout


class TestInspectCommand:
    def _patch_fetcher(self, monkeypatch, stub_fetcher) -> None:
        monkeypatch.setattr("cli.main.RetryingFetcher", lambda config: stub_fetcher(PAGES))

    def test_reports_state_shape(self, monkeypatch, stub_fetcher) -> None:
        self._patch_fetcher(monkeypatch, stub_fetcher)
        result = runner.invoke(app, ["inspect", "https://a.test/ok", "--data"])
        assert result.exit_code == 0
        assert "Strategy : primary" in result.stdout
        assert '"key_count": 2' in result.stdout
        assert '"layout": "x"' in result.stdout

    def test_does_not_store_anything(self, monkeypatch, stub_fetcher) -> None:
        self._patch_fetcher(monkeypatch, stub_fetcher)
        runner.invoke(app, ["inspect", "https://a.test/ok"])
        with open_db() as conn:
            assert list_records(conn, "https://a.test/ok") == []

    def test_no_state(self, monkeypatch, stub_fetcher) -> None:
        self._patch_fetcher(monkeypatch, stub_fetcher)
        result = runner.invoke(app, ["inspect", "https://a.test/plain"])
        assert result.exit_code == 1
        assert "No state" in result.stdout

    def test_fetch_failure(self, monkeypatch, stub_fetcher) -> None:
        self._patch_fetcher(monkeypatch, stub_fetcher)
        result = runner.invoke(app, ["inspect", "https://a.test/missing"])
        assert result.exit_code == 1
        assert "Fetch failed" in result.stdout


class TestRecordsCommands:
    def test_recent_when_empty(self) -> None:
        result = runner.invoke(app, ["records", "recent"])
        assert result.exit_code == 0
        assert "No records found" in result.stdout

    def test_show_history(self, monkeypatch, stub_fetcher) -> None:
        _patch_pipeline(monkeypatch, stub_fetcher)
        runner.invoke(app, ["crawl", "https://a.test/plain"])

        result = runner.invoke(app, ["records", "show", "https://a.test/plain"])
        assert result.exit_code == 0
        assert "[failed] https://a.test/plain" in result.stdout
        assert "no recoverable state found" in result.stdout

    def test_show_with_data(self, monkeypatch, stub_fetcher) -> None:
        _patch_pipeline(monkeypatch, stub_fetcher)
        runner.invoke(app, ["crawl", "https://a.test/ok"])

        result = runner.invoke(app, ["records", "show", "https://a.test/ok", "--data"])
        assert result.exit_code == 0
        assert "keys=data, layout" in result.stdout
        assert '"layout": "x"' in result.stdout

    def test_show_unknown_url(self) -> None:
        result = runner.invoke(app, ["records", "show", "https://a.test/none"])
        assert result.exit_code == 1
        assert "No records" in result.stdout
