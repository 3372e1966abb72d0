"""statecrawl CLI: entry-point for crawl and record operations.

Usage:
    python cli/main.py --help

Command groups:
    db        → database setup
    crawl     → crawl one or more URLs and store their embedded state
    inspect   → fetch + extract without storing anything
    records   → browse stored crawl history
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from statecrawl.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
from datetime import datetime
from typing import List

import typer

from statecrawl.config import settings
from statecrawl.db import open_db
from statecrawl.db.models import CrawlRecord
from statecrawl.db.records import SqliteRecordStore, list_records, recent_records
from statecrawl.logger import setup_logger
from statecrawl.scraper.errors import NetworkError
from statecrawl.scraper.extractor import StateExtractor, describe_state
from statecrawl.scraper.fetcher import RetryingFetcher
from statecrawl.scraper.models import Extracted, PipelineConfig
from statecrawl.scraper.pipeline import CrawlPipeline

app = typer.Typer(
    name="statecrawl",
    help="Crawl pages and recover their embedded client state.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output."),
) -> None:
    setup_logger(settings.log_dir, "DEBUG" if verbose else settings.log_level)


def _format_record(record: CrawlRecord) -> str:
    when = datetime.fromtimestamp(record.scraped_at).strftime("%Y-%m-%d %H:%M:%S")
    line = f"  [{record.status}] {record.source_url}  ({when})"
    if record.error_message:
        line += f"  error={record.error_message!r}"
    elif record.data_keys:
        line += f"  keys={', '.join(record.data_keys[:5])}"
    return line


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    with open_db():
        pass
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# Crawl commands
# ---------------------------------------------------------------------------
@app.command("crawl")
def crawl(
    urls: List[str] = typer.Argument(..., help="One or more URLs to crawl, in order."),
) -> None:
    """Crawl URLs one after another and store each outcome."""
    async def _run(conn) -> list:
        async with CrawlPipeline(SqliteRecordStore(conn)) as pipeline:
            results = []
            async for record in pipeline.crawl_many(urls):
                url = urls[len(results)]
                if record is None:
                    typer.echo(f"[crawl] ✗ {url}")
                else:
                    typer.echo(f"[crawl] ✓ {url}  status={record.status}")
                results.append(record)
            return results

    with open_db() as conn:
        results = asyncio.run(_run(conn))

    ok = sum(1 for r in results if r is not None)
    typer.echo(f"[crawl] Done: {ok}/{len(urls)} succeeded.")
    if ok < len(urls):
        raise typer.Exit(1)


@app.command("inspect")
def inspect(
    url: str = typer.Argument(..., help="URL to fetch and extract."),
    show_data: bool = typer.Option(False, "--data", help="Print the full extracted state."),
) -> None:
    """Fetch a page and report what state extraction finds, without storing it."""

    async def _run():
        config = PipelineConfig.from_settings()
        async with RetryingFetcher(config) as fetcher:
            result = await fetcher.fetch(url)
        extractor = StateExtractor(config.global_name, config.enable_evaluation)
        return result, extractor.extract(result.body)

    typer.echo(f"[inspect] Fetching {url!r} …")
    try:
        result, outcome = asyncio.run(_run())
    except NetworkError as exc:
        typer.echo(f"[inspect] Fetch failed: {exc}")
        raise typer.Exit(1)

    typer.echo(f"[inspect] HTTP {result.status_code}, {len(result.body)} chars")
    if not isinstance(outcome, Extracted):
        typer.echo(f"[inspect] No state: {outcome.reason}")
        raise typer.Exit(1)

    typer.echo(f"[inspect] Strategy : {outcome.strategy}")
    typer.echo(json.dumps(describe_state(outcome.data), indent=2, ensure_ascii=False))
    if show_data:
        typer.echo(json.dumps(outcome.data, indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Record commands
# ---------------------------------------------------------------------------
records_app = typer.Typer(help="Browse stored crawl records.", no_args_is_help=True)
app.add_typer(records_app, name="records")


@records_app.command("recent")
def records_recent(
    limit: int = typer.Option(10, help="Number of records to show."),
) -> None:
    """List the most recently crawled records."""
    with open_db() as conn:
        rows = recent_records(conn, limit=limit)
    if not rows:
        typer.echo("[records recent] No records found.")
        return
    for record in rows:
        typer.echo(_format_record(record))


@records_app.command("show")
def records_show(
    url: str = typer.Argument(..., help="Source URL."),
    show_data: bool = typer.Option(False, "--data", help="Print the latest extracted state."),
) -> None:
    """Show the crawl history for one URL, newest first."""
    with open_db() as conn:
        rows = list_records(conn, url)
    if not rows:
        typer.echo(f"[records show] No records for {url!r}.")
        raise typer.Exit(1)
    for record in rows:
        typer.echo(_format_record(record))
    if show_data and rows[0].extracted_data is not None:
        typer.echo(json.dumps(rows[0].extracted_data, indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
