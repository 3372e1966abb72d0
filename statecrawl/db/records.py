"""Append-only storage for :class:`~statecrawl.db.models.CrawlRecord` rows."""

from __future__ import annotations

import json
import sqlite3
from typing import Optional

from statecrawl.db.models import CrawlRecord


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_record(row: sqlite3.Row) -> CrawlRecord:
    raw = row["extracted_data"]
    return CrawlRecord(
        id=row["id"],
        source_url=row["source_url"],
        status=row["status"],
        scraped_at=row["scraped_at"],
        extracted_data=json.loads(raw) if raw is not None else None,
        error_message=row["error_message"],
        title=row["title"],
        data_type=row["data_type"],
        data_keys=json.loads(row["data_keys"] or "[]"),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def append_record(conn: sqlite3.Connection, record: CrawlRecord) -> CrawlRecord:
    """Insert *record* and return it with its assigned ``id``.

    Existing rows for the same URL are left untouched; history accumulates.
    """
    with conn:
        cur = conn.execute(
            """
            INSERT INTO crawl_records
                (source_url, title, data_type, data_keys, extracted_data,
                 status, error_message, scraped_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.source_url,
                record.title,
                record.data_type,
                json.dumps(record.data_keys),
                record.extracted_data_json(),
                record.status,
                record.error_message,
                record.scraped_at,
            ),
        )
    return get_record(conn, cur.lastrowid)  # type: ignore[return-value]


def get_record(conn: sqlite3.Connection, record_id: int) -> Optional[CrawlRecord]:
    """Fetch a single record by id.  Returns ``None`` if not found."""
    row = conn.execute(
        "SELECT * FROM crawl_records WHERE id = ?", (record_id,)
    ).fetchone()
    return _row_to_record(row) if row else None


def latest_record(conn: sqlite3.Connection, source_url: str) -> Optional[CrawlRecord]:
    """Return the most recent record for *source_url*, or ``None``."""
    row = conn.execute(
        """
        SELECT * FROM crawl_records
        WHERE source_url = ?
        ORDER BY scraped_at DESC, id DESC
        LIMIT 1
        """,
        (source_url,),
    ).fetchone()
    return _row_to_record(row) if row else None


def list_records(conn: sqlite3.Connection, source_url: str) -> list[CrawlRecord]:
    """Return every record for *source_url*, newest first."""
    rows = conn.execute(
        """
        SELECT * FROM crawl_records
        WHERE source_url = ?
        ORDER BY scraped_at DESC, id DESC
        """,
        (source_url,),
    ).fetchall()
    return [_row_to_record(r) for r in rows]


def recent_records(conn: sqlite3.Connection, limit: int = 10) -> list[CrawlRecord]:
    """Return the *limit* most recently scraped records across all URLs."""
    rows = conn.execute(
        "SELECT * FROM crawl_records ORDER BY scraped_at DESC, id DESC LIMIT ?",
        (limit,),
    ).fetchall()
    return [_row_to_record(r) for r in rows]


class SqliteRecordStore:
    """Record Store backed by one SQLite connection.

    Implements the two calls the crawl pipeline needs: :meth:`exists` and
    :meth:`append`.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def exists(self, source_url: str) -> Optional[CrawlRecord]:
        return latest_record(self.conn, source_url)

    def append(self, record: CrawlRecord) -> CrawlRecord:
        return append_record(self.conn, record)
