"""Database layer tests.

All tests use an in-memory SQLite database (see the ``conn`` fixture), so
nothing is written to ``~/.statecrawl_data``.
"""

from __future__ import annotations

import sqlite3

import pytest

from statecrawl.db.connection import open_db
from statecrawl.db.migrations import MIGRATIONS, current_version, init_db, migrate
from statecrawl.db.models import STATUS_FAILED, STATUS_SUCCESS, CrawlRecord, Standing
from statecrawl.db.records import (
    SqliteRecordStore,
    append_record,
    get_record,
    latest_record,
    list_records,
    recent_records,
)
from statecrawl.db.standings import list_standings, upsert_standings


def _record(url: str, scraped_at: float, **kwargs) -> CrawlRecord:
    kwargs.setdefault("status", STATUS_SUCCESS)
    return CrawlRecord(source_url=url, scraped_at=scraped_at, **kwargs)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class TestSchema:
    def test_init_is_idempotent(self, conn: sqlite3.Connection) -> None:
        init_db(conn)
        init_db(conn)
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        assert {"crawl_records", "standings", "schema_version"} <= tables
        assert current_version(conn) == MIGRATIONS[-1][0]
        assert migrate(conn) == []
        indexes = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")
        }
        assert "idx_standings_league_rank" in indexes

    def test_open_db_initialises_and_closes(self, tmp_path) -> None:
        with open_db(tmp_path / "crawl.db") as conn:
            conn.execute("SELECT COUNT(*) FROM crawl_records").fetchone()
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")

    def test_status_check_constraint(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO crawl_records (source_url, status, scraped_at) VALUES (?, ?, ?)",
                ("https://a.test", "pending", 1.0),
            )


# ---------------------------------------------------------------------------
# Crawl records
# ---------------------------------------------------------------------------

class TestCrawlRecord:
    def test_rejects_unknown_status(self) -> None:
        with pytest.raises(ValueError):
            CrawlRecord(source_url="https://a.test", status="pending", scraped_at=1.0)

    def test_none_data_serialises_to_null(self) -> None:
        record = _record("https://a.test", 1.0, status=STATUS_FAILED, error_message="x")
        assert record.extracted_data_json() is None
        assert record.to_dict()["extracted_data"] is None


class TestRecords:
    def test_append_assigns_id_and_round_trips(self, conn: sqlite3.Connection) -> None:
        data = {"data": [{"名称": "北京国安", "points": 61}], "flag": False}
        stored = append_record(
            conn,
            _record(
                "https://a.test/t",
                1700000000.5,
                extracted_data=data,
                title="Table",
                data_type="window.__NUXT__",
                data_keys=["data", "flag"],
            ),
        )
        assert stored.id is not None
        fetched = get_record(conn, stored.id)
        assert fetched == stored
        assert fetched.extracted_data == data
        assert fetched.data_keys == ["data", "flag"]

    def test_unpaired_surrogate_is_stored(self, conn: sqlite3.Connection) -> None:
        stored = append_record(
            conn, _record("https://a.test/s", 1.0, extracted_data={"t": "\ud83d"})
        )
        assert get_record(conn, stored.id).extracted_data == {"t": "\ud83d"}

    def test_get_missing_record(self, conn: sqlite3.Connection) -> None:
        assert get_record(conn, 999) is None

    def test_history_is_append_only_and_newest_first(self, conn: sqlite3.Connection) -> None:
        url = "https://a.test/t"
        first = append_record(conn, _record(url, 100.0, status=STATUS_FAILED, error_message="boom"))
        second = append_record(conn, _record(url, 200.0, extracted_data={"a": 1}))

        history = list_records(conn, url)
        assert [r.id for r in history] == [second.id, first.id]
        assert latest_record(conn, url) == second
        assert get_record(conn, first.id).error_message == "boom"

    def test_equal_timestamps_order_by_id(self, conn: sqlite3.Connection) -> None:
        url = "https://a.test/t"
        a = append_record(conn, _record(url, 100.0))
        b = append_record(conn, _record(url, 100.0))
        assert latest_record(conn, url).id == max(a.id, b.id)

    def test_latest_for_unknown_url(self, conn: sqlite3.Connection) -> None:
        assert latest_record(conn, "https://a.test/none") is None
        assert list_records(conn, "https://a.test/none") == []

    def test_recent_records_across_urls(self, conn: sqlite3.Connection) -> None:
        for i in range(5):
            append_record(conn, _record(f"https://a.test/{i}", float(i)))
        recent = recent_records(conn, limit=3)
        assert [r.source_url for r in recent] == [
            "https://a.test/4",
            "https://a.test/3",
            "https://a.test/2",
        ]


class TestSqliteRecordStore:
    def test_exists_and_append(self, conn: sqlite3.Connection) -> None:
        store = SqliteRecordStore(conn)
        assert store.exists("https://a.test") is None
        stored = store.append(_record("https://a.test", 1.0, extracted_data=[1]))
        assert store.exists("https://a.test") == stored


# ---------------------------------------------------------------------------
# Standings
# ---------------------------------------------------------------------------

class TestStandings:
    def test_upsert_replaces_by_team(self, conn: sqlite3.Connection) -> None:
        rows = [
            Standing(league="csl", team_id="50", rank=2, team_name="Shanghai", points="58"),
            Standing(league="csl", team_id="51", rank=1, team_name="Beijing", points="61"),
        ]
        assert upsert_standings(conn, rows) == 2

        updated = Standing(league="csl", team_id="50", rank=1, team_name="Shanghai", points="64")
        assert upsert_standings(conn, [updated]) == 1

        table = list_standings(conn, "csl")
        assert [(s.team_id, s.rank, s.points) for s in table] == [
            ("51", 1, "61"),
            ("50", 1, "64"),
        ]
        assert all(s.updated_at > 0 for s in table)

    def test_leagues_are_separate(self, conn: sqlite3.Connection) -> None:
        upsert_standings(conn, [Standing(league="csl", team_id="1", rank=1, team_name="A")])
        upsert_standings(conn, [Standing(league="epl", team_id="1", rank=None, team_name="B")])
        assert [s.team_name for s in list_standings(conn, "csl")] == ["A"]
        assert list_standings(conn, "epl")[0].rank is None
