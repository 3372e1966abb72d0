"""Upsert-by-team storage for league standings."""

from __future__ import annotations

import sqlite3
from time import time
from typing import Iterable

from statecrawl.db.models import Standing

_COLUMNS = (
    "league", "team_id", "rank", "team_name", "team_logo", "scheme",
    "matches_total", "matches_won", "matches_draw", "matches_lost",
    "goals_pro", "goals_against", "points", "updated_at",
)


def _row_to_standing(row: sqlite3.Row) -> Standing:
    return Standing(**{col: row[col] for col in _COLUMNS})


def upsert_standings(conn: sqlite3.Connection, rows: Iterable[Standing]) -> int:
    """Insert or replace each row keyed by ``(league, team_id)``.

    Returns the number of rows written.
    """
    now = int(time())
    placeholders = ", ".join("?" for _ in _COLUMNS)
    updates = ", ".join(
        f"{col} = excluded.{col}" for col in _COLUMNS if col not in ("league", "team_id")
    )
    count = 0
    with conn:
        for row in rows:
            row.updated_at = now
            conn.execute(
                f"""
                INSERT INTO standings ({", ".join(_COLUMNS)})
                VALUES ({placeholders})
                ON CONFLICT(league, team_id) DO UPDATE SET {updates}
                """,  # noqa: S608
                tuple(getattr(row, col) for col in _COLUMNS),
            )
            count += 1
    return count


def list_standings(conn: sqlite3.Connection, league: str) -> list[Standing]:
    """Return a league table ordered by rank (unranked rows last)."""
    rows = conn.execute(
        """
        SELECT * FROM standings WHERE league = ?
        ORDER BY rank IS NULL, rank, team_name
        """,
        (league,),
    ).fetchall()
    return [_row_to_standing(r) for r in rows]
