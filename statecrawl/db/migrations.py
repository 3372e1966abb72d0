"""Schema bootstrap and versioned migrations.

``schema.sql`` holds the base tables and is replayed on every start (all DDL
is ``IF NOT EXISTS``).  Changes made after the base schema shipped live in
:data:`MIGRATIONS` and are applied once each, tracked in ``schema_version``.
"""

from __future__ import annotations

import logging
import sqlite3

from statecrawl.config import settings

logger = logging.getLogger(__name__)

# (version, sql) pairs, strictly increasing by version.
MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        "CREATE INDEX IF NOT EXISTS idx_standings_league_rank "
        "ON standings (league, rank)",
    ),
]


def init_db(conn: sqlite3.Connection) -> None:
    """Create the base schema, then bring it up to the latest version.

    Safe to call on every start-up.
    """
    # executescript() commits first; the script is DDL only.
    conn.executescript(settings.schema_path.read_text(encoding="utf-8"))
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version     INTEGER PRIMARY KEY,
                applied_at  REAL NOT NULL
            )
            """
        )
    migrate(conn)


def current_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration version, ``0`` for a fresh database."""
    row = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()
    return row[0]


def migrate(conn: sqlite3.Connection) -> list[int]:
    """Apply pending migrations in order and return the versions applied.

    Each migration commits together with its ``schema_version`` row, so a
    failure leaves the database at the last fully applied version.
    """
    applied: list[int] = []
    start = current_version(conn)
    for version, sql in MIGRATIONS:
        if version <= start:
            continue
        with conn:
            conn.execute(sql)
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, strftime('%s', 'now'))",
                (version,),
            )
        logger.info("Applied schema migration %d", version)
        applied.append(version)
    return applied
