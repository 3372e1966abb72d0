"""SQLite connection helpers for the crawl record store.

Two entry points:

* :func:`get_connection` opens a configured connection and leaves its
  lifetime to the caller (the API keeps one for the whole process).
* :func:`open_db` is a context manager for short-lived callers such as CLI
  commands: it initialises the schema on entry and closes on exit.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from statecrawl.config import settings
from statecrawl.db.migrations import init_db

# Milliseconds a writer waits on a locked database before raising.
_BUSY_TIMEOUT_MS = 5000


def get_connection(db_path: Union[Path, str, None] = None) -> sqlite3.Connection:
    """Open a SQLite connection for crawl records.

    The connection uses :class:`sqlite3.Row` rows, enforces foreign keys,
    runs in WAL mode (file databases only) and waits on locks for up to
    ``_BUSY_TIMEOUT_MS``.  It may be shared across threads; callers
    serialise writes.

    Args:
        db_path: Override the DB path (``":memory:"`` for tests).  Defaults
            to ``settings.db_path``.
    """
    path = str(db_path or settings.db_path)
    in_memory = path == ":memory:"
    if not in_memory:
        settings.ensure_workspace()

    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
    if not in_memory:
        conn.execute("PRAGMA journal_mode = WAL")
    return conn


@contextmanager
def open_db(db_path: Union[Path, str, None] = None) -> Iterator[sqlite3.Connection]:
    """Yield an initialised connection and close it afterwards."""
    conn = get_connection(db_path)
    try:
        init_db(conn)
        yield conn
    finally:
        conn.close()
