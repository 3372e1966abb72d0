"""Database layer package.

Public re-exports so callers can write::

    from statecrawl.db import open_db, records

    with open_db() as conn:
        records.recent_records(conn)
"""

from statecrawl.db.connection import get_connection, open_db
from statecrawl.db.migrations import init_db
from statecrawl.db import records, standings

__all__ = ["get_connection", "init_db", "open_db", "records", "standings"]
