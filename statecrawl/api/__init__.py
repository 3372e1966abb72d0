"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from statecrawl.api import app

    uvicorn statecrawl.api:app --reload
"""

from statecrawl.api.app import app

__all__ = ["app"]
