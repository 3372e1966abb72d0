"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_PARTIAL = "partial"
VALID_STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_PARTIAL)


@dataclass(frozen=True)
class CrawlRecord:
    """One crawl attempt for ``source_url``.  Never mutated once stored."""

    source_url: str
    status: str
    scraped_at: float
    extracted_data: Any = None
    error_message: Optional[str] = None
    title: str = ""
    data_type: Optional[str] = None
    data_keys: list[str] = field(default_factory=list)
    id: Optional[int] = None

    def __post_init__(self) -> None:
        if self.status not in VALID_STATUSES:
            raise ValueError(f"Invalid record status: {self.status!r}")

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    def extracted_data_json(self) -> Optional[str]:
        """Serialise the extracted state for storage (``None`` stays NULL).

        Output is ASCII-escaped, so unpaired surrogates survive the trip
        through SQLite.
        """
        if self.extracted_data is None:
            return None
        return json.dumps(self.extracted_data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_url": self.source_url,
            "status": self.status,
            "scraped_at": self.scraped_at,
            "extracted_data": self.extracted_data,
            "error_message": self.error_message,
            "title": self.title,
            "data_type": self.data_type,
            "data_keys": list(self.data_keys),
        }


@dataclass
class Standing:
    league: str
    team_id: str
    rank: Optional[int]
    team_name: str
    team_logo: str = ""
    scheme: str = ""
    matches_total: str = ""
    matches_won: str = ""
    matches_draw: str = ""
    matches_lost: str = ""
    goals_pro: str = ""
    goals_against: str = ""
    points: str = ""
    updated_at: int = 0
