"""Schema-checked access into extracted page state.

Callers name the path they expect instead of chaining raw subscripts, so a
producer-side shape change surfaces as a :class:`SchemaMismatch` pointing at
the first segment that no longer fits.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from statecrawl.db.models import Standing
from statecrawl.scraper.errors import SchemaMismatch

PathSegment = Union[str, int]

STANDINGS_PATH: tuple[PathSegment, ...] = (
    "data", 1, "standingData", "content", "rounds", 0, "content", "data",
)
ARTICLE_TITLE_PATH: tuple[PathSegment, ...] = ("data", 0, "newData", "title")


def resolve(data: Any, path: Sequence[PathSegment]) -> Any:
    """Walk *path* through nested mappings/sequences and return the value.

    String segments index mappings, integer segments index lists.

    Raises:
        SchemaMismatch: On the first segment whose container has the wrong
            type or lacks the key/index.
    """
    current = data
    for i, segment in enumerate(path):
        where = list(path[: i + 1])
        if isinstance(segment, int):
            if not isinstance(current, list):
                raise SchemaMismatch(where, f"expected array, found {type(current).__name__}")
            if not -len(current) <= segment < len(current):
                raise SchemaMismatch(where, f"index out of range (length {len(current)})")
            current = current[segment]
        else:
            if not isinstance(current, dict):
                raise SchemaMismatch(where, f"expected object, found {type(current).__name__}")
            if segment not in current:
                raise SchemaMismatch(where, "missing key")
            current = current[segment]
    return current


class StandingRow(BaseModel):
    """One team row of a league table as served in page state."""

    model_config = ConfigDict(extra="ignore")

    team_id: str
    team_name: str = ""
    team_logo: str = ""
    rank: Optional[int] = None
    scheme: str = ""
    matches_total: str = ""
    matches_won: str = ""
    matches_draw: str = ""
    matches_lost: str = ""
    goals_pro: str = ""
    goals_against: str = ""
    points: str = ""

    @field_validator("rank", mode="before")
    @classmethod
    def _rank(cls, value: Any) -> Optional[int]:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @field_validator("team_id", mode="before")
    @classmethod
    def _team_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator(
        "team_name", "team_logo", "scheme", "matches_total",
        "matches_won", "matches_draw", "matches_lost", "goals_pro",
        "goals_against", "points",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def to_standing(self, league: str) -> Standing:
        return Standing(league=league, **self.model_dump())


def extract_standings(data: Any) -> list[StandingRow]:
    """Return the validated league table rows embedded in a standings page."""
    rows = resolve(data, STANDINGS_PATH)
    if not isinstance(rows, list):
        raise SchemaMismatch(list(STANDINGS_PATH), "expected array of rows")
    parsed: list[StandingRow] = []
    for i, row in enumerate(rows):
        try:
            parsed.append(StandingRow.model_validate(row))
        except ValidationError as exc:
            raise SchemaMismatch(
                [*STANDINGS_PATH, i], f"invalid standing row: {exc.errors()[0]['msg']}"
            ) from exc
    return parsed


def extract_article_title(data: Any) -> str:
    """Return the headline embedded in an article page."""
    title = resolve(data, ARTICLE_TITLE_PATH)
    if not isinstance(title, str):
        raise SchemaMismatch(list(ARTICLE_TITLE_PATH), "expected string")
    return title
