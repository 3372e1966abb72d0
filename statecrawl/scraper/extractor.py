"""Embedded-state extraction: turns raw page text into an :data:`ExtractionOutcome`.

Strategies are tried from most to least specific and the first success wins:

1. ``primary``: ``<global> = <payload>`` closed by ``</script>``.
2. ``relaxed``: ``<bare name> = <payload>;`` anywhere in the page.
3. ``heuristic``: the first few outermost JSON-object-shaped regions; one
   whose top-level keys mention ``data`` or ``state`` is accepted.

Payloads found by (1) and (2) may be invoked-function expressions rather than
literals.  Those are reduced with the restricted evaluator, then by reading
the ``return {...}`` clause as JSON, before plain JSON parsing is attempted.
When an assignment is found but nothing parses, the outcome is still
:class:`NotFound`, with the parse error in its reason.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator, Optional

from bs4 import BeautifulSoup

from statecrawl.scraper.errors import EvaluationError
from statecrawl.scraper.evaluator import (
    evaluate_function_payload,
    fix_surrogates,
    is_function_payload,
)
from statecrawl.scraper.models import Extracted, ExtractionOutcome, Malformed, NotFound

logger = logging.getLogger(__name__)

DEFAULT_GLOBAL_NAME = "window.__NUXT__"

_HEURISTIC_CANDIDATES = 3
_HEURISTIC_KEY_HINTS = ("data", "state")
_QUOTED_KEY = re.compile(r'"(?:[^"\\]|\\.)*"\s*:')
_RETURN_CLAUSE = re.compile(r"\breturn\s*(?=\{)")
_MAX_DATA_KEYS = 50


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def find_balanced_end(text: str, start: int, quotes: str = "\"'") -> int:
    """Return the index just past the bracket that closes ``text[start]``.

    ``text[start]`` must be ``{`` or ``[``.  Brackets inside string literals
    delimited by any character in *quotes* are ignored.  Returns ``-1`` when
    the region never closes.
    """
    depth = 0
    in_string: Optional[str] = None
    i = start
    length = len(text)
    while i < length:
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == in_string:
                in_string = None
        elif ch in quotes:
            in_string = ch
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return -1


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-JSON constant {name}")


def _loads(text: str) -> Any:
    """Strict JSON parse (``NaN``/``Infinity`` rejected, surrogates repaired)."""
    return _scrub(json.loads(text, parse_constant=_reject_constant))


def _scrub(data: Any) -> Any:
    """Apply :func:`fix_surrogates` to every string in a freshly parsed tree.

    Iterative, so it works at any depth ``json.loads`` accepted.  Mutates
    containers in place.
    """
    if isinstance(data, str):
        return fix_surrogates(data)
    stack = [data] if isinstance(data, (dict, list)) else []
    while stack:
        node = stack.pop()
        if isinstance(node, list):
            for i, item in enumerate(node):
                if isinstance(item, str):
                    node[i] = fix_surrogates(item)
                elif isinstance(item, (dict, list)):
                    stack.append(item)
            continue
        for key in list(node):
            value = node[key]
            if isinstance(value, str):
                value = fix_surrogates(value)
            elif isinstance(value, (dict, list)):
                stack.append(value)
            fixed = fix_surrogates(key)
            if fixed != key:
                del node[key]
            node[fixed] = value
    return data


def _object_regions(text: str) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` of outermost balanced ``{...}`` regions in order.

    One left-to-right pass with a bracket stack.  A ``{`` that never closes
    is dropped and regions nested inside it are still reported.  Only ``"``
    delimits strings, and only inside brackets.
    """
    opened: list[tuple[int, str]] = []
    closed: list[tuple[int, int]] = []
    in_string = False
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if in_string:
            if ch == "\\":
                i += 1
            elif ch == '"':
                in_string = False
        elif ch in "{[":
            opened.append((i, ch))
        elif ch in "}]":
            if opened:
                start, opener = opened.pop()
                if opener == "{":
                    closed.append((start, i + 1))
        elif ch == '"' and opened:
            in_string = True
        i += 1

    # Regions close innermost first; keep the outermost, in page order.
    last_end = -1
    for start, end in sorted(closed):
        if start >= last_end:
            yield start, end
            last_end = end


def _return_clause(payload: str) -> Optional[str]:
    """Return the object literal following the first ``return`` in *payload*."""
    m = _RETURN_CLAUSE.search(payload)
    if not m:
        return None
    end = find_balanced_end(payload, m.end())
    if end == -1:
        return None
    return payload[m.end():end]


def _normalize(payload: str) -> str:
    text = payload.strip()
    if text.endswith(";"):
        text = text[:-1].rstrip()
    return text


def _bare_name(global_name: str) -> str:
    """``window.__NUXT__`` → ``__NUXT__``."""
    return global_name.rsplit(".", 1)[-1]


def _has_hint_key(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    return any(
        hint in str(key).lower() for key in data for hint in _HEURISTIC_KEY_HINTS
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class StateExtractor:
    """Recover the state object a page assigns to *global_name*.

    Args:
        global_name: The assignment target to look for, e.g.
            ``window.__NUXT__`` or ``window.__INITIAL_STATE__``.
        enable_evaluation: When ``False`` function-wrapped payloads are only
            handled through their ``return {...}`` clause.
    """

    def __init__(self, global_name: str = DEFAULT_GLOBAL_NAME,
                 enable_evaluation: bool = True):
        self.global_name = global_name
        self.bare_name = _bare_name(global_name)
        self.enable_evaluation = enable_evaluation
        self._primary = re.compile(
            re.escape(global_name) + r"\s*=(?!=)\s*([\s\S]*?);?\s*</script>",
            re.IGNORECASE,
        )
        self._relaxed = re.compile(
            re.escape(self.bare_name) + r"\s*=(?!=)\s*([\s\S]*?);",
            re.IGNORECASE,
        )

    def extract(self, page_text: str) -> ExtractionOutcome:
        """Run the strategy cascade over *page_text*."""
        malformed: Optional[Malformed] = None

        for strategy, pattern in (("primary", self._primary), ("relaxed", self._relaxed)):
            match = pattern.search(page_text)
            if not match:
                logger.debug("%s pattern: no %s assignment", strategy, self.bare_name)
                continue
            outcome = self.parse_payload(match.group(1), strategy)
            if isinstance(outcome, Extracted):
                logger.info("Extracted %s via %s pattern", self.global_name, strategy)
                return outcome
            logger.warning("%s pattern matched but payload unusable: %s",
                           strategy, outcome.reason)
            malformed = outcome

        found = self.heuristic_scan(page_text)
        if found is not None:
            logger.info("Extracted state via heuristic scan")
            return found

        if malformed is not None:
            return NotFound(
                f"{self.bare_name} assignment found but unusable: {malformed.reason}"
            )
        return NotFound(self._not_found_reason(page_text))

    def parse_payload(self, payload: str, strategy: str = "primary") -> ExtractionOutcome:
        """Normalise and parse one captured assignment payload."""
        text = _normalize(payload)
        if not text:
            return Malformed("empty payload")

        if is_function_payload(text):
            logger.debug("Function-wrapped payload detected")
            if self.enable_evaluation:
                try:
                    return Extracted(evaluate_function_payload(text), strategy)
                except EvaluationError as exc:
                    logger.warning("Function evaluation failed, trying return clause: %s", exc)

            returned = _return_clause(text)
            if returned is not None:
                try:
                    return Extracted(_loads(returned), strategy)
                except (ValueError, RecursionError) as exc:
                    logger.warning("Return clause is not valid JSON: %s", exc)

        try:
            data = _loads(text)
        except (ValueError, RecursionError) as exc:
            return Malformed(f"invalid JSON payload: {exc}")
        return Extracted(data, strategy)

    def heuristic_scan(self, page_text: str) -> Optional[Extracted]:
        """Accept the first JSON-shaped region with a data/state-like key."""
        tried = 0
        for start, end in _object_regions(page_text):
            candidate = page_text[start:end]
            if not _QUOTED_KEY.search(candidate):
                continue
            tried += 1
            try:
                parsed = _loads(candidate)
            except (ValueError, RecursionError):
                parsed = None
            if _has_hint_key(parsed):
                return Extracted(parsed, "heuristic")
            if tried >= _HEURISTIC_CANDIDATES:
                break
        return None

    def _not_found_reason(self, page_text: str) -> str:
        soup = BeautifulSoup(page_text, "html.parser")
        mentions = sum(
            1
            for tag in soup.find_all("script")
            if not tag.get("src") and self.bare_name in tag.get_text()
        )
        return (
            f"no embedded state found ({mentions} inline script(s) "
            f"mention {self.bare_name})"
        )


def extract_state(page_text: str, global_name: str = DEFAULT_GLOBAL_NAME,
                  enable_evaluation: bool = True) -> ExtractionOutcome:
    """Functional shortcut for ``StateExtractor(...).extract(page_text)``."""
    return StateExtractor(global_name, enable_evaluation).extract(page_text)


def extract_title(html: str) -> str:
    """Return the text content of the ``<title>`` tag, or empty string."""
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return ""


def data_keys(data: Any) -> list[str]:
    """Top-level keys of an extracted mapping (empty for non-mappings)."""
    if isinstance(data, dict):
        return [str(k) for k in list(data)[:_MAX_DATA_KEYS]]
    return []


def describe_state(data: Any) -> dict[str, Any]:
    """Summarise the shape of extracted state for display."""
    summary: dict[str, Any] = {"type": _type_name(data)}
    if isinstance(data, dict):
        keys = list(data)
        summary["key_count"] = len(keys)
        summary["keys"] = [str(k) for k in keys[:10]]
        summary["fields"] = {
            str(k): {"type": _type_name(data[k]), "size": _size(data[k])}
            for k in keys[:5]
        }
    elif isinstance(data, list):
        summary["length"] = len(data)
    return summary


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _size(value: Any) -> Optional[int]:
    if isinstance(value, (list, dict, str)):
        return len(value)
    return None
