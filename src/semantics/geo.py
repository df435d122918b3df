"""
Geo deriver: splits the fact table's mixed-format location token
(``state`` column) into canonical ``country`` and ``market`` fields.

  - US state code         (e.g. CA)          -> country=US, market=CA
  - CC-<rest>             (e.g. CN-Shanghai) -> country=CN, market=Shanghai
  - two uppercase letters (e.g. UK)          -> country=UK, market=""
  - anything else         (e.g. Springfield) -> country="",  market=token
"""
from __future__ import annotations

import re
from typing import Any

from src.semantics.taxonomy import Taxonomy, get_taxonomy

LOCATION_FIELD = "state"

_PREFIXED_RE = re.compile(r"^([A-Z]{2})-(.+)$", re.DOTALL)
_CODE_RE = re.compile(r"^[A-Z]{2}$")


def derive_geo(row: dict[str, Any], taxonomy: Taxonomy | None = None) -> dict[str, str]:
    """Return ``{"country": ..., "market": ...}`` for a raw fact row. Never raises."""
    if taxonomy is None:
        taxonomy = get_taxonomy()

    raw = row.get(LOCATION_FIELD)
    token = str(raw).strip() if raw is not None else ""

    if not token:
        return {"country": "", "market": ""}
    if token in taxonomy.us_states:
        return {"country": "US", "market": token}

    m = _PREFIXED_RE.match(token)
    if m:
        return {"country": m.group(1), "market": m.group(2)}
    if _CODE_RE.match(token):
        return {"country": token, "market": ""}
    return {"country": "", "market": token}


def with_geo(rows: list[dict[str, Any]], taxonomy: Taxonomy | None = None) -> list[dict[str, Any]]:
    """Return copies of *rows* with ``country`` and ``market`` added."""
    if taxonomy is None:
        taxonomy = get_taxonomy()
    return [{**row, **derive_geo(row, taxonomy)} for row in rows]
