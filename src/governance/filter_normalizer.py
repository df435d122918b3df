"""
Filter normalizer -- repairs geographic filters that an LLM put on the
wrong semantic field.

Each input clause yields exactly one output clause (a retarget, never a
split or a drop):

  region  -> expand aliases; country codes move to ``country``, US state
             codes move to ``market``, otherwise ``region IN (...)``
  country -> region words (after alias expansion) move to ``region``
  state / market -> country codes move to ``country``, otherwise ``market``

Operators default to ``eq`` and values are always coerced to a list.
"""
from __future__ import annotations

from typing import Any

from src.copilot.spec import Filter
from src.semantics.taxonomy import Taxonomy, get_taxonomy
from src.core.logging import get_logger

logger = get_logger(__name__)


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _expand(values: list[Any], taxonomy: Taxonomy) -> list[Any]:
    return [r for v in values for r in taxonomy.expand_region(v)]


def normalize_filter(clause: Filter | dict[str, Any], taxonomy: Taxonomy | None = None) -> Filter:
    """Normalize a single clause."""
    if taxonomy is None:
        taxonomy = get_taxonomy()
    if not isinstance(clause, Filter):
        clause = Filter.model_validate(clause)

    field = clause.field
    op = clause.op or "eq"
    vals = _as_list(clause.value)

    if field == "region":
        expanded = _expand(vals, taxonomy)
        if any(taxonomy.is_country(x) for x in expanded):
            out = Filter(field="country", op="in", value=expanded)
        elif any(taxonomy.is_us_state(x) for x in expanded):
            out = Filter(field="market", op="in", value=expanded)
        else:
            out = Filter(field="region", op="in", value=expanded)

    elif field == "country":
        region_terms = _expand(vals, taxonomy)
        if any(taxonomy.is_region(x) for x in region_terms):
            out = Filter(field="region", op="in", value=region_terms)
        else:
            out = Filter(field="country", op=op, value=vals)

    elif field in ("state", "market"):
        if any(taxonomy.is_country(x) for x in vals):
            out = Filter(field="country", op="in", value=vals)
        else:
            out = Filter(field="market", op=op, value=vals)

    else:
        out = Filter(field=field, op=op, value=vals)

    if out.field != field:
        logger.debug("Retargeted filter %s=%r -> %s=%r", field, clause.value, out.field, out.value)
    return out


def normalize_filters(
    filters: list[Filter | dict[str, Any]] | None,
    taxonomy: Taxonomy | None = None,
) -> list[Filter]:
    """Normalize every clause; output has the same length as the input."""
    if taxonomy is None:
        taxonomy = get_taxonomy()
    return [normalize_filter(f, taxonomy) for f in (filters or [])]
