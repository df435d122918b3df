"""
Aggregation engine -- filters geo-derived fact rows, groups them by
time grain + requested dimensions, and accumulates the requested metric.

Output rows carry the grain key fields actually used (``year`` plus
``quarter`` or ``month``), one field per requested dimension, and a
single ``value`` field.  They are sorted by year, quarter, month.

Gross margin supports two policies (``Settings.margin_policy``):

  ratio_of_sums  -- (sum(revenue) - sum(cogs)) / sum(revenue) per group
  row_ratio_sum  -- sum of each row's own (revenue - cogs) / revenue
                    (legacy accumulation)
"""
from __future__ import annotations

import math
from typing import Any

from src.copilot.spec import Filter, QuerySpec
from src.semantics.semantic_loader import load_semantic_model, SemanticModel, Metric
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import to_number

logger = get_logger(__name__)

MARGIN_RATIO_OF_SUMS = "ratio_of_sums"
MARGIN_ROW_RATIO_SUM = "row_ratio_sum"
MARGIN_POLICIES = (MARGIN_RATIO_OF_SUMS, MARGIN_ROW_RATIO_SUM)

GRAIN_FIELDS: dict[str, tuple[str, ...]] = {
    "year": ("year",),
    "quarter": ("year", "quarter"),
    "month": ("year", "month"),
}


class UnknownMetricError(ValueError):
    """Raised when aggregation is asked for a metric the model does not define."""

    def __init__(self, metric: str):
        super().__init__(f"Unknown metric: {metric}")
        self.metric = metric


# ── Filter predicates ───────────────────────────────────


def _num(val: Any) -> float:
    """Numeric coercion for comparisons; unparseable values never compare true."""
    if isinstance(val, bool):
        return float(val)
    try:
        return float(val)
    except (TypeError, ValueError):
        return math.nan


def _scalar(value: Any) -> Any:
    if isinstance(value, (list, tuple)) and len(value) == 1:
        return value[0]
    return value


def matches(row: dict[str, Any], clause: Filter) -> bool:
    """Evaluate one filter clause against one row."""
    v = row.get(clause.field)
    op = clause.op or "eq"
    value = clause.value

    if op == "eq":
        if isinstance(value, (list, tuple)):
            return not isinstance(v, list) and v in value
        return v == value
    if op == "in":
        if isinstance(value, (list, tuple)):
            # a list-valued cell is compared as a scalar and so never matches
            return not isinstance(v, list) and v in value
        return v == value
    if op == "gte":
        return _num(v) >= _num(_scalar(value))
    if op == "lte":
        return _num(v) <= _num(_scalar(value))
    if op == "between":
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return _num(value[0]) <= _num(v) <= _num(value[1])
        return True
    return True


def apply_filters(rows: list[dict[str, Any]], filters: list[Filter]) -> list[dict[str, Any]]:
    """Keep rows passing every clause (clauses are ANDed)."""
    if not filters:
        return list(rows)
    return [r for r in rows if all(matches(r, f) for f in filters)]


# ── Grouping ────────────────────────────────────────────


def _hashable(val: Any) -> Any:
    if isinstance(val, list):
        return tuple(_hashable(v) for v in val)
    if isinstance(val, dict):
        return tuple(sorted((k, _hashable(v)) for k, v in val.items()))
    return val


def group_key(row: dict[str, Any], spec: QuerySpec) -> tuple:
    parts = [row.get(f) for f in GRAIN_FIELDS.get(spec.grain, ("year",))]
    parts.extend(row.get(d) for d in spec.dimensions)
    return tuple(_hashable(p) for p in parts)


def sort_key(row: dict[str, Any]) -> tuple[float, float, float]:
    return (
        to_number(row.get("year")),
        to_number(row.get("quarter")),
        to_number(row.get("month")),
    )


def _row_margin(row: dict[str, Any], metric: Metric) -> float:
    revenue = to_number(row.get(metric.column))
    cost = to_number(row.get(metric.cost_column or "cogs"))
    return (revenue - cost) / revenue if revenue > 0 else 0.0


# ── Public API ──────────────────────────────────────────


def aggregate(
    rows: list[dict[str, Any]],
    spec: QuerySpec,
    model: SemanticModel | None = None,
    margin_policy: str | None = None,
) -> list[dict[str, Any]]:
    """Filter, group and aggregate *rows* according to *spec*.

    Raises
    ------
    UnknownMetricError
        If ``spec.metric`` is not a metric of the semantic model.
    ValueError
        If *margin_policy* is not a known policy.
    """
    if model is None:
        model = load_semantic_model()
    metric = model.metric(spec.metric)
    if metric is None:
        raise UnknownMetricError(spec.metric)

    if margin_policy is None:
        margin_policy = get_settings().margin_policy
    if margin_policy not in MARGIN_POLICIES:
        raise ValueError(
            f"Unknown margin policy '{margin_policy}'. Choose from: {', '.join(MARGIN_POLICIES)}"
        )
    ratio_of_sums = metric.aggregation == "ratio" and margin_policy == MARGIN_RATIO_OF_SUMS

    time_fields = GRAIN_FIELDS.get(spec.grain, ("year",))
    filtered = apply_filters(rows, spec.filters)

    groups: dict[tuple, dict[str, Any]] = {}
    totals: dict[tuple, list[float]] = {}  # key -> [revenue, cost] for ratio_of_sums
    for r in filtered:
        key = group_key(r, spec)
        cur = groups.get(key)
        if cur is None:
            cur = {f: r.get(f) for f in time_fields}
            for d in spec.dimensions:
                cur[d] = r.get(d)
            cur["value"] = 0.0
            groups[key] = cur

        if metric.aggregation == "sum":
            cur["value"] += to_number(r.get(metric.column))
        elif ratio_of_sums:
            acc = totals.setdefault(key, [0.0, 0.0])
            acc[0] += to_number(r.get(metric.column))
            acc[1] += to_number(r.get(metric.cost_column or "cogs"))
        else:
            cur["value"] += _row_margin(r, metric)

    if ratio_of_sums:
        for key, (revenue, cost) in totals.items():
            groups[key]["value"] = (revenue - cost) / revenue if revenue else 0.0

    result = sorted(groups.values(), key=sort_key)
    logger.info(
        "Aggregated metric=%s grain=%s dims=%s | %d rows in, %d passed filters, %d groups out",
        spec.metric, spec.grain, spec.dimensions, len(rows), len(filtered), len(result),
    )
    return result
