"""
SQL Generator -- compiles a validated QuerySpec into a single SELECT over
the sales fact table, for database pushdown and for provenance display.

Metric expressions and dimension columns come from the semantic model.
``country`` and ``market`` are CASE expressions over the mixed location
column, mirroring :mod:`src.semantics.geo`.  GROUP BY / ORDER BY are
positional so the CASE expressions are written once.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Any

from src.copilot.spec import QuerySpec, TimeRange
from src.engine.aggregation import (
    GRAIN_FIELDS, MARGIN_POLICIES, MARGIN_ROW_RATIO_SUM, UnknownMetricError,
)
from src.semantics.geo import LOCATION_FIELD
from src.semantics.semantic_loader import load_semantic_model, Metric, SemanticModel
from src.semantics.taxonomy import Taxonomy, get_taxonomy
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ── Time-range resolution ────────────────────────────────

def _parse_date(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        logger.warning("Ignoring unparseable time-range bound %r", raw)
        return None


def resolve_time_range(
    time_range: TimeRange | None,
    today: date | None = None,
) -> tuple[date | None, date | None]:
    """Convert a time range to inclusive (start, end) dates; None = unbounded.

    ``last_2_years`` starts on Jan 1 of the previous calendar year and has no
    upper bound.  A preset takes priority over explicit bounds.
    """
    if time_range is None:
        return (None, None)
    today = today or date.today()

    if time_range.preset == "last_2_years":
        return (date(today.year - 1, 1, 1), None)

    return (_parse_date(time_range.from_), _parse_date(time_range.to))


# ── SQL builder ──────────────────────────────────────────

def _sql_literal(val: Any) -> str:
    if val is None:
        return "NULL"
    if isinstance(val, bool):
        return "TRUE" if val else "FALSE"
    if isinstance(val, (int, float)):
        return str(val)
    return "'" + str(val).replace("'", "''") + "'"


def _state_list(taxonomy: Taxonomy) -> str:
    return ",".join(_sql_literal(s) for s in sorted(taxonomy.us_states))


def _dimension_exprs(taxonomy: Taxonomy) -> dict[str, str]:
    col = LOCATION_FIELD
    states = _state_list(taxonomy)
    country = (
        "CASE"
        f" WHEN {col} IN ({states}) THEN 'US'"
        f" WHEN {col} ~ '^[A-Z]{{2}}-' THEN split_part({col},'-',1)"
        f" WHEN {col} ~ '^[A-Z]{{2}}$' THEN {col}"
        " ELSE '' END"
    )
    market = (
        "CASE"
        f" WHEN {col} IN ({states}) THEN {col}"
        f" WHEN {col} ~ '^[A-Z]{{2}}-' THEN substring({col} from 4)"
        f" WHEN {col} ~ '^[A-Z]{{2}}$' THEN ''"
        f" ELSE {col} END"
    )
    return {"country": country, "market": market}


def _metric_expr(metric: Metric, margin_policy: str) -> str:
    if metric.aggregation == "ratio" and margin_policy == MARGIN_ROW_RATIO_SUM:
        rev, cost = metric.column, metric.cost_column or "cogs"
        return f"SUM(CASE WHEN {rev} > 0 THEN ({rev} - {cost}) / {rev} ELSE 0 END)"
    return metric.expression


def _field_expr(name: str, model: SemanticModel, derived: dict[str, str]) -> str | None:
    if name in model.time_fields:
        return name
    if name in derived:
        return f"({derived[name]})"
    dim = model.dimension(name)
    if dim is not None:
        return dim.column
    if _IDENT_RE.match(name):
        return name
    return None


def compile_sql(
    spec: QuerySpec,
    table: str | None = None,
    model: SemanticModel | None = None,
    taxonomy: Taxonomy | None = None,
    today: date | None = None,
    margin_policy: str | None = None,
) -> str:
    """Build a SELECT for *spec*.

    The gross-margin expression follows *margin_policy* (default from
    settings) so the SQL matches the in-process aggregation.

    Raises
    ------
    UnknownMetricError
        If ``spec.metric`` is not defined in the semantic model.
    ValueError
        If *margin_policy* is not a known policy.
    """
    if model is None:
        model = load_semantic_model()
    if taxonomy is None:
        taxonomy = get_taxonomy()
    if table is None:
        table = get_settings().fact_table_identifier

    metric = model.metric(spec.metric)
    if metric is None:
        raise UnknownMetricError(spec.metric)
    if margin_policy is None:
        margin_policy = get_settings().margin_policy
    if margin_policy not in MARGIN_POLICIES:
        raise ValueError(
            f"Unknown margin policy '{margin_policy}'. Choose from: {', '.join(MARGIN_POLICIES)}"
        )

    derived = _dimension_exprs(taxonomy)

    # ── SELECT ───────────────────────────────────────
    select_parts = [f"{f} AS {f}" for f in GRAIN_FIELDS.get(spec.grain, ("year",))]
    for d in spec.dimensions:
        expr = _field_expr(d, model, derived)
        if expr is None:
            continue
        select_parts.append(f"{expr} AS {d}")
    select_parts.append(f"{_metric_expr(metric, margin_policy)} AS value")  # metric always last

    # ── WHERE ────────────────────────────────────────
    where: list[str] = []
    start, end = resolve_time_range(spec.time_range, today)
    if spec.time_range.preset and start is not None:
        where.append(f"year >= {start.year}")
    else:
        if start is not None:
            where.append(f"order_date >= {_sql_literal(start.isoformat())}")
        if end is not None:
            where.append(f"order_date <= {_sql_literal(end.isoformat())}")

    for f in spec.filters:
        lhs = _field_expr(f.field, model, derived)
        if lhs is None:
            logger.warning("Skipping filter on non-identifier field %r", f.field)
            continue
        op = f.op or "eq"
        vals = f.value if isinstance(f.value, (list, tuple)) else [f.value]
        if op in ("eq", "in"):
            if not vals:
                where.append("FALSE")
            elif len(vals) == 1:
                where.append(f"{lhs} = {_sql_literal(vals[0])}")
            else:
                where.append(f"{lhs} IN ({','.join(_sql_literal(v) for v in vals)})")
        elif op == "gte" and len(vals) == 1:
            where.append(f"{lhs} >= {_sql_literal(vals[0])}")
        elif op == "lte" and len(vals) == 1:
            where.append(f"{lhs} <= {_sql_literal(vals[0])}")
        elif op == "between" and len(vals) == 2:
            where.append(f"{lhs} BETWEEN {_sql_literal(vals[0])} AND {_sql_literal(vals[1])}")

    # ── GROUP BY / ORDER BY (positional, metric excluded) ─
    group_by = ", ".join(str(i + 1) for i in range(len(select_parts) - 1))

    sql = f"SELECT {', '.join(select_parts)}\nFROM {table}\n"
    if where:
        sql += f"WHERE {' AND '.join(where)}\n"
    sql += f"GROUP BY {group_by}\nORDER BY {group_by};"
    return sql
