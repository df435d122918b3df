"""
Narrative insight cards built from aggregated rows.

Cards, in order: trend (first row vs last row), momentum (last period vs
the one before it), and top contributor (first dimension only).
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any

from src.copilot.spec import QuerySpec
from src.engine.aggregation import GRAIN_FIELDS
from src.engine.checks import Checks
from src.core.utils import to_number, pct_change


@dataclass
class Insight:
    type: str
    headline: str
    details: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def fmt_number(val: float) -> str:
    if float(val).is_integer():
        return f"{val:,.0f}"
    return f"{val:,.2f}"


def period_totals(rows: list[dict[str, Any]], grain: str) -> list[tuple[tuple, float]]:
    """Summed ``value`` per distinct time period, in row order."""
    fields = GRAIN_FIELDS.get(grain, ("year",))
    totals: dict[tuple, float] = {}
    for r in rows:
        key = tuple(r.get(f) for f in fields)
        totals[key] = totals.get(key, 0.0) + to_number(r.get("value"))
    return list(totals.items())


def latest_vs_previous(rows: list[dict[str, Any]], grain: str) -> tuple[float, float, float | None]:
    """(latest period sum, previous period sum, percent delta or None)."""
    periods = period_totals(rows, grain)
    latest = periods[-1][1] if periods else 0.0
    prev = periods[-2][1] if len(periods) > 1 else 0.0
    return latest, prev, pct_change(latest, prev)


def _trend(rows: list[dict[str, Any]]) -> Insight:
    first = to_number(rows[0].get("value"))
    last = to_number(rows[-1].get("value"))
    pct = pct_change(last, first) or 0.0
    direction = "Up" if pct >= 0 else "Down"
    return Insight(
        type="trend",
        headline=f"{direction} {abs(pct):.1f}% over period",
        details=f"From {fmt_number(first)} to {fmt_number(last)}",
    )


def _momentum(rows: list[dict[str, Any]], spec: QuerySpec) -> Insight:
    latest, prev, delta = latest_vs_previous(rows, spec.grain)
    label = "n/a" if delta is None else f"{delta:+.1f}%"
    return Insight(
        type="momentum",
        headline=f"{label} vs prior {spec.time_key}",
        details=f"{fmt_number(latest)} vs {fmt_number(prev)}",
    )


def _top_contributor(rows: list[dict[str, Any]], dim: str) -> Insight | None:
    by_dim: dict[str, float] = {}
    for r in rows:
        k = str(r.get(dim) if r.get(dim) is not None else "")
        if not k:
            continue
        by_dim[k] = by_dim.get(k, 0.0) + to_number(r.get("value"))
    if not by_dim:
        return None

    name, val = max(by_dim.items(), key=lambda kv: kv[1])
    total = sum(by_dim.values())
    share = f"{val / total * 100:.1f}%" if total else "n/a"
    return Insight(
        type="top",
        headline=f"{name} leads ({share})",
        details=f"{fmt_number(val)} of {fmt_number(total)}",
    )


def build_insights(rows: list[dict[str, Any]], spec: QuerySpec, checks: Checks | None = None) -> list[Insight]:
    if not rows:
        return []
    cards = [_trend(rows), _momentum(rows, spec)]
    if spec.dimensions:
        top = _top_contributor(rows, spec.dimensions[0])
        if top is not None:
            cards.append(top)
    return cards
