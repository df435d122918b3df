"""
Chart profile and recommendations.

Summarises the shape of an aggregated result (periods, categories,
series) and turns it into a primary chart config plus up to three
recommended chart kinds the UI can offer.

Supported chart kinds:
  - line        (time on x, optional series per first dimension)
  - stackedArea (composition over time, multi-series only)
  - pie         (few categories)
  - bar         (fallback category comparison)
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any

from src.copilot.spec import QuerySpec
from src.engine.insights import period_totals

# ── Chart kinds ─────────────────────────────────────────

CHART_LINE = "line"
CHART_STACKED_AREA = "stackedArea"
CHART_PIE = "pie"
CHART_BAR = "bar"

MAX_PIE_CATEGORIES = 6
MAX_OPTIONS = 3


@dataclass
class ChartProfile:
    has_time: bool
    time_grain: str
    periods: int
    categories: int
    series: int
    has_multiple_series: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasTime": self.has_time,
            "timeGrain": self.time_grain,
            "periods": self.periods,
            "categories": self.categories,
            "series": self.series,
            "hasMultipleSeries": self.has_multiple_series,
        }


@dataclass
class ChartSpec:
    """Describes how the aggregated rows should be drawn."""
    kind: str
    title: str
    x: str
    y: str = "value"
    series: str | None = None
    rows: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "x": self.x,
            "y": self.y,
            "series": self.series,
            "row_count": len(self.rows),
        }


@dataclass
class ChartOption:
    key: str
    title: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_profile(rows: list[dict[str, Any]], spec: QuerySpec) -> ChartProfile:
    cat_dim = spec.dimensions[0] if spec.dimensions else None
    categories = 0
    if cat_dim:
        categories = len({r.get(cat_dim) for r in rows if r.get(cat_dim) is not None})
    return ChartProfile(
        has_time=True,
        time_grain=spec.grain,
        periods=len(period_totals(rows, spec.grain)),
        categories=categories,
        series=categories or 1,
        has_multiple_series=cat_dim is not None,
    )


def primary_chart(rows: list[dict[str, Any]], spec: QuerySpec) -> ChartSpec:
    dim = spec.dimensions[0] if spec.dimensions else None
    return ChartSpec(
        kind=CHART_LINE,
        title=f"{spec.metric} by {dim or spec.time_key} ({spec.grain})",
        x=spec.time_key,
        series=dim,
        rows=rows,
    )


def recommend_charts(profile: ChartProfile) -> list[ChartOption]:
    """Heuristic chart suggestions, best first."""
    options: list[ChartOption] = []
    if profile.has_time and profile.has_multiple_series:
        options.append(ChartOption(CHART_LINE, "Multi-series line", "Compare series over time"))
        options.append(ChartOption(CHART_STACKED_AREA, "Stacked area", "Show composition over time"))
    elif profile.has_time:
        options.append(ChartOption(CHART_LINE, "Line", "Trend over time"))
    if profile.categories and profile.categories <= MAX_PIE_CATEGORIES:
        options.append(ChartOption(CHART_PIE, "Pie", "Small part-to-whole comparison"))
    if not options:
        options.append(ChartOption(CHART_BAR, "Bar", "Category comparison"))
    return options[:MAX_OPTIONS]
