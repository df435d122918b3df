"""
KPI strip: the metric total plus the latest period and its delta.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any

from src.copilot.spec import QuerySpec
from src.engine.insights import latest_vs_previous
from src.core.utils import to_number


@dataclass
class Kpi:
    label: str
    value: float
    delta_pct: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_kpis(rows: list[dict[str, Any]], spec: QuerySpec) -> list[Kpi]:
    total = sum(to_number(r.get("value")) for r in rows)
    latest, _prev, delta = latest_vs_previous(rows, spec.grain)
    return [
        Kpi(label=spec.metric.upper(), value=total),
        Kpi(label=f"{spec.time_key.upper()} Latest", value=latest, delta_pct=delta),
    ]
