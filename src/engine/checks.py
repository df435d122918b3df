"""
Lightweight grounding checks over an aggregated row set.

  controlTotalsOk -- the result is non-empty
  continuityOk    -- every year with quarter data has >= 2 distinct quarters
  outliers        -- rows whose value has |z| >= 2 (sample sd, n-1, floor 1)
  confidence      -- 0.5 * totals + 0.3 * continuity + (0.2 | 0.1 by outliers)
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

Z_THRESHOLD = 2.0


@dataclass
class Outlier:
    index: int
    z: float


@dataclass
class Checks:
    control_totals_ok: bool
    continuity_ok: bool
    outliers: list[Outlier] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "controlTotalsOk": self.control_totals_ok,
            "continuityOk": self.continuity_ok,
            "outliers": [{"index": o.index, "z": o.z} for o in self.outliers],
            "confidence": self.confidence,
        }


def _finite(val: Any) -> float | None:
    try:
        f = float(val)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def continuity_ok(rows: list[dict[str, Any]]) -> bool:
    quarters_by_year: dict[str, set[float]] = {}
    for r in rows:
        if r.get("year") is None or r.get("quarter") is None:
            continue
        q = _finite(r["quarter"])
        if q is None:
            continue
        quarters_by_year.setdefault(str(r["year"]), set()).add(q)
    return all(len(qs) >= 2 for qs in quarters_by_year.values())


def find_outliers(rows: list[dict[str, Any]], threshold: float = Z_THRESHOLD) -> list[Outlier]:
    vals = [v for v in (_finite(r.get("value")) for r in rows) if v is not None]
    if not vals:
        return []
    mean = sum(vals) / len(vals)
    var = sum((v - mean) ** 2 for v in vals) / max(1, len(vals) - 1)
    sd = math.sqrt(var) or 1.0

    out: list[Outlier] = []
    for i, r in enumerate(rows):
        v = _finite(r.get("value"))
        if v is None:
            continue
        z = (v - mean) / sd
        if abs(z) >= threshold:
            out.append(Outlier(index=i, z=z))
    return out


def compute_checks(rows: list[dict[str, Any]]) -> Checks:
    totals_ok = len(rows) > 0
    cont_ok = continuity_ok(rows)
    outliers = find_outliers(rows)
    confidence = (0.5 if totals_ok else 0.0) + (0.3 if cont_ok else 0.0) + (0.2 if not outliers else 0.1)
    return Checks(
        control_totals_ok=totals_ok,
        continuity_ok=cont_ok,
        outliers=outliers,
        confidence=round(confidence, 4),
    )
