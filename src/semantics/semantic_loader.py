"""
Loads, parses, and caches the semantic model YAML into strongly-typed objects.

The semantic model is the single source of truth for:
  - queryable metrics  (aggregation kind, source columns, SQL expression)
  - allowed dimensions (physical column, derived flag)
  - time grains, time-range presets and filter operators
  - the geographic taxonomy (US states, country codes, region aliases)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_SEMANTIC_PATH = Path(__file__).resolve().parents[2] / "semantic_layer" / "semantic_model.yml"


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class Metric:
    name: str
    description: str
    aggregation: str  # sum | ratio
    column: str
    expression: str
    fmt: str = "number"
    cost_column: str | None = None


@dataclass(frozen=True)
class Dimension:
    name: str
    column: str
    derived: bool = False


@dataclass(frozen=True)
class RegionAlias:
    tokens: tuple[str, ...]
    regions: tuple[str, ...]


@dataclass(frozen=True)
class TaxonomyTables:
    us_states: frozenset[str] = frozenset()
    country_codes: frozenset[str] = frozenset()
    regions: tuple[str, ...] = ()
    aliases: tuple[RegionAlias, ...] = ()


@dataclass
class SemanticModel:
    """Fully parsed semantic layer."""

    version: int
    metrics: dict[str, Metric]          # keyed by name
    dimensions: dict[str, Dimension]    # keyed by name
    grains: list[str]
    presets: list[str]
    filter_ops: list[str]
    time_fields: list[str]
    taxonomy: TaxonomyTables = field(default_factory=TaxonomyTables)

    # ── Convenience look-ups ─────────────────────────

    def metric(self, name: str) -> Metric | None:
        return self.metrics.get(name)

    def dimension(self, name: str) -> Dimension | None:
        return self.dimensions.get(name)

    def get_metric_names(self) -> list[str]:
        return list(self.metrics.keys())

    def get_dimension_names(self) -> list[str]:
        return list(self.dimensions.keys())

    def get_metrics_list(self) -> list[dict[str, Any]]:
        """Return metrics as a list of dicts (for API responses)."""
        return [
            {"name": m.name, "description": m.description, "fmt": m.fmt}
            for m in self.metrics.values()
        ]

    def get_dimensions_list(self) -> list[dict[str, Any]]:
        """Return dimensions as a list of dicts (for API responses)."""
        return [
            {"name": d.name, "column": d.column, "derived": d.derived}
            for d in self.dimensions.values()
        ]


# ── Parsing ──────────────────────────────────────────────

def _parse_metric(raw: dict[str, Any]) -> Metric:
    return Metric(
        name=raw["name"],
        description=raw.get("description", ""),
        aggregation=raw.get("aggregation", "sum"),
        column=raw["column"],
        expression=raw["expression"],
        fmt=raw.get("fmt", "number"),
        cost_column=raw.get("cost_column"),
    )


def _parse_dimension(raw: dict[str, Any]) -> Dimension:
    return Dimension(
        name=raw["name"],
        column=raw.get("column", raw["name"]),
        derived=raw.get("derived", False),
    )


def _parse_taxonomy(raw: dict[str, Any] | None) -> TaxonomyTables:
    if not raw:
        return TaxonomyTables()
    aliases = tuple(
        RegionAlias(
            tokens=tuple(str(t).lower() for t in a.get("tokens", [])),
            regions=tuple(str(r) for r in a.get("regions", [])),
        )
        for a in raw.get("region_aliases", [])
    )
    return TaxonomyTables(
        us_states=frozenset(str(s).upper() for s in raw.get("us_states", [])),
        country_codes=frozenset(str(c).upper() for c in raw.get("country_codes", [])),
        regions=tuple(str(r) for r in raw.get("regions", [])),
        aliases=aliases,
    )


def _parse_model(raw_yaml: dict[str, Any]) -> SemanticModel:
    metrics = {m["name"]: _parse_metric(m) for m in raw_yaml.get("metrics", [])}
    dimensions = {d["name"]: _parse_dimension(d) for d in raw_yaml.get("dimensions", [])}
    return SemanticModel(
        version=raw_yaml.get("version", 1),
        metrics=metrics,
        dimensions=dimensions,
        grains=list(raw_yaml.get("grains", [])),
        presets=list(raw_yaml.get("time_range_presets", [])),
        filter_ops=list(raw_yaml.get("filter_ops", [])),
        time_fields=list(raw_yaml.get("time_fields", [])),
        taxonomy=_parse_taxonomy(raw_yaml.get("taxonomy")),
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_semantic_model() -> SemanticModel:
    """Load and cache the semantic model from YAML."""
    with open(_SEMANTIC_PATH) as f:
        raw = yaml.safe_load(f)
    return _parse_model(raw)


def get_metric_names() -> list[str]:
    return load_semantic_model().get_metric_names()


def get_dimension_names() -> list[str]:
    return load_semantic_model().get_dimension_names()
