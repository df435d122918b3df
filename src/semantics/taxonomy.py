"""
Geographic taxonomy: US state codes, country codes and region aliases.

One instance backs both the filter normalizer and the geo deriver so the
two can never disagree about what "US", "CA" or "asia" means.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from src.semantics.semantic_loader import load_semantic_model, TaxonomyTables


class Taxonomy:
    """Pure lookups over the static taxonomy tables."""

    def __init__(self, tables: TaxonomyTables):
        self._tables = tables
        self._alias_map: dict[str, list[str]] = {}
        for alias in tables.aliases:
            for token in alias.tokens:
                self._alias_map[token] = list(alias.regions)

    @property
    def us_states(self) -> frozenset[str]:
        return self._tables.us_states

    @property
    def country_codes(self) -> frozenset[str]:
        return self._tables.country_codes

    @property
    def regions(self) -> tuple[str, ...]:
        return self._tables.regions

    def expand_region(self, value: Any) -> list[Any]:
        """Expand a free-text region token into canonical region names.

        Matching is case-insensitive; unknown tokens come back unchanged as a
        single-element list.
        """
        regions = self._alias_map.get(str(value if value is not None else "").strip().lower())
        if regions is None:
            return [value]
        return list(regions)

    def is_country(self, value: Any) -> bool:
        return str(value).upper() in self._tables.country_codes

    def is_us_state(self, value: Any) -> bool:
        return str(value).upper() in self._tables.us_states

    def is_region(self, value: Any) -> bool:
        return str(value) in self._tables.regions


@lru_cache
def get_taxonomy() -> Taxonomy:
    """Return the taxonomy built from the cached semantic model."""
    return Taxonomy(load_semantic_model().taxonomy)
