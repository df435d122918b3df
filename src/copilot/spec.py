"""
QuerySpec -- the structured intermediate representation between
a natural-language question and the aggregation engine.

Fields are deliberately loose (plain ``str``) so that an untrusted oracle
payload can be parsed first and judged by the validator afterwards.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Filter(BaseModel):
    """A single predicate clause."""

    field: str = Field(..., description="Dimension name or time part (year | quarter | month)")
    op: str | None = Field(None, description="eq | in | gte | lte | between (defaults to eq)")
    value: Any = Field(None, description="Scalar, or list for in / between")


class TimeRange(BaseModel):
    preset: str | None = Field(None, description="Named window, e.g. 'last_2_years'")
    from_: str | None = Field(None, alias="from", description="Inclusive ISO start date")
    to: str | None = Field(None, description="Inclusive ISO end date")

    model_config = {"populate_by_name": True}


class QuerySpec(BaseModel):
    """Parsed representation of a business question."""

    metric: str = Field(..., description="revenue | units | gross_margin_pct")
    grain: str = Field("quarter", description="month | quarter | year")
    dimensions: list[str] = Field(default_factory=list, description="Group-by dimensions, in order")
    filters: list[Filter] = Field(default_factory=list)
    time_range: TimeRange = Field(default_factory=lambda: TimeRange(preset="last_2_years"))
    assumptions: list[str] = Field(default_factory=list)

    @field_validator("dimensions")
    @classmethod
    def _dedupe_dimensions(cls, dims: list[str]) -> list[str]:
        seen: list[str] = []
        for d in dims:
            if d not in seen:
                seen.append(d)
        return seen

    @field_validator("time_range", mode="before")
    @classmethod
    def _default_time_range(cls, value: Any) -> Any:
        if value is None:
            return {"preset": "last_2_years"}
        if isinstance(value, str):
            return {"preset": value}
        return value

    @property
    def time_key(self) -> str:
        """Name of the sub-year period field for this grain."""
        return self.grain if self.grain in ("quarter", "month") else "year"

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict using the wire names (``from`` not ``from_``)."""
        return self.model_dump(by_alias=True, exclude_none=False)
