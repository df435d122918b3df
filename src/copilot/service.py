"""
Dashboard service -- orchestrates plan -> validate -> normalize -> fetch ->
derive geo -> aggregate -> checks -> insights -> KPIs / chart profile.

Everything is request-scoped: rows are fetched fresh per call and nothing
is shared between calls.  The caller always gets a complete
``DashboardResult`` (possibly empty, possibly flagged as a fallback);
only an unknown metric that bypassed validation raises.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from src.copilot.spec import QuerySpec
from src.copilot.planner import plan
from src.copilot.sql_generator import compile_sql, resolve_time_range
from src.copilot.chart_profile import (
    ChartOption, ChartProfile, ChartSpec, build_profile, primary_chart, recommend_charts,
)
from src.governance.validator import FALLBACK_ASSUMPTION, validate
from src.governance.filter_normalizer import normalize_filters
from src.semantics.geo import with_geo
from src.engine.aggregation import aggregate
from src.engine.checks import Checks, compute_checks
from src.engine.insights import Insight, build_insights
from src.engine.kpis import Kpi, build_kpis
from src.db.row_source import fact_columns, fetch_all_rows
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import timer

logger = get_logger(__name__)


class DashboardResult:
    def __init__(
        self,
        spec: QuerySpec,
        rows: list[dict[str, Any]],
        checks: Checks,
        insights: list[Insight],
        kpis: list[Kpi],
        profile: ChartProfile,
        chart: ChartSpec,
        chart_options: list[ChartOption],
        sql: str = "",
        source_row_count: int = 0,
        latency_ms: int = 0,
        provenance: dict[str, Any] | None = None,
    ):
        self.spec = spec
        self.rows = rows
        self.checks = checks
        self.insights = insights
        self.kpis = kpis
        self.profile = profile
        self.chart = chart
        self.chart_options = chart_options
        self.sql = sql
        self.source_row_count = source_row_count
        self.latency_ms = latency_ms
        self.provenance = provenance or {}

    @property
    def is_fallback(self) -> bool:
        return FALLBACK_ASSUMPTION in self.spec.assumptions

    def to_dict(self) -> dict[str, Any]:
        return {
            "spec": self.spec.to_payload(),
            "rows": self.rows,
            "checks": self.checks.to_dict(),
            "insights": [i.to_dict() for i in self.insights],
            "kpis": [k.to_dict() for k in self.kpis],
            "profile": self.profile.to_dict(),
            "charts": [self.chart.to_dict()],
            "chart_options": [o.to_dict() for o in self.chart_options],
            "sql": self.sql,
            "source_row_count": self.source_row_count,
            "latency_ms": self.latency_ms,
            "provenance": self.provenance,
        }


def prepare_spec(spec: QuerySpec | dict[str, Any] | None, question: str = "") -> QuerySpec:
    """Validate (or replace) *spec* and normalize its filters."""
    valid = validate(spec, question)
    return valid.model_copy(update={"filters": normalize_filters(valid.filters)})


def build_dashboard(
    spec: QuerySpec,
    raw_rows: list[dict[str, Any]],
    margin_policy: str | None = None,
) -> DashboardResult:
    """Run the in-process half of the pipeline on already-fetched rows.

    *spec* must already be prepared (see :func:`prepare_spec`).
    """
    rows = aggregate(with_geo(raw_rows), spec, margin_policy=margin_policy)
    checks = compute_checks(rows)
    profile = build_profile(rows, spec)
    return DashboardResult(
        spec=spec,
        rows=rows,
        checks=checks,
        insights=build_insights(rows, spec, checks),
        kpis=build_kpis(rows, spec),
        profile=profile,
        chart=primary_chart(rows, spec),
        chart_options=recommend_charts(profile),
        source_row_count=len(raw_rows),
    )


def run_dataset(
    spec: QuerySpec | dict[str, Any] | None,
    question: str = "",
    execute: bool = True,
    rows: list[dict[str, Any]] | None = None,
) -> DashboardResult:
    """Spec -> result bundle.

    Parameters
    ----------
    spec : QuerySpec | dict
        Candidate spec; invalid specs are replaced by the fallback for *question*.
    execute : bool
        If False and no *rows* are given, nothing is fetched (dry-run).
    rows : list[dict], optional
        Raw fact rows to use instead of querying the database.
    """
    with timer() as t:
        prepared = prepare_spec(spec, question)
        margin_policy = get_settings().margin_policy
        sql = compile_sql(prepared, margin_policy=margin_policy)

        source = "inline"
        if rows is None:
            if execute:
                start, end = resolve_time_range(prepared.time_range)
                fields = prepared.dimensions + [f.field for f in prepared.filters]
                rows = fetch_all_rows(from_date=start, to_date=end, columns=fact_columns(fields))
                source = "postgres"
            else:
                rows = []
                source = "dry-run"

        result = build_dashboard(prepared, rows, margin_policy=margin_policy)

    result.sql = sql
    result.latency_ms = t["elapsed_ms"]
    result.provenance = {
        "source": source,
        "table": get_settings().fact_table,
        "snapshot_at": datetime.now(timezone.utc).isoformat(),
    }
    logger.info(
        "Dashboard built | metric=%s grain=%s | %d source rows -> %d groups | %dms",
        prepared.metric, prepared.grain, result.source_row_count, len(result.rows), result.latency_ms,
    )
    return result


def ask(
    question: str,
    mode: str = "mock",
    execute: bool = True,
    rows: list[dict[str, Any]] | None = None,
) -> DashboardResult:
    """End-to-end: question -> result bundle.

    Parameters
    ----------
    question : str
        Natural-language business question.
    mode : str
        Planner mode -- "mock" (keyword rules), "openai", or "anthropic".
    execute : bool
        If True, fetch fact rows from Postgres.
    rows : list[dict], optional
        Raw fact rows to use instead of querying the database.
    """
    logger.info("Dashboard.ask | question=%s | mode=%s | execute=%s", question, mode, execute)
    spec = plan(question, mode=mode)
    return run_dataset(spec, question=question, execute=execute, rows=rows)
