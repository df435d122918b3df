"""
Unit tests -- dashboard service pipeline on inline rows (no database).
"""
import pytest

from src.copilot import service
from src.copilot.service import DashboardResult, ask, build_dashboard, run_dataset
from src.copilot.spec import QuerySpec
from src.engine.aggregation import UnknownMetricError
from src.core.config import get_settings
from src.governance.validator import FALLBACK_ASSUMPTION


def _fact(order_date, year, quarter, month, region, state, revenue, units, cogs) -> dict:
    return {
        "order_date": order_date, "year": year, "quarter": quarter, "month": month,
        "region": region, "state": state, "channel": "Online",
        "product_category": "Phones", "product_name": "X",
        "revenue": revenue, "units": units, "cogs": cogs,
    }


FACTS = [
    _fact("2024-02-01", 2024, 1, 2, "Greater China", "CN-Shanghai", 100, 10, 60),
    _fact("2024-05-01", 2024, 2, 5, "Greater China", "CN-Beijing", 150, 15, 90),
    _fact("2023-01-10", 2023, 1, 1, "Japan", "JP", 50, 5, 20),
    _fact("2023-04-10", 2023, 2, 4, "Japan", "JP-Osaka", 80, 8, 40),
    _fact("2024-03-01", 2024, 1, 3, "Americas", "CA", 500, 50, 200),
]

SCENARIO = {
    "metric": "revenue",
    "grain": "quarter",
    "dimensions": ["region"],
    "filters": [{"field": "region", "op": "in", "value": ["asia"]}],
    "time_range": {"preset": "last_2_years"},
}


# ── Full scenario ───────────────────────────────────────

@pytest.fixture(scope="module")
def result() -> DashboardResult:
    return run_dataset(SCENARIO, rows=FACTS)


def test_scenario_rows(result):
    assert [(r["year"], r["quarter"], r["region"], r["value"]) for r in result.rows] == [
        (2023, 1, "Japan", 50.0),
        (2023, 2, "Japan", 80.0),
        (2024, 1, "Greater China", 100.0),
        (2024, 2, "Greater China", 150.0),
    ]


def test_scenario_normalized_filter(result):
    f = result.spec.filters[0]
    assert (f.field, f.op) == ("region", "in")
    assert f.value == ["Greater China", "Japan", "Rest of Asia Pacific"]
    assert not result.is_fallback


def test_scenario_checks(result):
    assert result.checks.outliers == []
    assert result.checks.continuity_ok
    assert result.checks.confidence == 1.0


def test_scenario_insights(result):
    headlines = [i.headline for i in result.insights]
    assert headlines == [
        "Up 200.0% over period",
        "+50.0% vs prior quarter",
        "Greater China leads (65.8%)",
    ]


def test_scenario_kpis(result):
    assert [(k.label, k.value) for k in result.kpis] == [("REVENUE", 380.0), ("QUARTER Latest", 150.0)]
    assert result.kpis[1].delta_pct == pytest.approx(50.0)


def test_scenario_profile_and_options(result):
    assert result.profile.periods == 4
    assert result.profile.series == 2
    assert [o.key for o in result.chart_options] == ["line", "stackedArea", "pie"]


def test_scenario_metadata(result):
    assert result.source_row_count == len(FACTS)
    assert result.provenance["source"] == "inline"
    assert "SUM(revenue) AS value" in result.sql
    payload = result.to_dict()
    assert payload["checks"]["confidence"] == 1.0
    assert payload["spec"]["time_range"]["preset"] == "last_2_years"
    assert payload["charts"][0]["series"] == "region"


# ── Geo dimensions ──────────────────────────────────────

def test_country_dimension_uses_derived_geo():
    out = run_dataset({"metric": "units", "grain": "year", "dimensions": ["country"]}, rows=FACTS)
    by_key = {(r["year"], r["country"]): r["value"] for r in out.rows}
    assert by_key[(2024, "CN")] == 25.0
    assert by_key[(2024, "US")] == 50.0
    assert by_key[(2023, "JP")] == 13.0


def test_market_filter_from_state_clause():
    spec = {"metric": "revenue", "grain": "year", "filters": [{"field": "state", "op": "eq", "value": "CA"}]}
    out = run_dataset(spec, rows=FACTS)
    assert out.rows == [{"year": 2024, "value": 500.0}]


# ── Fallback / dry-run / errors ─────────────────────────

def test_invalid_spec_replaced_by_fallback():
    out = run_dataset({"metric": "profit"}, question="units by region", rows=FACTS)
    assert out.is_fallback
    assert FALLBACK_ASSUMPTION in out.spec.assumptions
    assert out.spec.metric == "units"
    assert out.spec.dimensions == ["region"]


def test_dry_run_fetches_nothing(monkeypatch):
    def boom(**kwargs):
        raise AssertionError("database must not be touched")

    monkeypatch.setattr(service, "fetch_all_rows", boom)
    out = run_dataset(SCENARIO, execute=False)
    assert out.rows == []
    assert out.provenance["source"] == "dry-run"
    assert out.checks.confidence == 0.5
    assert out.insights == []


def test_execute_uses_row_source(monkeypatch):
    seen = {}

    def fake_fetch(from_date=None, to_date=None, columns=None):
        seen["from_date"] = from_date
        seen["columns"] = columns
        return FACTS

    monkeypatch.setattr(service, "fetch_all_rows", fake_fetch)
    out = run_dataset(SCENARIO)
    assert seen["from_date"] is not None
    assert "sales_rep" not in seen["columns"]
    assert out.provenance["source"] == "postgres"
    assert len(out.rows) == 4


def test_build_dashboard_unknown_metric_raises():
    with pytest.raises(UnknownMetricError):
        build_dashboard(QuerySpec(metric="profit"), FACTS)


def test_ask_mock_mode():
    out = ask("Units by region", rows=FACTS)
    assert out.spec.metric == "units"
    assert out.is_fallback
    assert {r["region"] for r in out.rows} == {"Greater China", "Japan", "Americas"}


def test_sales_rep_column_requested_when_grouped(monkeypatch):
    seen = {}

    def fake_fetch(from_date=None, to_date=None, columns=None):
        seen["columns"] = columns
        return [dict(r, sales_rep=rep) for r, rep in zip(FACTS, ["Ann", "Bob", "Ann", "Bob", "Ann"])]

    monkeypatch.setattr(service, "fetch_all_rows", fake_fetch)
    out = run_dataset({"metric": "units", "grain": "year", "dimensions": ["sales_rep"]})
    assert "sales_rep" in seen["columns"]
    assert {(r["year"], r["sales_rep"]): r["value"] for r in out.rows} == {
        (2023, "Ann"): 5.0,
        (2023, "Bob"): 8.0,
        (2024, "Ann"): 60.0,
        (2024, "Bob"): 15.0,
    }


def test_sales_rep_column_requested_when_filtered(monkeypatch):
    seen = {}

    def fake_fetch(from_date=None, to_date=None, columns=None):
        seen["columns"] = columns
        return []

    monkeypatch.setattr(service, "fetch_all_rows", fake_fetch)
    run_dataset({"metric": "units", "filters": [{"field": "sales_rep", "op": "eq", "value": "Ann"}]})
    assert "sales_rep" in seen["columns"]


# ── Fallback flag ───────────────────────────────────────

def test_own_assumptions_are_not_a_fallback():
    spec = dict(SCENARIO, assumptions=["Quarters are calendar quarters"])
    out = run_dataset(spec, rows=FACTS)
    assert out.spec.assumptions == ["Quarters are calendar quarters"]
    assert not out.is_fallback


def test_sql_follows_margin_policy(monkeypatch):
    monkeypatch.setattr(get_settings(), "margin_policy", "row_ratio_sum")
    out = run_dataset({"metric": "gross_margin_pct", "grain": "year"}, rows=FACTS)
    assert "CASE WHEN revenue > 0" in out.sql
    assert out.rows[0]["value"] == pytest.approx(0.6 + 0.5)
