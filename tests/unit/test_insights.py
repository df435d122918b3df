"""
Unit tests -- insight cards and KPI strip.
"""
import pytest

from src.copilot.spec import QuerySpec
from src.engine.insights import build_insights, fmt_number, latest_vs_previous
from src.engine.kpis import build_kpis


ROWS = [
    {"year": 2023, "quarter": 1, "region": "Japan", "value": 50.0},
    {"year": 2023, "quarter": 2, "region": "Japan", "value": 80.0},
    {"year": 2024, "quarter": 1, "region": "Greater China", "value": 100.0},
    {"year": 2024, "quarter": 2, "region": "Greater China", "value": 150.0},
]

SPEC = QuerySpec(metric="revenue", grain="quarter", dimensions=["region"])


# ── Insights ────────────────────────────────────────────

def test_three_cards_in_order():
    cards = build_insights(ROWS, SPEC)
    assert [c.type for c in cards] == ["trend", "momentum", "top"]


def test_trend_card():
    trend = build_insights(ROWS, SPEC)[0]
    assert trend.headline == "Up 200.0% over period"
    assert trend.details == "From 50 to 150"


def test_momentum_card():
    momentum = build_insights(ROWS, SPEC)[1]
    assert momentum.headline == "+50.0% vs prior quarter"
    assert momentum.details == "150 vs 100"


def test_top_contributor_card():
    top = build_insights(ROWS, SPEC)[2]
    assert top.headline == "Greater China leads (65.8%)"
    assert top.details == "250 of 380"


def test_downward_trend():
    rows = [{"year": 2023, "value": 200.0}, {"year": 2024, "value": 150.0}]
    cards = build_insights(rows, QuerySpec(metric="revenue", grain="year"))
    assert cards[0].headline == "Down 25.0% over period"
    assert cards[1].headline == "-25.0% vs prior year"
    assert len(cards) == 2


def test_momentum_na_when_single_period():
    rows = [{"year": 2024, "quarter": 1, "value": 10.0}]
    cards = build_insights(rows, QuerySpec(metric="units"))
    assert cards[1].headline == "n/a vs prior quarter"


def test_no_rows_no_cards():
    assert build_insights([], SPEC) == []


def test_top_card_skipped_when_dimension_empty():
    rows = [{"year": 2024, "quarter": 1, "market": "", "value": 1.0}]
    cards = build_insights(rows, QuerySpec(metric="units", dimensions=["market"]))
    assert [c.type for c in cards] == ["trend", "momentum"]


def test_latest_vs_previous_sums_across_dimensions():
    rows = [
        {"year": 2024, "quarter": 1, "region": "A", "value": 10.0},
        {"year": 2024, "quarter": 1, "region": "B", "value": 30.0},
        {"year": 2024, "quarter": 2, "region": "A", "value": 60.0},
    ]
    latest, prev, delta = latest_vs_previous(rows, "quarter")
    assert (latest, prev) == (60.0, 40.0)
    assert delta == pytest.approx(50.0)


def test_fmt_number():
    assert fmt_number(1234.0) == "1,234"
    assert fmt_number(0.5) == "0.50"
    assert fmt_number(1500.5) == "1,500.50"


# ── KPIs ────────────────────────────────────────────────

def test_kpis():
    total, latest = build_kpis(ROWS, SPEC)
    assert total.label == "REVENUE"
    assert total.value == 380.0
    assert latest.label == "QUARTER Latest"
    assert latest.value == 150.0
    assert latest.delta_pct == pytest.approx(50.0)


def test_kpis_empty():
    total, latest = build_kpis([], SPEC)
    assert total.value == 0
    assert latest.value == 0
    assert latest.delta_pct is None
