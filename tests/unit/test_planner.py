"""
Unit tests -- planner: rule mode, and LLM mode with a stubbed oracle.
"""
import json

import pytest

from src.copilot import llm_client
from src.copilot.planner import plan, build_system_prompt, query_spec_schema, _parse_llm_response
from src.copilot.spec import QuerySpec
from src.governance.validator import FALLBACK_ASSUMPTION
from src.semantics.semantic_loader import load_semantic_model


@pytest.fixture(scope="module")
def model():
    return load_semantic_model()


def _stub_llm(monkeypatch, response=None, exc=None):
    calls = []

    def fake(prompt, provider=None, system="", timeout=None):
        calls.append({"prompt": prompt, "provider": provider, "system": system})
        if exc is not None:
            raise exc
        return response

    monkeypatch.setattr(llm_client, "call_llm", fake)
    return calls


_GOOD = {
    "metric": "gross_margin_pct",
    "grain": "month",
    "dimensions": ["country"],
    "filters": [{"field": "region", "op": "eq", "value": "US"}],
    "time_range": {"preset": "last_2_years"},
}


# ── Rule mode ───────────────────────────────────────────

def test_mock_mode_uses_rules():
    spec = plan("Units by region per year")
    assert spec.metric == "units"
    assert spec.grain == "year"
    assert spec.dimensions == ["region"]
    assert FALLBACK_ASSUMPTION in spec.assumptions


def test_returns_query_spec():
    assert isinstance(plan("anything"), QuerySpec)


def test_mock_mode_goes_through_provider(monkeypatch):
    calls = _stub_llm(monkeypatch, json.dumps(_GOOD))
    spec = plan("margin by country monthly", mode="mock")
    assert calls[0]["provider"] == "mock"
    assert spec.metric == "gross_margin_pct"


# ── LLM mode ────────────────────────────────────────────

def test_llm_valid_json(monkeypatch):
    calls = _stub_llm(monkeypatch, json.dumps(_GOOD))
    spec = plan("margin by country monthly", mode="openai")
    assert spec.metric == "gross_margin_pct"
    assert spec.grain == "month"
    assert spec.dimensions == ["country"]
    assert spec.assumptions == []
    assert calls[0]["provider"] == "openai"
    assert calls[0]["prompt"] == "margin by country monthly"
    assert "JSON Schema" in calls[0]["system"]


def test_llm_fenced_json(monkeypatch):
    _stub_llm(monkeypatch, "```json\n" + json.dumps(_GOOD) + "\n```")
    spec = plan("margin", mode="anthropic")
    assert spec.metric == "gross_margin_pct"


def test_llm_invalid_json_falls_back(monkeypatch):
    _stub_llm(monkeypatch, "Sure! Here is your chart.")
    spec = plan("units by region", mode="openai")
    assert spec.metric == "units"
    assert FALLBACK_ASSUMPTION in spec.assumptions


def test_llm_non_object_json_falls_back(monkeypatch):
    _stub_llm(monkeypatch, "[1, 2, 3]")
    spec = plan("revenue", mode="openai")
    assert FALLBACK_ASSUMPTION in spec.assumptions


def test_llm_enum_violation_falls_back(monkeypatch):
    _stub_llm(monkeypatch, json.dumps({**_GOOD, "metric": "profit"}))
    spec = plan("yearly revenue", mode="openai")
    assert spec.metric == "revenue"
    assert spec.grain == "year"
    assert FALLBACK_ASSUMPTION in spec.assumptions


def test_llm_timeout_falls_back(monkeypatch):
    _stub_llm(monkeypatch, exc=TimeoutError("oracle timed out"))
    spec = plan("units", mode="openai")
    assert spec.metric == "units"
    assert FALLBACK_ASSUMPTION in spec.assumptions


def test_llm_network_error_falls_back(monkeypatch):
    _stub_llm(monkeypatch, exc=ConnectionError("reset by peer"))
    spec = plan("revenue by region", mode="anthropic")
    assert spec.dimensions == ["region"]


def test_unknown_provider_falls_back():
    spec = plan("units", mode="banana")
    assert spec.metric == "units"
    assert FALLBACK_ASSUMPTION in spec.assumptions


# ── Prompt & parsing helpers ────────────────────────────

def test_schema_enums_come_from_model(model):
    schema = query_spec_schema(model)
    props = schema["properties"]
    assert props["metric"]["enum"] == ["revenue", "units", "gross_margin_pct"]
    assert props["grain"]["enum"] == ["month", "quarter", "year"]
    assert "market" in props["dimensions"]["items"]["enum"]
    assert "year" in props["filters"]["items"]["properties"]["field"]["enum"]


def test_system_prompt_embeds_schema(model):
    prompt = build_system_prompt(model)
    assert "gross_margin_pct" in prompt
    assert "last_2_years" in prompt


def test_parse_empty_response(model):
    spec = _parse_llm_response("", "units", model)
    assert spec.metric == "units"
    assert FALLBACK_ASSUMPTION in spec.assumptions
