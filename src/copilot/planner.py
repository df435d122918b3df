"""
Planner -- converts a natural-language question into a validated QuerySpec.

Two modes:
  mock               -> deterministic keyword rules served as oracle JSON
  openai / anthropic -> LLM-backed parsing via llm_client

The LLM is an untrusted oracle: its output is parsed leniently and run
through the validator, and any failure (timeout, network, bad JSON, enum
violation) resolves to the rule-based fallback spec.  ``plan`` never raises.
"""
from __future__ import annotations

import json
import re
from typing import Any

from src.copilot.spec import QuerySpec
from src.governance.validator import validate, fallback_spec
from src.semantics.semantic_loader import load_semantic_model, SemanticModel
from src.core.logging import get_logger

logger = get_logger(__name__)


# ── Prompt ──────────────────────────────────────────────

_LLM_SYSTEM_PROMPT = """\
You are an intent parser for a sales dashboard. Output ONLY valid JSON that \
matches the provided JSON Schema.

JSON Schema: {schema}

Mapping rules:
- "sales", "revenue", "gmv" => metric: revenue
- "units" => metric: units
- "margin" => metric: gross_margin_pct
- If time grain mentioned: year/quarter/month. Default quarter.
- If regions are mentioned, set dimensions:["region"] and add a filter with op:"in".
- Countries go on the "country" field, US states and cities on "market".
- Use time_range.preset:"last_2_years" unless explicit dates are provided.

No markdown, no explanation."""


def query_spec_schema(model: SemanticModel) -> dict[str, Any]:
    """JSON schema of QuerySpec, with enums taken from the semantic model."""
    fields = model.get_dimension_names() + model.time_fields
    return {
        "type": "object",
        "properties": {
            "metric": {"enum": model.get_metric_names()},
            "time_range": {
                "type": "object",
                "properties": {
                    "preset": {"enum": model.presets},
                    "from": {"type": "string"},
                    "to": {"type": "string"},
                },
                "additionalProperties": False,
            },
            "grain": {"enum": model.grains},
            "dimensions": {"type": "array", "items": {"enum": model.get_dimension_names()}},
            "filters": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "field": {"enum": fields},
                        "op": {"enum": model.filter_ops},
                        "value": {},
                    },
                    "required": ["field", "op", "value"],
                    "additionalProperties": False,
                },
            },
            "assumptions": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["metric", "grain", "dimensions", "filters", "time_range"],
    }


def build_system_prompt(model: SemanticModel) -> str:
    return _LLM_SYSTEM_PROMPT.format(schema=json.dumps(query_spec_schema(model)))


# ── Response parsing ────────────────────────────────────

def _parse_llm_response(text: str, question: str, model: SemanticModel) -> QuerySpec:
    """Parse the LLM's JSON response into a validated QuerySpec, with fallback."""
    text = (text or "").strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)

    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("LLM returned invalid JSON, falling back to rules: %s", exc)
        return fallback_spec(question)

    return validate(data, question, model)


def _plan_llm(question: str, provider: str, model: SemanticModel) -> QuerySpec:
    from src.copilot.llm_client import call_llm

    try:
        response = call_llm(question, provider=provider, system=build_system_prompt(model))
    except Exception as exc:
        logger.warning("LLM call failed (%s: %s), falling back to rules", type(exc).__name__, exc)
        return fallback_spec(question)
    return _parse_llm_response(response, question, model)


# ── Public API ───────────────────────────────────────────

def plan(question: str, mode: str = "mock") -> QuerySpec:
    """Parse *question* into a QuerySpec.

    Modes
    -----
    mock               -- keyword rules served by the mock provider (no API key)
    openai / anthropic -- LLM-backed parsing via llm_client

    Every mode goes through the same parse-and-validate path.
    """
    model = load_semantic_model()
    spec = _plan_llm(question, mode, model)

    logger.info("Planner[%s] -> %s", mode, spec.model_dump_json(indent=None))
    return spec
