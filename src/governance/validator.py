"""
Validates a candidate QuerySpec against the semantic model, and replaces
invalid specs wholesale with the deterministic rule-based fallback.

Checks performed:
  1. Metric exists in the semantic model
  2. Time grain is an allowed grain
  3. Every requested dimension exists
  4. Every filter operator (when given) is a known operator
  5. A time-range preset, when given, is a known preset

A spec that fails any check is never partially repaired.
"""
from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from src.copilot.spec import QuerySpec, TimeRange
from src.semantics.semantic_loader import load_semantic_model, SemanticModel
from src.core.logging import get_logger

logger = get_logger(__name__)

FALLBACK_ASSUMPTION = "Parsed with rule-based fallback"


def validate_spec(spec: dict[str, Any], model: SemanticModel | None = None) -> list[str]:
    """Return a list of validation error messages (empty list = spec is valid).

    Parameters
    ----------
    spec : dict
        A dict representation of a QuerySpec with keys:
        metric, grain, dimensions, filters, time_range
    model : SemanticModel, optional
        If None, loads the default semantic model from disk.
    """
    if model is None:
        model = load_semantic_model()

    errors: list[str] = []

    metric_name = spec.get("metric")
    if not metric_name:
        errors.append("No metric specified.")
        return errors
    if not isinstance(metric_name, str) or model.metric(metric_name) is None:
        errors.append(
            f"Unknown metric '{metric_name}'. "
            f"Allowed: {', '.join(model.get_metric_names())}"
        )
        return errors  # replaced wholesale, later checks are moot

    grain = spec.get("grain")
    if grain is not None and grain not in model.grains:
        errors.append(
            f"Invalid time grain '{grain}'. "
            f"Allowed grains: {', '.join(model.grains)}"
        )

    dims = spec.get("dimensions") or []
    if not isinstance(dims, list):
        errors.append("Dimensions must be a list.")
        dims = []
    for dim_name in dims:
        if not isinstance(dim_name, str) or model.dimension(dim_name) is None:
            errors.append(
                f"Unknown dimension '{dim_name}'. "
                f"Allowed: {', '.join(model.get_dimension_names())}"
            )

    filters = spec.get("filters") or []
    if not isinstance(filters, list):
        errors.append("Filters must be a list of {field, op, value} clauses.")
        filters = []
    for clause in filters:
        if not isinstance(clause, dict):
            errors.append(f"Filter clause must be an object, got {clause!r}")
            continue
        op = clause.get("op")
        if op is not None and op not in model.filter_ops:
            errors.append(
                f"Unknown filter operator '{op}' on field '{clause.get('field')}'. "
                f"Allowed: {', '.join(model.filter_ops)}"
            )

    time_range = spec.get("time_range") or {}
    if isinstance(time_range, str):
        preset: Any = time_range
    else:
        preset = time_range.get("preset") if isinstance(time_range, dict) else None
    if preset is not None and preset not in model.presets:
        errors.append(
            f"Unknown time-range preset '{preset}'. "
            f"Allowed: {', '.join(model.presets)}"
        )

    return errors


def fallback_spec(question: str) -> QuerySpec:
    """Deterministic keyword-rule spec built from the raw question text."""
    q = (question or "").lower()
    return QuerySpec(
        metric="units" if "unit" in q else "revenue",
        grain="year" if "year" in q else "quarter",
        dimensions=["region"] if "region" in q else [],
        filters=[],
        time_range=TimeRange(preset="last_2_years"),
        assumptions=[FALLBACK_ASSUMPTION],
    )


def validate(
    spec: QuerySpec | dict[str, Any] | None,
    question: str = "",
    model: SemanticModel | None = None,
) -> QuerySpec:
    """Return *spec* as a valid QuerySpec, or the fallback spec for *question*.

    Never raises: missing payloads, schema violations and enum violations
    all resolve to :func:`fallback_spec`.
    """
    if isinstance(spec, QuerySpec):
        payload: Any = spec.to_payload()
    else:
        payload = spec

    if not isinstance(payload, dict):
        logger.warning("Spec payload is not an object (%s) -- using fallback", type(payload).__name__)
        return fallback_spec(question)

    errors = validate_spec(payload, model)
    if errors:
        logger.warning("Spec failed validation -- using fallback: %s", "; ".join(errors))
        return fallback_spec(question)

    try:
        return QuerySpec.model_validate({k: v for k, v in payload.items() if v is not None})
    except ValidationError as exc:
        logger.warning("Spec failed schema parse -- using fallback: %s", exc.errors()[:3])
        return fallback_spec(question)
