"""
GET /metrics, GET /dimensions, GET /catalog -- metadata endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from src.semantics.semantic_loader import load_semantic_model

router = APIRouter()



class MetricItem(BaseModel):
    name: str
    description: str
    fmt: str


class DimensionItem(BaseModel):
    name: str
    column: str
    derived: bool


class CatalogResponse(BaseModel):
    metrics: list[MetricItem]
    dimensions: list[DimensionItem]
    grains: list[str]
    presets: list[str]
    filter_ops: list[str]



@router.get("/metrics")
def list_metrics() -> dict:
    model = load_semantic_model()
    return {"metrics": model.get_metric_names()}


@router.get("/dimensions")
def list_dimensions() -> dict:
    model = load_semantic_model()
    return {"dimensions": model.get_dimension_names()}


@router.get("/catalog", response_model=CatalogResponse)
def full_catalog() -> CatalogResponse:
    """Return the complete semantic-layer catalog for the UI sidebar."""
    model = load_semantic_model()
    return CatalogResponse(
        metrics=[MetricItem(**m) for m in model.get_metrics_list()],
        dimensions=[DimensionItem(**d) for d in model.get_dimensions_list()],
        grains=model.grains,
        presets=model.presets,
        filter_ops=model.filter_ops,
    )
