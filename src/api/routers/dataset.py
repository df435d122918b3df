"""POST /dataset -- already-planned spec -> full result bundle."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from src.copilot.service import run_dataset
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class DatasetRequest(BaseModel):
    spec: dict[str, Any] = Field(..., description="QuerySpec payload, e.g. from POST /ask")
    question: str = Field("", description="Question text, used to build the fallback spec")
    execute: bool = Field(True, description="If false, nothing is fetched (dry-run)")


@router.post("")
def dataset_endpoint(req: DatasetRequest) -> dict:
    try:
        result = run_dataset(req.spec, question=req.question, execute=req.execute)
    except Exception as exc:
        logger.exception("Dataset build failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return result.to_dict()
