"""POST /ask -- question -> QuerySpec; POST /ask/run -- question -> full result bundle."""
from __future__ import annotations

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from src.copilot.planner import plan
from src.copilot.service import ask as dashboard_ask
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=500, description="Natural-language business question")
    mode: str = Field("mock", description="mock | openai | anthropic")


class RunRequest(AskRequest):
    execute: bool = Field(True, description="If true, fetch fact rows from Postgres")


class AskResponse(BaseModel):
    spec: dict
    mode: str



@router.post("", response_model=AskResponse)
def ask_endpoint(req: AskRequest):
    """Oracle + validation only. Oracle failures resolve to the fallback spec."""
    spec = plan(req.question, mode=req.mode)
    return AskResponse(spec=spec.to_payload(), mode=req.mode)


@router.post("/run")
def run_endpoint(req: RunRequest) -> dict:
    """Full pipeline: question -> spec -> rows -> aggregate -> checks -> insights."""
    try:
        result = dashboard_ask(req.question, mode=req.mode, execute=req.execute)
    except Exception as exc:
        logger.exception("Dashboard.ask failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return result.to_dict()
