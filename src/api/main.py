"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import ask, catalog, dataset

app = FastAPI(
    title="Sales Insight Dashboard",
    version="0.1.0",
    description="Natural-language questions to aggregated sales charts, KPIs and insights",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ask.router, prefix="/ask", tags=["Planner"])
app.include_router(dataset.router, prefix="/dataset", tags=["Dataset"])
app.include_router(catalog.router, tags=["Catalog"])


@app.get("/health")
def health():
    return {"status": "ok"}
