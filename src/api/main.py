"""
FastAPI application entry-point.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import assistant, catalog, filters, relationships, widgets
from src.modeling.model_loader import bootstrap_graph


@asynccontextmanager
async def lifespan(app: FastAPI):
    bootstrap_graph()
    yield


app = FastAPI(
    title="Widget Query Engine",
    version="0.1.0",
    description="Compiles dashboard widget configurations into SQL and renderer-ready charts",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog.router, prefix="/catalog", tags=["Catalog"])
app.include_router(relationships.router, prefix="/relationships", tags=["Relationships"])
app.include_router(widgets.router, prefix="/widgets", tags=["Widgets"])
app.include_router(filters.router, prefix="/filters", tags=["Filters"])
app.include_router(assistant.router, prefix="/assistant", tags=["Assistant"])


@app.get("/health")
def health():
    return {"status": "ok"}
