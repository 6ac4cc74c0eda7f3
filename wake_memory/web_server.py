#!/usr/bin/env python3
"""
Wake Memory Web Server
Copyright 2025 Jurden Bruce

FastAPI server exposing the context operations over HTTP on localhost,
for clients that cannot speak MCP.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import load_config
from .context_service import ContextService
from .errors import SnapshotNotFoundError, SnapshotValidationError, StoreError
from .mcp_tools import get_tool_definitions
from .models import ActionType
from .propagation import HIGH_VALUE_THRESHOLD
from .storage.sqlite_store import SQLiteStore

logger = logging.getLogger("wake-memory.web")

_service: Optional[ContextService] = None


def get_context_service() -> ContextService:
    """
    Dependency returning the process-wide ContextService, created on first use.

    Usage in endpoints:
        @app.get("/endpoint")
        async def handler(service: ContextService = Depends(get_context_service)):
            ...
    """
    global _service
    if _service is None:
        config = load_config()
        _service = ContextService(SQLiteStore(config.db_path), config=config)
        logger.info(f"ContextService ready at {config.db_path}")
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _service
    yield
    if _service is not None:
        await _service.shutdown()
        _service = None


# Initialize FastAPI
app = FastAPI(
    title="Wake Memory API",
    description="HTTP interface for causal context memory",
    version=__version__,
    lifespan=lifespan,
)

# Enable CORS for localhost access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SnapshotNotFoundError)
async def not_found_handler(request: Request, exc: SnapshotNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "snapshot_id": exc.snapshot_id})


@app.exception_handler(SnapshotValidationError)
async def validation_handler(request: Request, exc: SnapshotValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc), "operation": exc.operation})


# Pydantic models for request/response
class SaveContextRequest(BaseModel):
    project: str = Field(..., description="Project identifier")
    content: str = Field(..., description="Context content to save")
    source: Optional[str] = Field(default=None, description="Source of the context")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Optional metadata")
    action_type: ActionType = Field(default=ActionType.CONVERSATION, description="Kind of action")
    rationale: Optional[str] = Field(default=None, description="Why this context is being saved")
    caused_by: Optional[str] = Field(default=None, description="ID of the snapshot that caused this one")


class PruneRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=0, description="Maximum contexts to delete")


class RecalculateRequest(BaseModel):
    project: Optional[str] = Field(default=None, description="Project to recalculate, all if omitted")


class UpdatePredictionsRequest(BaseModel):
    project: str = Field(..., description="Project identifier")
    stale_threshold: Optional[float] = Field(default=None, ge=0.0, description="Hours before a prediction is stale")


def _snapshots(service: ContextService, snapshots) -> List[Dict[str, Any]]:
    now = service.clock()
    return [s.to_api_dict(now) for s in snapshots]


@app.post("/api/contexts")
async def save_context(request: SaveContextRequest, service: ContextService = Depends(get_context_service)):
    """Save a new context snapshot."""
    snapshot = await service.save_context(
        project=request.project,
        content=request.content,
        source=request.source,
        metadata=request.metadata,
        action_type=request.action_type.value,
        rationale=request.rationale,
        caused_by=request.caused_by,
    )
    return {"success": True, "snapshot_id": snapshot.id, "snapshot": snapshot.to_api_dict(service.clock())}


@app.get("/api/contexts")
async def load_context(
    project: str = Query(..., description="Project identifier"),
    limit: int = Query(1, ge=1, le=10),
    include_predicted: bool = Query(False),
    service: ContextService = Depends(get_context_service),
):
    """Load the newest contexts of a project."""
    snapshots = await service.load_context(project, limit)
    response = {"project": project, "count": len(snapshots), "contexts": _snapshots(service, snapshots)}
    if include_predicted:
        predicted = await service.prefetch_high_value(project, exclude=[s.id for s in snapshots])
        response["predicted"] = _snapshots(service, predicted)
    return response


@app.get("/api/contexts/search")
async def search_context(
    query: str = Query(..., min_length=1, description="Search query"),
    project: Optional[str] = None,
    service: ContextService = Depends(get_context_service),
):
    """Keyword search over summaries and tags."""
    snapshots = await service.search_context(query, project)
    return {"query": query, "count": len(snapshots), "results": _snapshots(service, snapshots)}


@app.get("/api/contexts/high-value")
async def get_high_value_contexts(
    project: str = Query(..., description="Project identifier"),
    min_score: float = Query(HIGH_VALUE_THRESHOLD, ge=0.0, le=1.0),
    limit: int = Query(5, ge=1, le=100),
    service: ContextService = Depends(get_context_service),
):
    """Contexts most likely to be needed next."""
    snapshots = await service.get_high_value_contexts(project, min_score, limit)
    return {"project": project, "min_score": min_score, "count": len(snapshots), "contexts": _snapshots(service, snapshots)}


@app.get("/api/contexts/{snapshot_id}")
async def get_context(snapshot_id: str, service: ContextService = Depends(get_context_service)):
    snapshot = await service.get_snapshot(snapshot_id)
    return snapshot.to_api_dict(service.clock())


@app.get("/api/contexts/{snapshot_id}/reasoning")
async def reconstruct_reasoning(snapshot_id: str, service: ContextService = Depends(get_context_service)):
    """Explain why a context was created."""
    reasoning = await service.reconstruct_reasoning(snapshot_id)
    return {"snapshot_id": snapshot_id, "reasoning": reasoning}


@app.get("/api/contexts/{snapshot_id}/chain")
async def build_causal_chain(snapshot_id: str, service: ContextService = Depends(get_context_service)):
    """Causal chain from the root cause to this context."""
    chain = await service.build_causal_chain(snapshot_id)
    response = chain.to_dict()
    response["valid"] = chain.terminated and chain.timestamps_ordered()
    return response


@app.get("/api/stats/causality")
async def get_causality_stats(project: str = Query(...), service: ContextService = Depends(get_context_service)):
    return await service.get_causality_stats(project)


@app.get("/api/stats/memory")
async def get_memory_stats(project: str = Query(...), service: ContextService = Depends(get_context_service)):
    stats = await service.get_memory_stats(project)
    return {"project": project, **stats}


@app.get("/api/stats/propagation")
async def get_propagation_stats(project: str = Query(...), service: ContextService = Depends(get_context_service)):
    return await service.get_propagation_stats(project)


@app.get("/api/stats/graph")
async def audit_causal_graph(project: str = Query(...), service: ContextService = Depends(get_context_service)):
    """Graph-wide causal audit: links, roots, components and cycles."""
    return await service.audit_causal_graph(project)


@app.post("/api/maintenance/recalculate")
async def recalculate_memory_tiers(request: RecalculateRequest, service: ContextService = Depends(get_context_service)):
    updated = await service.recalculate_memory_tiers(request.project)
    return {"updated": updated, "project": request.project}


@app.post("/api/maintenance/prune")
async def prune_expired_contexts(request: PruneRequest, service: ContextService = Depends(get_context_service)):
    deleted = await service.prune_expired_contexts(request.limit)
    return {"deleted": deleted}


@app.post("/api/maintenance/predictions")
async def update_predictions(request: UpdatePredictionsRequest, service: ContextService = Depends(get_context_service)):
    updated = await service.update_predictions(request.project, request.stale_threshold)
    return {"project": request.project, "updated": updated}


@app.get("/tools/list")
async def list_tools():
    """List all available tools with their schemas."""
    return {
        "tools": [
            {"name": tool.name, "description": tool.description, "parameters": tool.inputSchema}
            for tool in get_tool_definitions()
        ]
    }


def run():
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
    )
    logger.info(f"Wake Memory Web Server on http://{config.http_host}:{config.http_port} (docs at /docs)")
    uvicorn.run(app, host=config.http_host, port=config.http_port, log_level=config.log_level.lower())


if __name__ == "__main__":
    run()
