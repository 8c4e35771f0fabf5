"""
PDTM Engine API

FastAPI application exposing:
- POST /events/navigation   → 202 (navigation lifecycle event)
- POST /events/opener       → 202 (tab opener relationship)
- DELETE /tabs/{tab_id}     → 202 (tab closed)
- POST /signals/dom         → 202 (page probe signals)
- POST /classify            → ActivityEstimation
- POST /risk/{domain}       → RiskRecord (recomputed)
- PUT /overrides/{domain}   → RiskRecord (after override)
- GET/PUT /settings         → EngineSettings
- POST /reset               → 204 (factory reset)

Every state-touching call runs through the single SerialWorkQueue.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, status, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from engine.config import EngineConfig
from engine.orchestrator import ActivityOrchestrator
from engine.schemas.inputs import (
    ClassifyRequest,
    DomSignalPayload,
    NavigationEvent,
    OpenerEvent,
    OverrideUpdate,
    SettingsUpdate,
)
from engine.schemas.outputs import ActivityEstimation, RiskRecord
from engine.work_queue import QueueNotRunningError, SerialWorkQueue
from storage.aggregate_store import (
    AggregateStore,
    InMemoryAggregateStore,
    RedisAggregateStore,
    StorageError,
)
from storage.audit_logger import AuditLogger
from storage.repository import AggregateRepository


load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    orchestrator: Optional[ActivityOrchestrator] = None
    queue: Optional[SerialWorkQueue] = None
    config: Optional[EngineConfig] = None


state = AppState()


def build_store(config: EngineConfig) -> AggregateStore:
    if config.store_backend == "redis":
        return RedisAggregateStore()
    return InMemoryAggregateStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting PDTM Engine API...")
    state.config = EngineConfig.from_env()
    repo = AggregateRepository(build_store(state.config))
    state.orchestrator = ActivityOrchestrator.from_config(state.config, repo, audit=AuditLogger())

    state.queue = SerialWorkQueue()
    await state.queue.start()
    await state.queue.submit(state.orchestrator.startup)
    logger.info(f"PDTM Engine ready (store={state.config.store_backend})")

    yield

    logger.info("Shutting down PDTM Engine API...")
    await state.queue.stop()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="PDTM Engine",
    description="Activity inference and attention scoring for browsing data",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage unavailable during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Aggregate storage unavailable"},
    )


def _enqueue(fn, *args) -> Response:
    try:
        state.queue.enqueue(fn, *args)
    except QueueNotRunningError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine is not accepting work"
        )
    return Response(status_code=status.HTTP_202_ACCEPTED)


async def _submit(fn, *args):
    try:
        return await state.queue.submit(fn, *args)
    except QueueNotRunningError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine is not accepting work"
        )


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    queue = state.queue
    return {
        "status": "healthy" if queue is not None and queue.running else "degraded",
        "version": API_VERSION,
        "store": state.config.store_backend if state.config else None,
        "processed": queue.processed if queue else 0,
        "failed": queue.failed if queue else 0,
    }


# =============================================================================
# Event Ingestion (HTTP 202)
# =============================================================================

@app.post("/events/navigation", status_code=status.HTTP_202_ACCEPTED)
async def ingest_navigation(event: NavigationEvent):
    """Queue a navigation lifecycle event."""
    return _enqueue(state.orchestrator.handle_navigation, event)


@app.post("/events/opener", status_code=status.HTTP_202_ACCEPTED)
async def ingest_opener(event: OpenerEvent):
    """Queue a tab opener relationship."""
    return _enqueue(state.orchestrator.handle_opener, event)


@app.delete("/tabs/{tab_id}", status_code=status.HTTP_202_ACCEPTED)
async def remove_tab(tab_id: int):
    """Queue a tab-close notification."""
    return _enqueue(state.orchestrator.handle_tab_removed, tab_id)


@app.post("/signals/dom", status_code=status.HTTP_202_ACCEPTED)
async def ingest_dom_signal(payload: DomSignalPayload):
    """Queue a page probe signal batch."""
    return _enqueue(state.orchestrator.handle_dom_signal, payload)


# =============================================================================
# Classification & Risk (JSON Response)
# =============================================================================

@app.post("/classify", response_model=ActivityEstimation)
async def classify(request: ClassifyRequest):
    """Classify a URL without recording it."""
    return await _submit(
        state.orchestrator.classify,
        request.url,
        request.signals,
        request.context,
    )


@app.post("/risk/{domain}", response_model=RiskRecord)
async def recompute_risk(domain: str):
    """Recompute and persist the risk record of a domain."""
    return await _submit(state.orchestrator.recompute_risk, domain)


# =============================================================================
# User Controls
# =============================================================================

@app.put("/overrides/{domain}", response_model=RiskRecord)
async def set_override(domain: str, patch: OverrideUpdate):
    """Apply a partial override and return the recomputed risk record."""
    return await _submit(state.orchestrator.set_override, domain, patch)


@app.get("/settings")
async def get_settings():
    settings = await _submit(state.orchestrator.get_settings)
    return settings.to_dict()


@app.put("/settings")
async def update_settings(patch: SettingsUpdate):
    settings = await _submit(state.orchestrator.update_settings, patch)
    return settings.to_dict()


@app.post("/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_all():
    """Factory reset of every aggregate and the session graph."""
    await _submit(state.orchestrator.reset_all)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
