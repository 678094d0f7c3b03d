"""FastAPI application — the sprint board's HTTP interface.

Endpoints:
  GET    /health                       — Store reachability
  GET    /metrics                      — Prometheus exposition
  GET    /api/workspaces               — List workspaces
  POST   /api/workspaces               — Create a workspace
  PATCH  /api/workspaces/{id}          — Change a workspace's sprint length
  GET    /api/sprints                  — List sprints with task counts
  POST   /api/sprints                  — Create a sprint
  GET    /api/sprints/{id}             — Sprint detail (closes, upserts spillovers, scores)
  PATCH  /api/sprints/{id}             — Update a sprint
  POST   /api/sprints/{id}/analyze     — Run the analysis service and store the insight
  GET    /api/sprints/{id}/insights    — Latest stored insight
  POST   /api/tasks                    — Create a task
  PATCH  /api/tasks/{id}               — Update a task
  DELETE /api/tasks/{id}               — Delete a task
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sprintboard import __version__, metrics
from sprintboard.analytics.detail import get_sprint_detail
from sprintboard.config import settings
from sprintboard.exceptions import (
    AnalysisUnavailable,
    InvalidFieldError,
    NotFoundError,
    SprintboardError,
)
from sprintboard.integrations.ollama_client import (
    AnalysisResult,
    OllamaClient,
    build_analysis_snapshot,
    get_analysis_provider,
)
from sprintboard.logging_config import setup_logging
from sprintboard.memory.sql_store import SqlSprintStore
from sprintboard.models.schemas import (
    Sprint,
    SprintCreate,
    SprintDetail,
    SprintInsight,
    SprintPatch,
    SprintSummary,
    Task,
    TaskCreate,
    TaskPatch,
    Workspace,
    WorkspaceCreate,
    WorkspacePatch,
)

logger = logging.getLogger("sprintboard")

# ── Shared Resources ──

sprint_store = SqlSprintStore()


def get_store() -> SqlSprintStore:
    return sprint_store


def get_analysis() -> OllamaClient | None:
    return get_analysis_provider()


# ── App Lifecycle ──


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables. Shutdown: dispose of the engine."""
    setup_logging()
    logger.info("=" * 60)
    logger.info("  Sprint board %s starting up...", __version__)
    logger.info("  Environment: %s", settings.environment)
    logger.info("  Analysis: %s", settings.ollama_base_url if settings.has_analysis else "disabled")
    logger.info("=" * 60)

    await sprint_store.init_db()
    yield

    logger.info("Sprint board shutting down...")
    await sprint_store.disconnect()


# ── FastAPI App ──

app = FastAPI(
    title="Sprint Board",
    description="Sprint timeline, spillover tracking and health scoring",
    version=__version__,
    lifespan=lifespan,
)
app.middleware("http")(metrics.track_http_metrics)


# ── Error mapping ──


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request", "detail": jsonable_encoder(exc.errors())})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(InvalidFieldError)
async def invalid_field_handler(request: Request, exc: InvalidFieldError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(AnalysisUnavailable)
async def analysis_unavailable_handler(request: Request, exc: AnalysisUnavailable) -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": str(exc)})


@app.exception_handler(SprintboardError)
async def sprintboard_error_handler(request: Request, exc: SprintboardError) -> JSONResponse:
    logger.error("Unhandled %s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


# ── Health & metrics ──


@app.get("/health")
async def health_check(store: SqlSprintStore = Depends(get_store)):
    """Check that the sprint store is reachable."""
    database_ok = await store.health_check()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "degraded",
            "version": __version__,
            "services": {
                "database": "ok" if database_ok else "unreachable",
                "analysis": "enabled" if settings.has_analysis else "disabled",
            },
        },
    )


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    return metrics.metrics_response()


# ── Workspaces ──


@app.get("/api/workspaces", response_model=list[Workspace])
async def list_workspaces(store: SqlSprintStore = Depends(get_store)):
    return await store.list_workspaces()


@app.post("/api/workspaces", response_model=Workspace, status_code=201)
async def create_workspace(body: WorkspaceCreate, store: SqlSprintStore = Depends(get_store)):
    return await store.create_workspace(body)


@app.patch("/api/workspaces/{workspace_id}", response_model=Workspace)
async def update_workspace(workspace_id: str, body: WorkspacePatch, store: SqlSprintStore = Depends(get_store)):
    return await store.update_workspace(workspace_id, body)


# ── Sprints ──


@app.get("/api/sprints", response_model=list[SprintSummary])
async def list_sprints(store: SqlSprintStore = Depends(get_store)):
    return await store.list_sprints()


@app.post("/api/sprints", response_model=Sprint, status_code=201)
async def create_sprint(body: SprintCreate, store: SqlSprintStore = Depends(get_store)):
    return await store.create_sprint(body)


@app.get("/api/sprints/{sprint_id}", response_model=SprintDetail)
async def get_sprint(sprint_id: str, store: SqlSprintStore = Depends(get_store)):
    return await get_sprint_detail(store, sprint_id)


@app.patch("/api/sprints/{sprint_id}", response_model=Sprint)
async def update_sprint(sprint_id: str, body: SprintPatch, store: SqlSprintStore = Depends(get_store)):
    return await store.update_sprint(sprint_id, body)


@app.post("/api/sprints/{sprint_id}/analyze")
async def analyze_sprint(
    sprint_id: str,
    store: SqlSprintStore = Depends(get_store),
    provider: OllamaClient | None = Depends(get_analysis),
):
    """Analyze a sprint with the configured provider and store the insight."""
    if provider is None:
        raise AnalysisUnavailable(
            "Analysis not configured. Set SPRINTBOARD_OLLAMA_ENABLED=true and run Ollama "
            f"with a model (e.g. ollama run {settings.ollama_model})."
        )
    detail = await get_sprint_detail(store, sprint_id)
    snapshot = build_analysis_snapshot(detail.sprint, detail.tasks, detail.spillovers, detail.health)
    result: AnalysisResult = await provider.analyze_sprint(snapshot)
    await store.save_insight(
        sprint_id,
        result.summary,
        result.spillover_classifications,
        provider=provider.name,
        model=provider.model,
    )
    return result.model_dump(by_alias=True)


@app.get("/api/sprints/{sprint_id}/insights", response_model=SprintInsight | None)
async def latest_insight(sprint_id: str, store: SqlSprintStore = Depends(get_store)):
    if await store.get_sprint(sprint_id) is None:
        raise NotFoundError("Sprint", sprint_id)
    return await store.latest_insight(sprint_id)


# ── Tasks ──


@app.post("/api/tasks", response_model=Task, status_code=201)
async def create_task(body: TaskCreate, store: SqlSprintStore = Depends(get_store)):
    return await store.create_task(body)


@app.patch("/api/tasks/{task_id}", response_model=Task)
async def update_task(task_id: str, body: TaskPatch, store: SqlSprintStore = Depends(get_store)):
    return await store.update_task(task_id, body)


@app.delete("/api/tasks/{task_id}", status_code=204)
async def delete_task(task_id: str, store: SqlSprintStore = Depends(get_store)) -> Response:
    await store.delete_task(task_id)
    return Response(status_code=204)
