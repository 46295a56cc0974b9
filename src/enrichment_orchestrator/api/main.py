"""FastAPI app entrypoint for enrichment-orchestrator."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from enrichment_orchestrator.cache.models import CacheStats
from enrichment_orchestrator.config.settings import Settings, get_settings
from enrichment_orchestrator.errors import RollbackError
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.postgres import PostgresRecordStore
from enrichment_orchestrator.workflows.deps import (
    WorkflowDependencies,
    build_backend,
    build_dependencies,
)
from enrichment_orchestrator.workflows.models import CostEstimate, ValidationResult, WorkflowRun
from enrichment_orchestrator.workflows.registry import (
    UnknownWorkflowError,
    build_workflow,
    list_workflows,
)

logger = logging.getLogger(__name__)


class RunWorkflowRequest(BaseModel):
    input: dict[str, Any] = Field(default_factory=dict)
    dry_run: bool | None = None


class EstimateResponse(BaseModel):
    validation: ValidationResult
    estimate: CostEstimate | None = None
    ceiling_usd: float


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    store_override: RecordStore | None,
    deps_override: WorkflowDependencies | None,
) -> None:
    if not hasattr(app.state, "store"):
        if deps_override is not None:
            app.state.store = deps_override.store
        else:
            database_url = settings.resolved_database_url()
            if store_override is None and not database_url:
                raise RuntimeError(
                    "Missing database URL. Set ENRICHMENT_DATABASE_URL "
                    "or DATABASE_URL before starting the app."
                )
            app.state.store = store_override or PostgresRecordStore(database_url)
        app.state.store.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if deps_override is not None and not hasattr(app.state, "deps"):
        app.state.deps = deps_override


def create_app(
    *,
    store: RecordStore | None = None,
    settings_override: Settings | None = None,
    deps: WorkflowDependencies | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    has_override = store is not None or deps is not None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app, settings=settings, store_override=store, deps_override=deps
        )
        yield

    app = FastAPI(title=settings.app_name, lifespan=None if has_override else lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if has_override:
        _ensure_runtime_state(app, settings=settings, store_override=store, deps_override=deps)

    def _get_dependencies(request: Request) -> WorkflowDependencies:
        state = request.app.state
        if not hasattr(state, "store"):
            _ensure_runtime_state(
                request.app, settings=settings, store_override=store, deps_override=deps
            )
        if not hasattr(state, "deps"):
            state.deps = build_dependencies(
                store=state.store,
                backend=build_backend(settings),
                adjudication_backend=build_backend(settings, model=settings.adjudication_model),
                settings=settings,
            )
        return state.deps

    def _get_workflow(name: str, request: Request):
        try:
            return build_workflow(name, _get_dependencies(request))
        except UnknownWorkflowError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown workflow: {name}") from exc

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/workflows")
    def workflows() -> dict[str, list[dict[str, Any]]]:
        return {"workflows": list_workflows()}

    @app.post("/workflows/{name}/estimate", response_model=EstimateResponse)
    def estimate_workflow(
        name: str, payload: RunWorkflowRequest, request: Request
    ) -> EstimateResponse:
        workflow = _get_workflow(name, request)
        validation = workflow.validate(payload.input)
        estimate = workflow.estimate_cost(payload.input) if validation.valid else None
        return EstimateResponse(
            validation=validation, estimate=estimate, ceiling_usd=workflow.ceiling_usd
        )

    @app.post("/workflows/{name}/run", response_model=WorkflowRun)
    def run_workflow(name: str, payload: RunWorkflowRequest, request: Request) -> WorkflowRun:
        workflow = _get_workflow(name, request)
        validation = workflow.validate(payload.input)
        if not validation.valid:
            raise HTTPException(status_code=422, detail=validation.errors)

        try:
            return workflow.run(payload.input, dry_run=payload.dry_run)
        except RollbackError as exc:
            logger.error("workflow_api event=rollback_failed workflow=%s error=%s", name, exc)
            run = exc.run.model_dump(mode="json") if exc.run is not None else None
            raise HTTPException(
                status_code=500, detail={"error": str(exc), "run": run}
            ) from exc

    @app.get("/usage")
    def usage(request: Request) -> dict[str, Any]:
        deps_ = _get_dependencies(request)
        try:
            cost_usd: float | None = deps_.tracker.estimate_cost(deps_.rate_table)
        except KeyError:
            cost_usd = None
        return {
            "total": deps_.tracker.get_total_usage().model_dump(),
            "by_model": {
                model: item.model_dump() for model, item in deps_.tracker.usage_by_model().items()
            },
            "calls": deps_.tracker.call_count,
            "cost_usd": cost_usd,
        }

    @app.post("/usage/reset")
    def reset_usage(request: Request) -> dict[str, str]:
        _get_dependencies(request).tracker.reset()
        return {"status": "reset"}

    @app.get("/cache/stats", response_model=CacheStats)
    def cache_stats(request: Request) -> CacheStats:
        return _get_dependencies(request).cache.stats()

    return app


app = create_app()
