from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import FastAPI, Header, HTTPException, Path, Query, Request
from fastapi.responses import JSONResponse

from submission_workflow.api.handlers.deps import ApiDeps, resolve_actor
from submission_workflow.api.handlers.jobs import get_job_status_handler, job_callback_handler
from submission_workflow.api.handlers.submissions import (
    create_submission_version_handler,
    get_submission_version_handler,
    list_activity_handler,
)
from submission_workflow.api.handlers.transitions import post_transition_handler
from submission_workflow.api.handlers.workflows import get_venue_workflow_handler
from submission_workflow.api.schemas import (
    JOB_ID_PATTERN,
    SUBMISSION_ID_PATTERN,
    SUBMISSION_VERSION_ID_PATTERN,
    ActivityListResponse,
    CreateSubmissionVersionRequest,
    ErrorResponse,
    HealthResponse,
    JobCallbackResponse,
    JobStatusResponse,
    ReadyResponse,
    SubmissionVersionResponse,
    TransitionRequest,
    TransitionResponse,
    WorkerMetrics,
    WorkflowResponse,
)
from submission_workflow.domain.error_taxonomy import http_status_for
from submission_workflow.domain.errors import DomainError
from submission_workflow.workers.loop import WorkerLoop
from submission_workflow.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)

ACTOR_HEADER = "X-Actor-Id"

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def build_app(
    role: str,
    run_id: str,
    worker_loop: WorkerLoop | None = None,
    worker_runtime_settings: WorkerRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    logger = logging.getLogger("runtime")
    worker_state: WorkerRuntimeState | None = None
    worker_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal worker_task, worker_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if worker_loop is not None:
            settings = worker_runtime_settings or worker_runtime_settings_from_env()
            worker_state = WorkerRuntimeState()
            stop_event = asyncio.Event()
            worker_task = asyncio.create_task(
                run_worker_until_stopped(
                    worker_loop=worker_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=worker_state,
                )
            )

        yield

        if stop_event is not None and worker_task is not None:
            stop_event.set()
            await worker_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="submission-workflow", version="0.1.0", lifespan=lifespan)
    mode = "skeleton" if api_deps is None else "engine"

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        status_code = http_status_for(exc.code)
        if status_code >= 500:
            logger.error(
                "request failed",
                exc_info=exc,
                extra={"role": role, "run_id": run_id, "status": exc.code},
            )
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(detail=str(exc), code=exc.code).model_dump(),
        )

    def require_deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role, mode=mode)

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        worker_loop_enabled = worker_loop is not None
        state = worker_state or WorkerRuntimeState()
        # Without a worker loop the process is ready as soon as it answers.
        worker_loop_ready = not worker_loop_enabled or (
            state.started and worker_task is not None and not worker_task.done()
        )
        metrics = WorkerMetrics(**asdict(state))

        return ReadyResponse(
            status="ready",
            role=role,
            mode=mode,
            workflows=sorted(api_deps.registry.workflows) if api_deps is not None else [],
            worker_loop_enabled=worker_loop_enabled,
            worker_loop_ready=worker_loop_ready,
            worker_metrics=metrics,
        )

    @app.get(
        "/venues/{venue}/workflow",
        response_model=WorkflowResponse,
        responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        tags=["Workflows"],
    )
    async def get_venue_workflow(venue: str) -> WorkflowResponse:
        return await get_venue_workflow_handler(venue=venue, api_deps=require_deps())

    @app.post(
        "/venues/{venue}/submissions",
        response_model=SubmissionVersionResponse,
        status_code=201,
        responses=_ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def create_submission_version(
        venue: str,
        request: CreateSubmissionVersionRequest,
        actor_id: str | None = Header(default=None, alias=ACTOR_HEADER),
    ) -> SubmissionVersionResponse:
        deps = require_deps()
        actor = resolve_actor(actor_id=actor_id, api_deps=deps)
        return await create_submission_version_handler(
            venue=venue,
            submission_id=request.submission_id,
            actor=actor,
            api_deps=deps,
        )

    @app.get(
        "/submission-versions/{submission_version_id}",
        response_model=SubmissionVersionResponse,
        responses=_ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def get_submission_version(
        submission_version_id: str = Path(pattern=SUBMISSION_VERSION_ID_PATTERN),
        actor_id: str | None = Header(default=None, alias=ACTOR_HEADER),
    ) -> SubmissionVersionResponse:
        deps = require_deps()
        actor = resolve_actor(actor_id=actor_id, api_deps=deps)
        return await get_submission_version_handler(
            submission_version_id=submission_version_id,
            actor=actor,
            api_deps=deps,
        )

    @app.get(
        "/submissions/{submission_id}/activity",
        response_model=ActivityListResponse,
        responses=_ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def list_activity(
        submission_id: str = Path(pattern=SUBMISSION_ID_PATTERN),
        limit: int = Query(default=50, ge=1, le=500),
        actor_id: str | None = Header(default=None, alias=ACTOR_HEADER),
    ) -> ActivityListResponse:
        deps = require_deps()
        resolve_actor(actor_id=actor_id, api_deps=deps)
        return await list_activity_handler(submission_id=submission_id, limit=limit, api_deps=deps)

    @app.post(
        "/transitions",
        response_model=TransitionResponse,
        responses=_ERROR_RESPONSES,
        tags=["Transitions"],
    )
    async def post_transition(
        request: TransitionRequest,
        actor_id: str | None = Header(default=None, alias=ACTOR_HEADER),
    ) -> TransitionResponse:
        deps = require_deps()
        actor = resolve_actor(actor_id=actor_id, api_deps=deps)
        return await post_transition_handler(
            submission_version_id=request.submission_version_id,
            target_status=request.target_status,
            date_override=request.date_override,
            expected_occ=request.occ,
            actor=actor,
            api_deps=deps,
        )

    @app.get(
        "/jobs/{job_id}",
        response_model=JobStatusResponse,
        responses=_ERROR_RESPONSES,
        tags=["Jobs"],
    )
    async def get_job_status(
        job_id: str = Path(pattern=JOB_ID_PATTERN),
        actor_id: str | None = Header(default=None, alias=ACTOR_HEADER),
    ) -> JobStatusResponse:
        deps = require_deps()
        resolve_actor(actor_id=actor_id, api_deps=deps)
        return await get_job_status_handler(job_id=job_id, api_deps=deps)

    @app.post(
        "/jobs/{job_id}/callback",
        response_model=JobCallbackResponse,
        responses=_ERROR_RESPONSES,
        tags=["Jobs"],
    )
    async def job_callback(job_id: str = Path(pattern=JOB_ID_PATTERN)) -> JobCallbackResponse:
        return await job_callback_handler(job_id=job_id, api_deps=require_deps())

    return app
