from __future__ import annotations

from fastapi import FastAPI

from submission_workflow.api.http_app import build_app
from submission_workflow.clients.stub import InMemoryActorDirectory, InMemoryJobRunner
from submission_workflow.config import RuntimeSettings
from submission_workflow.domain.guard import (
    SUBMISSIONS_PUBLISHING_SCOPE,
    SUBMISSIONS_UPDATE_SCOPE,
    SYSTEM_ADMIN_SCOPE,
    Actor,
)
from submission_workflow.roles import validate_role
from submission_workflow.services.bootstrap import RuntimeContainer, build_runtime_container
from submission_workflow.workers.runner import WorkerRuntimeSettings

VENUE = "journal-a"
EDITOR_ID = "editor-1"
REVIEWER_ID = "reviewer-1"
ADMIN_ID = "admin-1"


def build_test_runtime(
    role: str = "api",
    worker_runtime_settings: WorkerRuntimeSettings | None = None,
) -> tuple[FastAPI, RuntimeContainer]:
    runtime_role = validate_role(role)
    container = build_runtime_container(
        runtime_role,
        RuntimeSettings(venue_workflows={VENUE: "SIMPLE", "journal-open": "OPEN_REVIEW"}),
    )
    actors = container.actors
    assert isinstance(actors, InMemoryActorDirectory)
    actors.add(
        Actor(
            actor_id=EDITOR_ID,
            venue_scopes={VENUE: frozenset({SUBMISSIONS_UPDATE_SCOPE, SUBMISSIONS_PUBLISHING_SCOPE})},
        )
    )
    actors.add(Actor(actor_id=REVIEWER_ID, venue_scopes={VENUE: frozenset({SUBMISSIONS_UPDATE_SCOPE})}))
    actors.add(Actor(actor_id=ADMIN_ID, system_scopes=frozenset({SYSTEM_ADMIN_SCOPE})))

    app = build_app(
        role=runtime_role.name,
        run_id=f"integration-{role}",
        worker_loop=container.worker_loop,
        worker_runtime_settings=worker_runtime_settings,
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
    )
    return app, container


def in_memory_job_runner(container: RuntimeContainer) -> InMemoryJobRunner:
    job_runner = container.job_runner
    assert isinstance(job_runner, InMemoryJobRunner)
    return job_runner


def actor_headers(actor_id: str) -> dict[str, str]:
    return {"X-Actor-Id": actor_id}
