from __future__ import annotations

from dataclasses import dataclass

from submission_workflow.domain.contracts import ActivityLog, ActorDirectory, SubmissionRepository
from submission_workflow.domain.errors import UnauthenticatedError
from submission_workflow.domain.guard import Actor, ScopeChecker
from submission_workflow.domain.registry import WorkflowRegistry
from submission_workflow.domain.use_cases.transition import TransitionExecutor


@dataclass(frozen=True)
class ApiDeps:
    registry: WorkflowRegistry
    executor: TransitionExecutor
    repository: SubmissionRepository
    activity_log: ActivityLog
    actors: ActorDirectory

    @property
    def scope_checker(self) -> ScopeChecker:
        return self.executor.scope_checker


def resolve_actor(*, actor_id: str | None, api_deps: ApiDeps) -> Actor:
    if not actor_id:
        raise UnauthenticatedError("X-Actor-Id header is required")
    actor = api_deps.actors.get_actor(actor_id=actor_id)
    if actor is None:
        raise UnauthenticatedError(f"unknown actor: {actor_id}")
    return actor
