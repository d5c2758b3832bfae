from __future__ import annotations

import copy
from typing import Any

from submission_workflow.clients.stub import InMemoryJobRunner, RecordingNotifier
from submission_workflow.domain.guard import SUBMISSIONS_PUBLISHING_SCOPE, SUBMISSIONS_UPDATE_SCOPE, SYSTEM_ADMIN_SCOPE, Actor
from submission_workflow.domain.registry import WorkflowRegistry
from submission_workflow.domain.use_cases.transition import TransitionExecutor
from submission_workflow.domain.workflow import Workflow
from submission_workflow.domain.workflow_loader import parse_workflow
from submission_workflow.repositories.stub import InMemorySubmissionRepository

VENUE = "journal-a"


def _state(name: str, *, published: bool = False, visible: bool = False) -> dict[str, Any]:
    return {
        "name": name,
        "label": name.replace("_", " ").title(),
        "author_only": False,
        "inbox": False,
        "visible": visible,
        "published": published,
        "tags": [],
    }


def _transition(
    name: str,
    source: str | None,
    target: str,
    *,
    requires_job: bool = False,
    scopes: list[str] | None = None,
    user_triggered: bool = True,
) -> dict[str, Any]:
    return {
        "name": name,
        "source_state_name": source,
        "target_state_name": target,
        "labels": {"action": name.title(), "button": name.title()},
        "user_triggered": user_triggered,
        "requires_job": requires_job,
        "help": f"{name} the submission",
        "required_scopes": list(scopes if scopes is not None else [SUBMISSIONS_UPDATE_SCOPE]),
    }


_REVIEW_WORKFLOW: dict[str, Any] = {
    "name": "SIMPLE",
    "label": "Simple review",
    "initial_state": "DRAFT",
    "states": {
        "DRAFT": _state("DRAFT"),
        "IN_REVIEW": _state("IN_REVIEW"),
        "PUBLISHED": _state("PUBLISHED", published=True, visible=True),
        "WITHDRAWN": _state("WITHDRAWN"),
    },
    "transitions": [
        _transition("submit", "DRAFT", "IN_REVIEW"),
        _transition(
            "publish",
            "IN_REVIEW",
            "PUBLISHED",
            requires_job=True,
            scopes=[SUBMISSIONS_UPDATE_SCOPE, SUBMISSIONS_PUBLISHING_SCOPE],
        ),
        _transition("withdraw", None, "WITHDRAWN", scopes=[]),
        _transition("return_to_draft", "IN_REVIEW", "DRAFT", user_triggered=False),
    ],
}


def review_workflow_data() -> dict[str, Any]:
    """DRAFT -> IN_REVIEW (sync) -> PUBLISHED (job-linked), plus an any-state withdraw."""
    return copy.deepcopy(_REVIEW_WORKFLOW)


def review_workflow() -> Workflow:
    return parse_workflow(review_workflow_data())


def editor(venue: str = VENUE) -> Actor:
    return Actor(
        actor_id="editor-1",
        venue_scopes={venue: frozenset({SUBMISSIONS_UPDATE_SCOPE, SUBMISSIONS_PUBLISHING_SCOPE})},
    )


def reviewer(venue: str = VENUE) -> Actor:
    return Actor(actor_id="reviewer-1", venue_scopes={venue: frozenset({SUBMISSIONS_UPDATE_SCOPE})})


def admin() -> Actor:
    return Actor(actor_id="admin-1", system_scopes=frozenset({SYSTEM_ADMIN_SCOPE}))


def build_executor(
    workflow: Workflow | None = None,
    *,
    fail_on_create: bool = False,
    notifier_fails: bool = False,
) -> tuple[TransitionExecutor, InMemorySubmissionRepository, InMemoryJobRunner, RecordingNotifier]:
    workflow = workflow or review_workflow()
    repository = InMemorySubmissionRepository()
    job_runner = InMemoryJobRunner(fail_on_create=fail_on_create)
    notifier = RecordingNotifier(fail=notifier_fails)
    executor = TransitionExecutor(
        registry=WorkflowRegistry(workflows={workflow.name: workflow}, default_workflow=workflow.name),
        repository=repository,
        job_runner=job_runner,
        notifier=notifier,
    )
    return executor, repository, job_runner, notifier
