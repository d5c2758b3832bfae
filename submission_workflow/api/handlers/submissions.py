from __future__ import annotations

from submission_workflow.api.handlers.deps import ApiDeps
from submission_workflow.api.handlers.workflows import labels_response
from submission_workflow.api.schemas import (
    ActivityListResponse,
    ActivityResponse,
    SubmissionVersionResponse,
    TransitionAffordance,
)
from submission_workflow.domain.errors import ForbiddenError, NotFoundError
from submission_workflow.domain.guard import SUBMISSIONS_UPDATE_SCOPE, SYSTEM_ADMIN_SCOPE, Actor, is_allowed
from submission_workflow.domain.models import SubmissionVersion
from submission_workflow.domain.resolver import available_transitions

COMPONENT_ID = "api.submissions"


async def create_submission_version_handler(
    *,
    venue: str,
    submission_id: str | None,
    actor: Actor,
    api_deps: ApiDeps,
) -> SubmissionVersionResponse:
    checker = api_deps.scope_checker
    if not (
        checker.has_scope(actor, SYSTEM_ADMIN_SCOPE, None)
        or checker.has_scope(actor, SUBMISSIONS_UPDATE_SCOPE, venue)
    ):
        raise ForbiddenError(f"actor is not allowed to create submissions in venue {venue}")

    workflow = api_deps.registry.for_venue(venue)
    version = await api_deps.repository.create_submission_version(
        venue=venue,
        status=workflow.initial_state,
        activity_by=actor.actor_id,
        submission_id=submission_id,
    )
    return submission_version_response(version, actor=actor, api_deps=api_deps)


async def get_submission_version_handler(
    *,
    submission_version_id: str,
    actor: Actor,
    api_deps: ApiDeps,
) -> SubmissionVersionResponse:
    version = await api_deps.repository.get_submission_version(submission_version_id=submission_version_id)
    if version is None:
        raise NotFoundError(f"submission version not found: {submission_version_id}")
    return submission_version_response(version, actor=actor, api_deps=api_deps)


async def list_activity_handler(*, submission_id: str, limit: int, api_deps: ApiDeps) -> ActivityListResponse:
    items = await api_deps.activity_log.list_activity(submission_id=submission_id, limit=limit)
    return ActivityListResponse(
        items=[
            ActivityResponse(
                id=item.id,
                activity_type=str(item.activity_type),
                activity_by=item.activity_by,
                submission_id=item.submission_id,
                submission_version_id=item.submission_version_id,
                status=item.status,
                transition_name=item.transition_name,
                job_id=item.job_id,
                date_created=item.date_created,
            )
            for item in items
        ]
    )


def submission_version_response(
    version: SubmissionVersion,
    *,
    actor: Actor,
    api_deps: ApiDeps,
) -> SubmissionVersionResponse:
    workflow = api_deps.registry.for_venue(version.venue)
    affordances = [
        TransitionAffordance(
            name=item.name,
            target_state_name=item.target_state_name,
            labels=labels_response(item.labels),
            requires_job=item.requires_job,
            # A pending job blocks further moves in the UI until it settles.
            allowed=not version.has_pending_job
            and is_allowed(actor, item, version.venue, scope_checker=api_deps.scope_checker),
        )
        for item in available_transitions(workflow, version.status)
    ]
    return SubmissionVersionResponse(
        id=version.id,
        submission_id=version.submission_id,
        venue=version.venue,
        status=version.status,
        occ=version.occ,
        job_id=version.job_id,
        pending_transition=version.pending_transition,
        date_created=version.date_created,
        date_published=version.date_published,
        available_transitions=affordances,
    )
