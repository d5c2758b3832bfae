from __future__ import annotations

from datetime import date

from submission_workflow.api.handlers.deps import ApiDeps
from submission_workflow.api.handlers.workflows import labels_response
from submission_workflow.api.schemas import TransitionResponse, TransitionSummary
from submission_workflow.domain.guard import Actor
from submission_workflow.domain.use_cases.transition import TransitionCommand

COMPONENT_ID = "api.post_transition"


async def post_transition_handler(
    *,
    submission_version_id: str,
    target_status: str,
    date_override: date | None,
    expected_occ: int | None,
    actor: Actor,
    api_deps: ApiDeps,
) -> TransitionResponse:
    result = await api_deps.executor.execute(
        actor=actor,
        command=TransitionCommand(
            submission_version_id=submission_version_id,
            target_status=target_status,
            date_override=date_override,
            expected_occ=expected_occ,
        ),
    )
    transition = result.transition
    return TransitionResponse(
        submission_version_id=result.version.id,
        status=result.version.status,
        occ=result.version.occ,
        transition=TransitionSummary(
            name=transition.name,
            source_state_name=transition.source_state_name,
            target_state_name=transition.target_state_name,
            requires_job=transition.requires_job,
            labels=labels_response(transition.labels),
        ),
        job_id=result.job_id,
        date_published=result.version.date_published,
    )
