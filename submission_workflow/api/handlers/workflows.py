from __future__ import annotations

from submission_workflow.api.handlers.deps import ApiDeps
from submission_workflow.api.schemas import (
    StateResponse,
    TransitionLabelsResponse,
    WorkflowResponse,
    WorkflowTransitionResponse,
)
from submission_workflow.domain.workflow import TransitionLabels, WorkflowState, WorkflowTransition

COMPONENT_ID = "api.get_venue_workflow"


async def get_venue_workflow_handler(*, venue: str, api_deps: ApiDeps) -> WorkflowResponse:
    workflow = api_deps.registry.for_venue(venue)
    return WorkflowResponse(
        venue=venue,
        name=workflow.name,
        label=workflow.label,
        initial_state=workflow.initial_state,
        states=[state_response(state) for state in workflow.states.values()],
        transitions=[workflow_transition_response(item) for item in workflow.transitions],
    )


def state_response(state: WorkflowState) -> StateResponse:
    return StateResponse(
        name=state.name,
        label=state.label,
        author_only=state.author_only,
        inbox=state.inbox,
        visible=state.visible,
        published=state.published,
        tags=sorted(state.tags),
    )


def labels_response(labels: TransitionLabels) -> TransitionLabelsResponse:
    return TransitionLabelsResponse(
        action=labels.action,
        in_progress=labels.in_progress,
        button=labels.button,
        confirmation=labels.confirmation,
        success=labels.success,
    )


def workflow_transition_response(transition: WorkflowTransition) -> WorkflowTransitionResponse:
    return WorkflowTransitionResponse(
        name=transition.name,
        source_state_name=transition.source_state_name,
        target_state_name=transition.target_state_name,
        labels=labels_response(transition.labels),
        user_triggered=transition.user_triggered,
        help=transition.help,
        required_scopes=list(transition.required_scopes),
        requires_job=transition.requires_job,
        job_type=transition.job_type,
    )
