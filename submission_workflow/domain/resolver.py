from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from submission_workflow.domain.workflow import Workflow, WorkflowTransition


class ResolutionOutcome(StrEnum):
    MATCHED = "matched"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class TransitionResolution:
    outcome: ResolutionOutcome
    transition: WorkflowTransition | None = None
    candidates: tuple[WorkflowTransition, ...] = ()


def resolve_transition(workflow: Workflow, current_state: str, target_state: str) -> TransitionResolution:
    """Find the single transition that moves ``current_state`` to ``target_state``.

    A transition whose source is exactly ``current_state`` always beats an
    any-state transition with the same target. Two candidates of the same
    specificity are reported as ambiguous rather than picked by order.
    """
    exact = tuple(
        item
        for item in workflow.transitions
        if item.source_state_name == current_state and item.target_state_name == target_state
    )
    if exact:
        return _resolution(exact)

    any_state = tuple(
        item for item in workflow.transitions if item.is_any_state and item.target_state_name == target_state
    )
    if any_state:
        return _resolution(any_state)
    return TransitionResolution(outcome=ResolutionOutcome.NOT_FOUND)


def resolve(workflow: Workflow, current_state: str, target_state: str) -> WorkflowTransition | None:
    resolution = resolve_transition(workflow, current_state, target_state)
    if resolution.outcome is ResolutionOutcome.MATCHED:
        return resolution.transition
    return None


def can_transition_to(workflow: Workflow, current_state: str, target_state: str) -> bool:
    return resolve_transition(workflow, current_state, target_state).outcome is ResolutionOutcome.MATCHED


def available_transitions(workflow: Workflow, current_state: str) -> list[WorkflowTransition]:
    """User-triggered transitions that resolve from ``current_state``.

    Any-state transitions are included unless an exact-source transition
    already covers the same target.
    """
    result: list[WorkflowTransition] = []
    seen_targets: set[str] = set()
    for item in workflow.transitions:
        if item.source_state_name != current_state and not item.is_any_state:
            continue
        target = item.target_state_name
        if target in seen_targets:
            continue
        resolved = resolve(workflow, current_state, target)
        if resolved is None or not resolved.user_triggered:
            continue
        seen_targets.add(target)
        result.append(resolved)
    return result


def _resolution(candidates: tuple[WorkflowTransition, ...]) -> TransitionResolution:
    if len(candidates) == 1:
        return TransitionResolution(
            outcome=ResolutionOutcome.MATCHED,
            transition=candidates[0],
            candidates=candidates,
        )
    return TransitionResolution(outcome=ResolutionOutcome.AMBIGUOUS, candidates=candidates)
