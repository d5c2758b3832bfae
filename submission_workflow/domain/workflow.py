from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class WorkflowState:
    name: str
    label: str
    author_only: bool
    inbox: bool
    visible: bool
    published: bool
    # Presentation hints only (end, error, warning, ok); the engine ignores them.
    tags: frozenset[str] = frozenset()


@dataclass(frozen=True)
class TransitionLabels:
    action: str | None = None
    in_progress: str | None = None
    button: str | None = None
    confirmation: str | None = None
    success: str | None = None


@dataclass(frozen=True)
class TransitionOptions:
    job_type: str | None = None
    sets_published_date: bool = False


@dataclass(frozen=True)
class WorkflowTransition:
    name: str
    # None means the transition applies from any state.
    source_state_name: str | None
    target_state_name: str
    labels: TransitionLabels
    user_triggered: bool
    help: str
    required_scopes: tuple[str, ...]
    requires_job: bool
    options: TransitionOptions = field(default_factory=TransitionOptions)

    @property
    def is_any_state(self) -> bool:
        return self.source_state_name is None

    @property
    def job_type(self) -> str | None:
        if not self.requires_job:
            return None
        return self.options.job_type or self.name.upper()


@dataclass(frozen=True)
class Workflow:
    name: str
    label: str
    initial_state: str
    states: Mapping[str, WorkflowState]
    transitions: tuple[WorkflowTransition, ...]

    def __post_init__(self) -> None:
        # Shared read-only across every submission in a venue.
        object.__setattr__(self, "states", MappingProxyType(dict(self.states)))
        object.__setattr__(self, "transitions", tuple(self.transitions))


def get_state(workflow: Workflow, status: str) -> WorkflowState | None:
    return workflow.states.get(status)


def is_published(workflow: Workflow, status: str) -> bool:
    state = get_state(workflow, status)
    return state is not None and state.published


def is_visible(workflow: Workflow, status: str) -> bool:
    state = get_state(workflow, status)
    return state is not None and state.visible


def transitions_from(workflow: Workflow, status: str) -> list[WorkflowTransition]:
    """Transitions whose source is exactly ``status`` (any-state ones excluded)."""
    return [item for item in workflow.transitions if item.source_state_name == status]


def transitions_to(workflow: Workflow, status: str) -> list[WorkflowTransition]:
    return [item for item in workflow.transitions if item.target_state_name == status]


def find_transition(workflow: Workflow, name: str) -> WorkflowTransition | None:
    return next((item for item in workflow.transitions if item.name == name), None)


def job_type_for(transition: WorkflowTransition) -> str | None:
    return transition.job_type


def sets_published_date(workflow: Workflow, transition: WorkflowTransition) -> bool:
    return transition.options.sets_published_date or is_published(workflow, transition.target_state_name)
