from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from submission_workflow.domain.errors import ConfigurationError, NotFoundError
from submission_workflow.domain.workflow import Workflow
from submission_workflow.domain.workflow_loader import find_configuration_conflicts, load_workflows

BUILTIN_WORKFLOW_DIR = Path(__file__).resolve().parent.parent / "workflows"


@dataclass(frozen=True)
class WorkflowRegistry:
    """Venue to workflow lookup, built once at startup and never mutated."""

    workflows: Mapping[str, Workflow]
    venues: Mapping[str, str] = field(default_factory=dict)
    default_workflow: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "workflows", MappingProxyType(dict(self.workflows)))
        object.__setattr__(self, "venues", MappingProxyType(dict(self.venues)))

    def get(self, name: str) -> Workflow:
        workflow = self.workflows.get(name)
        if workflow is None:
            raise NotFoundError(f"unknown workflow: {name}")
        return workflow

    def for_venue(self, venue: str) -> Workflow:
        name = self.venues.get(venue, self.default_workflow)
        if name is None:
            raise NotFoundError(f"no workflow configured for venue {venue}")
        return self.get(name)


def build_registry(
    workflows: Mapping[str, Workflow],
    *,
    venues: Mapping[str, str] | None = None,
    default_workflow: str | None = None,
) -> WorkflowRegistry:
    violations: list[str] = []
    for name, workflow in workflows.items():
        violations.extend(f"{name}: {item}" for item in find_configuration_conflicts(workflow))
    for venue, name in (venues or {}).items():
        if name not in workflows:
            violations.append(f"venue {venue} references unknown workflow {name}")
    if default_workflow is not None and default_workflow not in workflows:
        violations.append(f"default workflow {default_workflow} is not defined")
    if violations:
        raise ConfigurationError("workflow registry is invalid", violations)
    return WorkflowRegistry(workflows=workflows, venues=venues or {}, default_workflow=default_workflow)


def load_registry(
    *,
    workflow_dir: str | Path | None = None,
    venues: Mapping[str, str] | None = None,
    default_workflow: str | None = None,
) -> WorkflowRegistry:
    workflows = load_workflows(directory=workflow_dir or BUILTIN_WORKFLOW_DIR)
    return build_registry(workflows, venues=venues, default_workflow=default_workflow)
