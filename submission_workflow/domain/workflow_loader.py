from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from pathlib import Path

import yaml

from submission_workflow.domain.errors import ConfigurationError
from submission_workflow.domain.workflow import (
    TransitionLabels,
    TransitionOptions,
    Workflow,
    WorkflowState,
    WorkflowTransition,
)

STATE_FLAGS = ("author_only", "inbox", "visible", "published")
LABEL_KEYS = ("action", "in_progress", "button", "confirmation", "success")


def load_workflow(*, file_path: str | Path) -> Workflow:
    data = yaml.safe_load(Path(file_path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigurationError(f"workflow definition {file_path} must be a YAML object")
    return parse_workflow(data)


def load_workflows(*, directory: str | Path) -> dict[str, Workflow]:
    workflows: dict[str, Workflow] = {}
    for path in sorted(Path(directory).glob("*.yaml")):
        workflow = load_workflow(file_path=path)
        if workflow.name in workflows:
            raise ConfigurationError(f"workflow {workflow.name} is defined more than once ({path.name})")
        workflows[workflow.name] = workflow
    return workflows


def validate_workflow(data: Mapping[str, object]) -> list[str]:
    """Return every structural violation of a raw workflow definition.

    An empty list means the definition can be parsed. All problems are
    reported at once instead of stopping at the first one.
    """
    errors: list[str] = []

    if not _is_non_empty_str(data.get("name")):
        errors.append("Workflow must have a name")
    if not _is_non_empty_str(data.get("label")):
        errors.append("Workflow must have a label")
    initial_state = data.get("initial_state")
    if not _is_non_empty_str(initial_state):
        errors.append("Workflow must have an initial state")

    states = data.get("states")
    if not isinstance(states, dict) or not states:
        errors.append("Workflow must have states")
        states = {}
    transitions = data.get("transitions")
    if not isinstance(transitions, list):
        errors.append("Workflow must have transitions array")
        transitions = []

    for key, state in states.items():
        errors.extend(f"State {key}: {err}" for err in _validate_state(key, state))

    for index, transition in enumerate(transitions):
        label = f"Transition {index}"
        if isinstance(transition, dict) and _is_non_empty_str(transition.get("name")):
            label = f"Transition {index} ({transition['name']})"
        errors.extend(f"{label}: {err}" for err in _validate_transition(transition, states))

    if _is_non_empty_str(initial_state) and states and initial_state not in states:
        errors.append(f"Initial state {initial_state} does not exist in states")

    return errors


def parse_workflow(data: Mapping[str, object]) -> Workflow:
    violations = validate_workflow(data)
    if violations:
        name = data.get("name") if _is_non_empty_str(data.get("name")) else "<unnamed>"
        raise ConfigurationError(f"workflow {name} is invalid", violations)

    states_raw = _required_obj(data, "states")
    states = {
        key: WorkflowState(
            name=_required_str(item, "name"),
            label=_required_str(item, "label"),
            author_only=_required_bool(item, "author_only"),
            inbox=_required_bool(item, "inbox"),
            visible=_required_bool(item, "visible"),
            published=_required_bool(item, "published"),
            tags=frozenset(_optional_str_list(item, "tags")),
        )
        for key, item in _object_values(states_raw)
    }
    transitions = tuple(_parse_transition(item) for item in _objects(_required_list(data, "transitions")))

    return Workflow(
        name=_required_str(data, "name"),
        label=_required_str(data, "label"),
        initial_state=_required_str(data, "initial_state"),
        states=states,
        transitions=transitions,
    )


def find_configuration_conflicts(workflow: Workflow) -> list[str]:
    """Report transitions the resolver could not tell apart.

    Two transitions with the same source (or both any-state) and the same
    target are an authoring error; so are duplicate transition names, since
    pending job-linked transitions are recorded by name.
    """
    conflicts: list[str] = []

    by_edge: dict[tuple[str | None, str], list[str]] = defaultdict(list)
    by_name: dict[str, int] = defaultdict(int)
    for transition in workflow.transitions:
        by_edge[(transition.source_state_name, transition.target_state_name)].append(transition.name)
        by_name[transition.name] += 1

    for (source, target), names in by_edge.items():
        if len(names) > 1:
            source_label = source if source is not None else "<any>"
            conflicts.append(
                f"Transitions {', '.join(names)} share source {source_label} and target {target}"
            )
    for name, count in by_name.items():
        if count > 1:
            conflicts.append(f"Transition name {name} is used {count} times")
    return conflicts


def workflow_to_mapping(workflow: Workflow) -> dict[str, object]:
    return {
        "name": workflow.name,
        "label": workflow.label,
        "initial_state": workflow.initial_state,
        "states": {
            key: {
                "name": state.name,
                "label": state.label,
                "author_only": state.author_only,
                "inbox": state.inbox,
                "visible": state.visible,
                "published": state.published,
                "tags": sorted(state.tags),
            }
            for key, state in workflow.states.items()
        },
        "transitions": [transition_to_mapping(item) for item in workflow.transitions],
    }


def transition_to_mapping(transition: WorkflowTransition) -> dict[str, object]:
    labels = {key: getattr(transition.labels, key) for key in LABEL_KEYS}
    return {
        "name": transition.name,
        "source_state_name": transition.source_state_name,
        "target_state_name": transition.target_state_name,
        "labels": {key: value for key, value in labels.items() if value is not None},
        "user_triggered": transition.user_triggered,
        "help": transition.help,
        "required_scopes": list(transition.required_scopes),
        "requires_job": transition.requires_job,
        "options": {
            "job_type": transition.options.job_type,
            "sets_published_date": transition.options.sets_published_date,
        },
    }


def _validate_state(key: str, state: object) -> list[str]:
    if not isinstance(state, dict):
        return ["State must be an object"]
    errors: list[str] = []
    name = state.get("name")
    if not _is_non_empty_str(name):
        errors.append("State must have a name")
    elif name != key:
        errors.append(f"State name {name} does not match its key")
    if not _is_non_empty_str(state.get("label")):
        errors.append("State must have a label")
    for flag in STATE_FLAGS:
        if not isinstance(state.get(flag), bool):
            errors.append(f"State must have {flag} boolean")
    tags = state.get("tags")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags)):
        errors.append("State tags must be a list of strings")
    return errors


def _validate_transition(transition: object, states: Mapping[str, object]) -> list[str]:
    if not isinstance(transition, dict):
        return ["Transition must be an object"]
    errors: list[str] = []

    if not _is_non_empty_str(transition.get("name")):
        errors.append("Transition must have a name")

    if "source_state_name" not in transition:
        errors.append("Transition must have a source state (can be null for any-state transitions)")
    else:
        source = transition["source_state_name"]
        if source is not None and not _is_non_empty_str(source):
            errors.append("Transition source state must be a state name or null")
        elif source is not None and source not in states:
            errors.append(f"Source state {source} does not exist in states")

    target = transition.get("target_state_name")
    if not _is_non_empty_str(target):
        errors.append("Transition must have a target state")
    elif target not in states:
        errors.append(f"Target state {target} does not exist in states")

    labels = transition.get("labels")
    if not isinstance(labels, dict) or not labels:
        errors.append("Transition must have labels")
    if not isinstance(transition.get("user_triggered"), bool):
        errors.append("Transition must have user_triggered boolean")
    if not isinstance(transition.get("help"), str):
        errors.append("Transition must have help text")
    scopes = transition.get("required_scopes")
    if not isinstance(scopes, list) or not all(_is_non_empty_str(scope) for scope in scopes):
        errors.append("Transition must have required_scopes array")
    if not isinstance(transition.get("requires_job"), bool):
        errors.append("Transition must have requires_job boolean")

    options = transition.get("options")
    if options is not None:
        if not isinstance(options, dict):
            errors.append("Transition options must be an object")
        else:
            job_type = options.get("job_type")
            if job_type is not None and not _is_non_empty_str(job_type):
                errors.append("Transition options.job_type must be a non-empty string")
            sets_date = options.get("sets_published_date")
            if sets_date is not None and not isinstance(sets_date, bool):
                errors.append("Transition options.sets_published_date must be boolean")
    return errors


def _parse_transition(data: dict[str, object]) -> WorkflowTransition:
    labels_raw = _required_obj(data, "labels")
    options_raw = data.get("options") or {}
    if not isinstance(options_raw, dict):
        raise ConfigurationError("options must be object")
    source = data.get("source_state_name")
    job_type = options_raw.get("job_type")
    return WorkflowTransition(
        name=_required_str(data, "name"),
        source_state_name=source if isinstance(source, str) else None,
        target_state_name=_required_str(data, "target_state_name"),
        labels=TransitionLabels(
            **{key: str(labels_raw[key]) for key in LABEL_KEYS if labels_raw.get(key) is not None}
        ),
        user_triggered=_required_bool(data, "user_triggered"),
        help=str(data.get("help", "")),
        required_scopes=tuple(_optional_str_list(data, "required_scopes")),
        requires_job=_required_bool(data, "requires_job"),
        options=TransitionOptions(
            job_type=job_type if isinstance(job_type, str) else None,
            sets_published_date=bool(options_raw.get("sets_published_date", False)),
        ),
    )


def _is_non_empty_str(value: object) -> bool:
    return isinstance(value, str) and bool(value)


def _required_str(data: Mapping[str, object], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{key} is required and must be non-empty string")
    return value


def _required_bool(data: Mapping[str, object], key: str) -> bool:
    value = data.get(key)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} is required and must be boolean")
    return value


def _required_obj(data: Mapping[str, object], key: str) -> dict[str, object]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise ConfigurationError(f"{key} is required and must be object")
    return value


def _required_list(data: Mapping[str, object], key: str) -> list[object]:
    value = data.get(key)
    if not isinstance(value, list):
        raise ConfigurationError(f"{key} is required and must be list")
    return value


def _optional_str_list(data: Mapping[str, object], key: str) -> list[str]:
    values = data.get(key)
    if values is None:
        return []
    if not isinstance(values, list):
        raise ConfigurationError(f"{key} must be list")
    result: list[str] = []
    for value in values:
        if not isinstance(value, str) or not value:
            raise ConfigurationError(f"{key} must contain non-empty strings")
        result.append(value)
    return result


def _objects(items: list[object]) -> list[dict[str, object]]:
    result: list[dict[str, object]] = []
    for item in items:
        if not isinstance(item, dict):
            raise ConfigurationError("transitions must contain objects")
        result.append(item)
    return result


def _object_values(data: dict[str, object]) -> list[tuple[str, dict[str, object]]]:
    result: list[tuple[str, dict[str, object]]] = []
    for key, item in data.items():
        if not isinstance(item, dict):
            raise ConfigurationError(f"state {key} must be object")
        result.append((str(key), item))
    return result
