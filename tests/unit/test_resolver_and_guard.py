from __future__ import annotations

import pytest

from submission_workflow.domain.guard import (
    SUBMISSIONS_PUBLISHING_SCOPE,
    SUBMISSIONS_UPDATE_SCOPE,
    Actor,
    ActorScopeChecker,
    is_allowed,
    missing_scopes,
)
from submission_workflow.domain.resolver import (
    ResolutionOutcome,
    available_transitions,
    can_transition_to,
    resolve,
    resolve_transition,
)
from submission_workflow.domain.workflow import (
    Workflow,
    WorkflowTransition,
    find_transition,
    get_state,
    is_published,
    is_visible,
    job_type_for,
    sets_published_date,
    transitions_from,
    transitions_to,
)
from submission_workflow.domain.workflow_loader import parse_workflow
from tests.unit.workflow_samples import VENUE, admin, editor, review_workflow, review_workflow_data, reviewer


def _with_extra_transition(**overrides: object) -> Workflow:
    data = review_workflow_data()
    extra = dict(data["transitions"][2])
    extra.update(overrides)
    data["transitions"].append(extra)
    return parse_workflow(data)


def _publish(workflow: Workflow) -> WorkflowTransition:
    transition = find_transition(workflow, "publish")
    assert transition is not None
    return transition


@pytest.mark.unit
def test_resolve_exact_source_match() -> None:
    workflow = review_workflow()

    transition = resolve(workflow, "DRAFT", "IN_REVIEW")

    assert transition is not None
    assert transition.name == "submit"


@pytest.mark.unit
def test_resolve_any_state_transition_from_every_state() -> None:
    workflow = review_workflow()

    for state in ("DRAFT", "IN_REVIEW", "PUBLISHED"):
        transition = resolve(workflow, state, "WITHDRAWN")
        assert transition is not None
        assert transition.name == "withdraw"


@pytest.mark.unit
def test_exact_source_beats_any_state() -> None:
    workflow = _with_extra_transition(name="withdraw_draft", source_state_name="DRAFT")

    assert resolve(workflow, "DRAFT", "WITHDRAWN").name == "withdraw_draft"
    assert resolve(workflow, "IN_REVIEW", "WITHDRAWN").name == "withdraw"


@pytest.mark.unit
def test_two_any_state_transitions_are_ambiguous_not_missing() -> None:
    workflow = _with_extra_transition(name="withdraw_again")

    resolution = resolve_transition(workflow, "IN_REVIEW", "WITHDRAWN")

    assert resolution.outcome is ResolutionOutcome.AMBIGUOUS
    assert resolution.transition is None
    assert {item.name for item in resolution.candidates} == {"withdraw", "withdraw_again"}
    assert resolve(workflow, "IN_REVIEW", "WITHDRAWN") is None


@pytest.mark.unit
def test_unknown_target_is_not_found() -> None:
    resolution = resolve_transition(review_workflow(), "DRAFT", "PUBLISHED")

    assert resolution.outcome is ResolutionOutcome.NOT_FOUND
    assert resolution.candidates == ()
    assert not can_transition_to(review_workflow(), "DRAFT", "PUBLISHED")


@pytest.mark.unit
def test_resolve_returns_at_most_one_transition_for_every_pair() -> None:
    workflow = review_workflow()
    for current in workflow.states:
        for target in workflow.states:
            resolution = resolve_transition(workflow, current, target)
            if resolution.outcome is ResolutionOutcome.MATCHED:
                assert resolution.transition is not None
                assert resolution.transition.target_state_name == target


@pytest.mark.unit
def test_available_transitions_lists_user_triggered_moves_only() -> None:
    workflow = review_workflow()

    names = [item.name for item in available_transitions(workflow, "IN_REVIEW")]

    assert names == ["publish", "withdraw"]


@pytest.mark.unit
def test_guard_requires_every_scope_on_the_venue() -> None:
    publish = _publish(review_workflow())
    checker = ActorScopeChecker()

    assert is_allowed(editor(), publish, VENUE, scope_checker=checker)
    assert not is_allowed(reviewer(), publish, VENUE, scope_checker=checker)
    assert not is_allowed(editor(), publish, "journal-b", scope_checker=checker)
    assert missing_scopes(reviewer(), publish, VENUE, scope_checker=checker) == [SUBMISSIONS_PUBLISHING_SCOPE]


@pytest.mark.unit
def test_system_admin_is_allowed_everywhere() -> None:
    publish = _publish(review_workflow())

    assert is_allowed(admin(), publish, VENUE, scope_checker=ActorScopeChecker())
    assert is_allowed(admin(), publish, "journal-z", scope_checker=ActorScopeChecker())


@pytest.mark.unit
def test_venue_scoped_admin_grant_is_not_system_admin() -> None:
    publish = _publish(review_workflow())
    actor = Actor(actor_id="venue-admin", venue_scopes={VENUE: frozenset({"system:admin"})})

    assert not is_allowed(actor, publish, VENUE, scope_checker=ActorScopeChecker())


@pytest.mark.unit
def test_unscoped_transition_needs_only_an_actor() -> None:
    withdraw = find_transition(review_workflow(), "withdraw")
    assert withdraw is not None

    assert is_allowed(Actor(actor_id="anyone"), withdraw, VENUE, scope_checker=ActorScopeChecker())
    assert not is_allowed(None, withdraw, VENUE, scope_checker=ActorScopeChecker())


@pytest.mark.unit
def test_guard_consults_the_injected_scope_checker() -> None:
    calls: list[tuple[str, str, str | None]] = []

    class RecordingChecker:
        def has_scope(self, actor: Actor, scope: str, venue: str | None) -> bool:
            calls.append((actor.actor_id, scope, venue))
            return scope == SUBMISSIONS_UPDATE_SCOPE

    publish = _publish(review_workflow())

    assert not is_allowed(Actor(actor_id="a"), publish, VENUE, scope_checker=RecordingChecker())
    assert calls[0] == ("a", "system:admin", None)
    assert ("a", SUBMISSIONS_UPDATE_SCOPE, VENUE) in calls


@pytest.mark.unit
def test_workflow_query_helpers() -> None:
    workflow = review_workflow()
    publish = find_transition(workflow, "publish")
    submit = find_transition(workflow, "submit")
    assert publish is not None and submit is not None

    assert get_state(workflow, "MISSING") is None
    assert is_published(workflow, "PUBLISHED")
    assert is_visible(workflow, "PUBLISHED")
    assert not is_published(workflow, "IN_REVIEW")
    assert [item.name for item in transitions_from(workflow, "IN_REVIEW")] == ["publish", "return_to_draft"]
    assert [item.name for item in transitions_to(workflow, "WITHDRAWN")] == ["withdraw"]
    assert job_type_for(publish) == "PUBLISH"
    assert job_type_for(submit) is None
    assert sets_published_date(workflow, publish)
    assert not sets_published_date(workflow, submit)
