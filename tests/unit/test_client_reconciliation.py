from __future__ import annotations

from datetime import UTC, datetime

import pytest

from submission_workflow.client.reconciliation import (
    ActiveTransition,
    ClientDisplayState,
    ConfirmedTransition,
    ReconciliationStateMachine,
)
from submission_workflow.domain.errors import ConcurrentModificationError, TransitionInFlightError
from submission_workflow.domain.models import SubmissionVersion

SUBMIT = ActiveTransition(name="submit", target_state_name="IN_REVIEW", requires_job=False)
PUBLISH = ActiveTransition(name="publish", target_state_name="PUBLISHED", requires_job=True)


def _version(status: str = "DRAFT", *, occ: int = 0, job_id: str | None = None) -> SubmissionVersion:
    return SubmissionVersion(
        id="sv_01HZZZZZZZZZZZZZZZZZZZZZZZ",
        submission_id="sub_01HZZZZZZZZZZZZZZZZZZZZZZZ",
        venue="journal-a",
        status=status,
        occ=occ,
        date_created=datetime(2026, 1, 1, tzinfo=UTC),
        job_id=job_id,
    )


def _machine(version: SubmissionVersion | None = None) -> ReconciliationStateMachine:
    return ReconciliationStateMachine(state=ClientDisplayState(base=version or _version()))


@pytest.mark.unit
def test_sync_transition_shows_overlay_immediately() -> None:
    machine = _machine()

    state = machine.submit_transition(SUBMIT)

    assert state.display_item.status == "IN_REVIEW"
    assert state.base.status == "DRAFT"
    assert not machine.should_poll


@pytest.mark.unit
def test_sync_transition_success_adopts_server_state_as_base() -> None:
    machine = _machine()
    seen: list[SubmissionVersion] = []
    machine.activity_listeners.append(seen.append)
    machine.submit_transition(SUBMIT)

    state = machine.handle_transition_success(ConfirmedTransition(status="IN_REVIEW", occ=1))

    assert state.optimistic_overlay is None
    assert state.active_transition is None
    assert state.base.status == "IN_REVIEW"
    assert state.base.occ == 1
    assert [item.status for item in seen] == ["IN_REVIEW"]


@pytest.mark.unit
def test_transition_error_reverts_display_to_exactly_base() -> None:
    base = _version()
    machine = _machine(base)
    machine.submit_transition(SUBMIT)

    state = machine.handle_transition_error(ConcurrentModificationError(base.id, 0))

    assert state.display_item == base
    assert state == ClientDisplayState(base=base)


@pytest.mark.unit
def test_job_linked_transition_does_not_predict_status() -> None:
    machine = _machine(_version("IN_REVIEW", occ=1))

    state = machine.submit_transition(PUBLISH)

    assert state.display_item.status == "IN_REVIEW"
    assert state.optimistic_overlay is None
    assert state.active_transition == PUBLISH
    assert not machine.should_poll


@pytest.mark.unit
def test_job_linked_success_starts_polling_and_completion_sets_overlay() -> None:
    machine = _machine(_version("IN_REVIEW", occ=1))
    seen: list[SubmissionVersion] = []
    machine.activity_listeners.append(seen.append)
    machine.submit_transition(PUBLISH)

    state = machine.handle_transition_success(ConfirmedTransition(status="IN_REVIEW", occ=2, job_id="job_1"))
    assert machine.should_poll
    assert state.active_transition is not None
    assert state.active_transition.job_id == "job_1"
    assert state.base.job_id == "job_1"

    state = machine.handle_job_complete()

    assert state.active_transition is None
    assert state.display_item.status == "PUBLISHED"
    assert state.display_item.job_id is None
    assert state.base.status == "IN_REVIEW"
    assert not machine.should_poll
    assert [item.status for item in seen] == ["PUBLISHED"]


@pytest.mark.unit
def test_job_failure_discards_active_transition() -> None:
    machine = _machine(_version("IN_REVIEW", occ=1))
    machine.submit_transition(PUBLISH)
    machine.handle_transition_success(ConfirmedTransition(status="IN_REVIEW", occ=2, job_id="job_1"))

    state = machine.handle_job_error()

    assert state.active_transition is None
    assert state.optimistic_overlay is None
    assert state.display_item == state.base


@pytest.mark.unit
def test_second_transition_is_rejected_while_one_is_in_flight() -> None:
    machine = _machine()
    machine.submit_transition(SUBMIT)

    with pytest.raises(TransitionInFlightError):
        machine.submit_transition(PUBLISH)


@pytest.mark.unit
def test_pending_job_on_base_blocks_new_transitions() -> None:
    machine = _machine(_version("IN_REVIEW", job_id="job_9"))

    with pytest.raises(TransitionInFlightError):
        machine.submit_transition(SUBMIT)


@pytest.mark.unit
def test_refresh_base_drops_stale_overlay() -> None:
    machine = _machine()
    machine.submit_transition(SUBMIT)
    machine.handle_transition_success(ConfirmedTransition(status="IN_REVIEW", occ=1))
    machine.submit_transition(ActiveTransition(name="withdraw", target_state_name="WITHDRAWN", requires_job=False))

    refreshed = _version("IN_REVIEW", occ=3)
    state = machine.refresh_base(refreshed)

    assert state.optimistic_overlay is None
    assert state.display_item == refreshed
    assert state.active_transition is None
    machine.submit_transition(SUBMIT)


@pytest.mark.unit
def test_refresh_keeps_active_job_only_while_server_still_links_it() -> None:
    machine = _machine(_version("IN_REVIEW", occ=1))
    machine.submit_transition(PUBLISH)
    machine.handle_transition_success(ConfirmedTransition(status="IN_REVIEW", occ=2, job_id="job_1"))

    still_pending = machine.refresh_base(_version("IN_REVIEW", occ=2, job_id="job_1"))
    assert still_pending.active_transition is not None

    settled = machine.refresh_base(_version("PUBLISHED", occ=3))
    assert settled.active_transition is None
    assert settled.display_item.status == "PUBLISHED"
