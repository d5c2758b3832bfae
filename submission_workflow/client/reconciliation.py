from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
import logging
from types import MappingProxyType

from submission_workflow.domain.errors import TransitionInFlightError
from submission_workflow.domain.models import SubmissionVersion

logger = logging.getLogger("workflow.client")


@dataclass(frozen=True)
class ActiveTransition:
    name: str
    target_state_name: str
    requires_job: bool
    job_id: str | None = None


@dataclass(frozen=True)
class ClientDisplayState:
    """What the server confirmed (``base``) and what the client hopes (overlay)."""

    base: SubmissionVersion
    optimistic_overlay: Mapping[str, object] | None = None
    active_transition: ActiveTransition | None = None

    @property
    def display_item(self) -> SubmissionVersion:
        if not self.optimistic_overlay:
            return self.base
        return replace(self.base, **self.optimistic_overlay)


@dataclass(frozen=True)
class ConfirmedTransition:
    """Server answer to a transition request, reduced to what the client keeps."""

    status: str
    occ: int
    job_id: str | None = None
    date_published: date | None = None


ActivityListener = Callable[[SubmissionVersion], None]


@dataclass
class ReconciliationStateMachine:
    """Single-slot optimistic overlay over the authoritative submission version.

    Only one transition may be outstanding at a time. Every failure path
    drops the overlay and the active transition together, so the displayed
    item falls back to exactly ``base``.
    """

    state: ClientDisplayState
    activity_listeners: list[ActivityListener] = field(default_factory=list)

    @property
    def display_item(self) -> SubmissionVersion:
        return self.state.display_item

    @property
    def should_poll(self) -> bool:
        active = self.state.active_transition
        return active is not None and active.requires_job and active.job_id is not None

    def submit_transition(self, transition: ActiveTransition) -> ClientDisplayState:
        if self.state.active_transition is not None:
            raise TransitionInFlightError(
                f"transition {self.state.active_transition.name} is still in flight for {self.state.base.id}"
            )
        if self.state.display_item.has_pending_job:
            raise TransitionInFlightError(f"submission version {self.state.base.id} has a pending job")

        if transition.requires_job:
            # The new status is not real until the job completes.
            self.state = replace(self.state, active_transition=transition)
        else:
            self.state = replace(
                self.state,
                optimistic_overlay=_overlay(status=transition.target_state_name),
                active_transition=transition,
            )
        return self.state

    def handle_transition_success(self, confirmed: ConfirmedTransition) -> ClientDisplayState:
        active = self.state.active_transition
        if active is None:
            return self.state

        if confirmed.job_id is not None:
            base = replace(
                self.state.base,
                status=confirmed.status,
                occ=confirmed.occ,
                job_id=confirmed.job_id,
                pending_transition=active.name,
            )
            self.state = ClientDisplayState(
                base=base,
                active_transition=replace(active, job_id=confirmed.job_id),
            )
            return self.state

        base = replace(
            self.state.base,
            status=confirmed.status,
            occ=confirmed.occ,
            job_id=None,
            pending_transition=None,
            date_published=confirmed.date_published or self.state.base.date_published,
        )
        self.state = ClientDisplayState(base=base)
        self._emit_activity()
        return self.state

    def handle_transition_error(self, error: Exception | None = None) -> ClientDisplayState:
        if error is not None:
            logger.warning(
                "transition request failed, reverting",
                extra={"submission_version_id": self.state.base.id, "status": getattr(error, "code", None)},
            )
        self.state = ClientDisplayState(base=self.state.base)
        return self.state

    def handle_job_complete(self) -> ClientDisplayState:
        active = self.state.active_transition
        if active is None:
            return self.state
        self.state = ClientDisplayState(
            base=self.state.base,
            optimistic_overlay=_overlay(status=active.target_state_name, job_id=None, pending_transition=None),
        )
        self._emit_activity()
        return self.state

    def handle_job_error(self, error: Exception | None = None) -> ClientDisplayState:
        return self.handle_transition_error(error)

    def refresh_base(self, version: SubmissionVersion) -> ClientDisplayState:
        """Adopt a server read; any overlay from before the read is dropped."""
        active = self.state.active_transition
        # Only a started job outlives a server read; a request still in flight does not.
        if active is not None and (active.job_id is None or version.job_id != active.job_id):
            active = None
        self.state = ClientDisplayState(base=version, active_transition=active)
        return self.state

    def _emit_activity(self) -> None:
        item = self.state.display_item
        for listener in self.activity_listeners:
            listener(item)


def _overlay(**fields: object) -> Mapping[str, object]:
    return MappingProxyType(dict(fields))
