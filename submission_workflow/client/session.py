from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
import logging

from submission_workflow.api.schemas import JobStatusResponse, SubmissionVersionResponse, TransitionAffordance
from submission_workflow.client.api_client import TransitionApiClient, version_from_response
from submission_workflow.client.poller import JobPoller, PollerConfig
from submission_workflow.client.reconciliation import (
    ActiveTransition,
    ClientDisplayState,
    ConfirmedTransition,
    ReconciliationStateMachine,
)
from submission_workflow.domain.errors import DomainError, NoSuchTransitionError, PollingExhaustedError
from submission_workflow.domain.models import JobStatus, SubmissionVersion

logger = logging.getLogger("workflow.client")


@dataclass
class TransitionSession:
    """One displayed submission version: API calls, overlay and job polling together.

    Closing the session stops its poller; overlays live only as long as the
    session does.
    """

    api: TransitionApiClient
    submission_version_id: str
    poller_config: PollerConfig = field(default_factory=PollerConfig)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    machine: ReconciliationStateMachine | None = field(default=None, init=False)
    affordances: list[TransitionAffordance] = field(default_factory=list, init=False)
    last_error: DomainError | None = field(default=None, init=False)
    _poller: JobPoller[JobStatusResponse] | None = field(default=None, init=False, repr=False)

    @property
    def state(self) -> ClientDisplayState:
        return self._machine().state

    @property
    def display_item(self) -> SubmissionVersion:
        return self._machine().display_item

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    async def open(self) -> ClientDisplayState:
        response = await self.api.get_submission_version(submission_version_id=self.submission_version_id)
        self.machine = ReconciliationStateMachine(state=ClientDisplayState(base=version_from_response(response)))
        self.affordances = list(response.available_transitions)
        return self.machine.state

    async def refresh(self) -> ClientDisplayState:
        response = await self.api.get_submission_version(submission_version_id=self.submission_version_id)
        self._adopt(response)
        return self._machine().state

    async def transition(self, target_status: str, *, date_override: date | None = None) -> ClientDisplayState:
        machine = self._machine()
        base = machine.state.base
        affordance = next((item for item in self.affordances if item.target_state_name == target_status), None)
        if affordance is None:
            raise NoSuchTransitionError(base.status, target_status)

        machine.submit_transition(
            ActiveTransition(
                name=affordance.name,
                target_state_name=affordance.target_state_name,
                requires_job=affordance.requires_job,
            )
        )
        try:
            response = await self.api.post_transition(
                submission_version_id=base.id,
                target_status=target_status,
                date_override=date_override,
                occ=base.occ,
            )
        except Exception as exc:
            # Transport and decoding failures roll back too; only typed errors are kept.
            if isinstance(exc, DomainError):
                self.last_error = exc
            machine.handle_transition_error(exc)
            raise

        machine.handle_transition_success(
            ConfirmedTransition(
                status=response.status,
                occ=response.occ,
                job_id=response.job_id,
                date_published=response.date_published,
            )
        )
        if machine.should_poll and response.job_id is not None:
            self._start_polling(response.job_id)
        return machine.state

    async def wait_for_job(self) -> ClientDisplayState:
        """Block until the current poller settles, then re-read the server state."""
        if self._poller is not None:
            await self._poller.wait()
            self._poller = None
            await self.refresh()
        return self._machine().state

    async def aclose(self) -> None:
        if self._poller is not None:
            await self._poller.aclose()
            self._poller = None

    def _start_polling(self, job_id: str) -> None:
        machine = self._machine()

        async def _fetch() -> JobStatusResponse:
            return await self.api.get_job(job_id=job_id)

        def _on_complete(result: JobStatusResponse) -> None:
            if result.status == JobStatus.COMPLETED:
                machine.handle_job_complete()
                return
            logger.info("job failed", extra={"job_id": job_id, "status": result.status})
            machine.handle_job_error()

        def _on_error(error: PollingExhaustedError) -> None:
            self.last_error = error
            machine.handle_job_error(error)

        self._poller = JobPoller(
            fetch=_fetch,
            should_stop=lambda result: result.status != JobStatus.RUNNING,
            on_complete=_on_complete,
            on_error=_on_error,
            config=self.poller_config,
            sleep=self.sleep,
        )
        self._poller.start()

    def _adopt(self, response: SubmissionVersionResponse) -> None:
        self._machine().refresh_base(version_from_response(response))
        self.affordances = list(response.available_transitions)

    def _machine(self) -> ReconciliationStateMachine:
        if self.machine is None:
            raise RuntimeError("session is not open")
        return self.machine
