from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
import logging
from typing import TypeVar

from submission_workflow.domain.errors import ConcurrentModificationError, DomainInvariantError, NotFoundError
from submission_workflow.domain.models import Job, JobStatus, SubmissionVersion
from submission_workflow.domain.use_cases.transition import FinalizeResult, FinalizeStatus, TransitionExecutor

COMPONENT_ID = "domain.transition.reconcile_job"
logger = logging.getLogger("workflow.reconciler")
T = TypeVar("T")


class JobLinkPhase(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    FINALIZING = "finalizing"
    ABANDONED = "abandoned"


class JobLinkEvent(StrEnum):
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    SETTLED = "settled"


@dataclass(frozen=True)
class JobLinkState:
    phase: JobLinkPhase
    job_id: str | None = None


IDLE = JobLinkState(phase=JobLinkPhase.IDLE)

_NEXT_PHASE: dict[tuple[JobLinkPhase, JobLinkEvent], JobLinkPhase] = {
    (JobLinkPhase.IDLE, JobLinkEvent.JOB_STARTED): JobLinkPhase.PENDING,
    (JobLinkPhase.PENDING, JobLinkEvent.JOB_COMPLETED): JobLinkPhase.FINALIZING,
    (JobLinkPhase.PENDING, JobLinkEvent.JOB_FAILED): JobLinkPhase.ABANDONED,
    (JobLinkPhase.PENDING, JobLinkEvent.BUDGET_EXHAUSTED): JobLinkPhase.ABANDONED,
    (JobLinkPhase.FINALIZING, JobLinkEvent.SETTLED): JobLinkPhase.IDLE,
    (JobLinkPhase.ABANDONED, JobLinkEvent.SETTLED): JobLinkPhase.IDLE,
}


def advance(state: JobLinkState, event: JobLinkEvent, *, job_id: str | None = None) -> JobLinkState:
    """Pure transition function of the job-linked protocol.

    Idle -> Pending(job) -> Finalizing -> Idle, or Pending -> Abandoned -> Idle.
    """
    phase = _NEXT_PHASE.get((state.phase, event))
    if phase is None:
        raise DomainInvariantError(f"event {event} is not valid in phase {state.phase}")
    if phase is JobLinkPhase.IDLE:
        return IDLE
    if event is JobLinkEvent.JOB_STARTED:
        if not job_id:
            raise DomainInvariantError("job_started requires a job id")
        return JobLinkState(phase=phase, job_id=job_id)
    return JobLinkState(phase=phase, job_id=state.job_id)


def phase_of(version: SubmissionVersion) -> JobLinkState:
    if version.job_id is None:
        return IDLE
    return JobLinkState(phase=JobLinkPhase.PENDING, job_id=version.job_id)


def event_for_job_status(status: JobStatus) -> JobLinkEvent | None:
    if status is JobStatus.COMPLETED:
        return JobLinkEvent.JOB_COMPLETED
    if status is JobStatus.FAILED:
        return JobLinkEvent.JOB_FAILED
    return None


@dataclass(frozen=True)
class PollBudget:
    interval_seconds: float = 2.0
    max_polls: int = 150
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class ReconcileStep:
    state: JobLinkState
    job_status: JobStatus
    outcome: FinalizeStatus
    version: SubmissionVersion | None = None


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class JobReconciler:
    """Drives pending job-linked transitions to a settled state.

    Budgets are chosen per job type; a job still running when its budget runs
    out is abandoned and the submission version keeps its original status.
    """

    executor: TransitionExecutor
    budgets: Mapping[str, PollBudget] = field(default_factory=dict)
    default_budget: PollBudget = field(default_factory=PollBudget)
    max_conflict_retries: int = 3
    clock: Callable[[], datetime] = _utc_now
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def budget_for(self, job_type: str) -> PollBudget:
        return self.budgets.get(job_type, self.default_budget)

    async def reconcile(self, *, job_id: str, budget_exhausted: bool = False) -> ReconcileStep:
        job = await self.executor.get_job(job_id=job_id)
        state = JobLinkState(phase=JobLinkPhase.PENDING, job_id=job.id)
        event = event_for_job_status(job.status)
        if event is None:
            if not budget_exhausted:
                return ReconcileStep(state=state, job_status=job.status, outcome=FinalizeStatus.PENDING)
            event = JobLinkEvent.BUDGET_EXHAUSTED

        state = advance(state, event)
        if state.phase is JobLinkPhase.FINALIZING or event is JobLinkEvent.JOB_FAILED:
            result = await self._finalize(job)
            version, outcome = result.version, result.status
        else:
            version = await self._with_conflict_retry(
                lambda: self.executor.abandon(
                    submission_version_id=job.submission_version_id,
                    job_id=job.id,
                    reason="poll budget exhausted",
                ),
                job=job,
            )
            outcome = FinalizeStatus.ABANDONED

        logger.info(
            "job-linked transition settled",
            extra={
                "submission_version_id": job.submission_version_id,
                "job_id": job.id,
                "status": str(job.status),
                "phase": outcome,
            },
        )
        return ReconcileStep(
            state=advance(state, JobLinkEvent.SETTLED),
            job_status=job.status,
            outcome=outcome,
            version=version,
        )

    async def await_outcome(self, *, job_id: str) -> ReconcileStep:
        job = await self.executor.get_job(job_id=job_id)
        budget = self.budget_for(job.job_type)
        started_at = self.clock()
        polls = 0
        while True:
            polls += 1
            elapsed = (self.clock() - started_at).total_seconds()
            exhausted = polls >= budget.max_polls or (
                budget.timeout_seconds is not None and elapsed >= budget.timeout_seconds
            )
            step = await self.reconcile(job_id=job_id, budget_exhausted=exhausted)
            if step.state.phase is JobLinkPhase.IDLE:
                return step
            await self.sleep(budget.interval_seconds)

    async def sweep(self, *, limit: int = 100) -> int:
        """Settle every pending version whose job finished or timed out."""
        versions = await self.executor.repository.list_pending_versions(limit=limit)
        settled = 0
        for version in versions:
            if version.job_id is None:
                continue
            try:
                if await self._sweep_one(version, job_id=version.job_id):
                    settled += 1
            except Exception:
                logger.exception(
                    "reconcile sweep failed for version",
                    extra={"submission_version_id": version.id, "job_id": version.job_id},
                )
        return settled

    async def _sweep_one(self, version: SubmissionVersion, *, job_id: str) -> bool:
        try:
            job = await self.executor.get_job(job_id=job_id)
        except NotFoundError:
            await self.executor.abandon(
                submission_version_id=version.id,
                job_id=job_id,
                reason="job not found",
            )
            return True

        step = await self.reconcile(job_id=job.id, budget_exhausted=self._expired(job))
        return step.state.phase is JobLinkPhase.IDLE

    def _expired(self, job: Job) -> bool:
        budget = self.budget_for(job.job_type)
        if budget.timeout_seconds is None or job.date_created is None:
            return False
        return (self.clock() - job.date_created).total_seconds() >= budget.timeout_seconds

    async def _finalize(self, job: Job) -> FinalizeResult:
        return await self._with_conflict_retry(lambda: self.executor.finalize(job_id=job.id), job=job)

    async def _with_conflict_retry(self, operation: Callable[[], Awaitable[T]], *, job: Job) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except ConcurrentModificationError:
                attempt += 1
                if attempt > self.max_conflict_retries:
                    raise
                logger.warning(
                    "concurrent modification while settling job, retrying",
                    extra={"submission_version_id": job.submission_version_id, "job_id": job.id},
                )
