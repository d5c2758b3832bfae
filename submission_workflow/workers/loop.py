from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
import logging
from typing import Protocol

from submission_workflow.domain.contracts import JobQueue
from submission_workflow.domain.models import JobClaim, JobStatus
from submission_workflow.domain.use_cases.job_protocol import JobReconciler


@dataclass(frozen=True)
class JobOutcome:
    success: bool
    detail: str = ""


JobHandler = Callable[[JobClaim], Awaitable[JobOutcome]]
JobFinishedCallback = Callable[[str], Awaitable[object]]
logger = logging.getLogger("runtime")


class WorkerLoop(Protocol):
    name: str

    async def run_once(self) -> bool: ...


@dataclass
class JobWorkerLoop:
    """Claims RUNNING jobs, runs the handler for their type and records the outcome.

    After a job is finished the engine's completion callback is invoked so
    the linked submission version is settled without waiting for a sweep.
    """

    role: str
    queue: JobQueue
    handlers: Mapping[str, JobHandler]
    on_job_finished: JobFinishedCallback | None = None
    name: str = "jobs"

    async def run_once(self) -> bool:
        claim = await self.queue.claim_next(job_types=tuple(self.handlers), worker_id=self.role)
        if claim is None:
            return False

        handler = self.handlers[claim.job_type]
        try:
            outcome = await handler(claim)
        except Exception as exc:
            logger.exception(
                "job handler raised",
                extra={"role": self.role, "job_id": claim.job_id, "submission_version_id": claim.submission_version_id},
            )
            outcome = JobOutcome(success=False, detail=f"{type(exc).__name__}: {exc}")

        status = JobStatus.COMPLETED if outcome.success else JobStatus.FAILED
        if not outcome.success:
            logger.warning(
                "job failed",
                extra={
                    "role": self.role,
                    "job_id": claim.job_id,
                    "submission_version_id": claim.submission_version_id,
                    "status": status,
                },
            )
        await self.queue.finish_job(job_id=claim.job_id, status=status, message=outcome.detail or None)

        if self.on_job_finished is not None:
            await self.on_job_finished(claim.job_id)
        return True


@dataclass
class ReconcileLoop:
    reconciler: JobReconciler
    batch_size: int = 100
    name: str = "reconcile"

    async def run_once(self) -> bool:
        settled = await self.reconciler.sweep(limit=self.batch_size)
        return settled > 0
