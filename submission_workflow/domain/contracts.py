from __future__ import annotations

from typing import Protocol, runtime_checkable

from submission_workflow.domain.guard import Actor
from submission_workflow.domain.models import (
    Activity,
    Job,
    JobClaim,
    JobStatus,
    SubmissionVersion,
    VersionMutation,
)

CLAIM_SQL_CONTRACT = "SELECT ... FOR UPDATE SKIP LOCKED"
CAS_SQL_CONTRACT = "UPDATE ... WHERE public_id = $1 AND occ = $2"


@runtime_checkable
class SubmissionRepository(Protocol):
    """Persistence contract for submission versions and their activity log.

    ``apply_mutation`` is the only write path for status and job links. It is a
    compare-and-swap on ``occ``: the version update and the activity insert
    commit together or not at all, and a stale ``expected_occ`` raises
    ``ConcurrentModificationError``.
    """

    async def create_submission_version(
        self,
        *,
        venue: str,
        status: str,
        activity_by: str | None,
        submission_id: str | None = None,
    ) -> SubmissionVersion: ...

    async def get_submission_version(self, *, submission_version_id: str) -> SubmissionVersion | None: ...

    async def apply_mutation(self, *, mutation: VersionMutation) -> SubmissionVersion: ...

    async def list_pending_versions(self, *, limit: int = 100) -> list[SubmissionVersion]: ...


@runtime_checkable
class ActivityLog(Protocol):
    """Append-only activity reads.

    Rows are appended through ``VersionMutation.activity`` so they share the
    unit of work of the status write.
    """

    # Most recent first.
    async def list_activity(self, *, submission_id: str, limit: int = 50) -> list[Activity]: ...


@runtime_checkable
class JobRunner(Protocol):
    """Opaque long-running job service.

    The engine only creates jobs and reads their status back.
    """

    async def create_job(
        self,
        *,
        job_id: str,
        job_type: str,
        submission_version_id: str,
        payload: dict[str, object],
    ) -> str: ...

    async def get_job(self, *, job_id: str) -> Job | None: ...


@runtime_checkable
class JobQueue(Protocol):
    """Worker-side view of the job runner."""

    async def claim_next(self, *, job_types: tuple[str, ...], worker_id: str) -> JobClaim | None: ...

    async def finish_job(self, *, job_id: str, status: JobStatus, message: str | None = None) -> Job: ...


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, *, event_type: str, metadata: dict[str, object]) -> None: ...


@runtime_checkable
class ActorDirectory(Protocol):
    def get_actor(self, *, actor_id: str) -> Actor | None: ...
