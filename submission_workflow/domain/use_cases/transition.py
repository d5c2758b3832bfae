from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
import logging

from submission_workflow.domain.contracts import JobRunner, Notifier, SubmissionRepository
from submission_workflow.domain.errors import (
    AmbiguousTransitionError,
    ConfigurationError,
    ForbiddenError,
    JobSubmissionError,
    NoSuchTransitionError,
    NotFoundError,
)
from submission_workflow.domain.guard import Actor, ActorScopeChecker, ScopeChecker, is_allowed
from submission_workflow.domain.ids import new_job_id
from submission_workflow.domain.models import (
    ActivityDraft,
    ActivityType,
    Job,
    JobStatus,
    NotificationEvent,
    SubmissionVersion,
    VersionMutation,
)
from submission_workflow.domain.registry import WorkflowRegistry
from submission_workflow.domain.resolver import ResolutionOutcome, resolve_transition
from submission_workflow.domain.workflow import Workflow, WorkflowTransition, find_transition, sets_published_date

COMPONENT_ID = "domain.transition.execute"
logger = logging.getLogger("workflow.executor")


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TransitionCommand:
    submission_version_id: str
    target_status: str
    # Publish date override, used only when a date gets stamped.
    date_override: date | None = None
    # When set, the write is conditioned on this occ instead of a fresh read.
    expected_occ: int | None = None


@dataclass(frozen=True)
class TransitionResult:
    version: SubmissionVersion
    transition: WorkflowTransition
    job_id: str | None = None

    @property
    def pending(self) -> bool:
        return self.job_id is not None


class FinalizeStatus(StrEnum):
    PENDING = "pending"
    APPLIED = "applied"
    ABANDONED = "abandoned"
    STALE = "stale"


@dataclass(frozen=True)
class FinalizeResult:
    status: FinalizeStatus
    version: SubmissionVersion
    job_status: JobStatus


@dataclass
class TransitionExecutor:
    """Server-authoritative application of workflow transitions.

    Every write goes through ``SubmissionRepository.apply_mutation`` so the
    status change, the job link and the activity row land together or not at
    all. Notifications are best-effort and never fail a transition.
    """

    registry: WorkflowRegistry
    repository: SubmissionRepository
    job_runner: JobRunner
    notifier: Notifier
    scope_checker: ScopeChecker = field(default_factory=ActorScopeChecker)
    clock: Callable[[], datetime] = _utc_now

    async def execute(self, *, actor: Actor | None, command: TransitionCommand) -> TransitionResult:
        version = await self._get_version(command.submission_version_id)
        workflow = self.registry.for_venue(version.venue)
        transition = self._resolve(workflow, version.status, command.target_status)

        if not is_allowed(actor, transition, version.venue, scope_checker=self.scope_checker):
            raise ForbiddenError(f"actor is not allowed to {transition.name} in venue {version.venue}")

        expected_occ = version.occ if command.expected_occ is None else command.expected_occ
        actor_id = actor.actor_id if actor is not None else None
        if transition.requires_job:
            return await self._start_job(
                version=version,
                transition=transition,
                expected_occ=expected_occ,
                actor_id=actor_id,
                date_override=command.date_override,
            )

        updated = await self._apply_target(
            version=version,
            workflow=workflow,
            transition=transition,
            expected_occ=expected_occ,
            actor_id=actor_id,
            date_override=command.date_override,
            job_id=None,
        )
        return TransitionResult(version=updated, transition=transition)

    async def finalize(self, *, job_id: str) -> FinalizeResult:
        """Apply or abandon the transition linked to ``job_id``.

        A job that no longer owns its submission version (superseded or
        already finalized) is reported as stale and changes nothing.
        """
        job = await self._get_job(job_id)
        version = await self._get_version(job.submission_version_id)

        if version.job_id != job.id:
            logger.info(
                "stale job outcome ignored",
                extra={
                    "submission_version_id": version.id,
                    "job_id": job.id,
                    "status": str(job.status),
                    "phase": FinalizeStatus.STALE,
                },
            )
            return FinalizeResult(status=FinalizeStatus.STALE, version=version, job_status=job.status)

        if job.status is JobStatus.RUNNING:
            return FinalizeResult(status=FinalizeStatus.PENDING, version=version, job_status=job.status)

        if job.status is JobStatus.FAILED:
            abandoned = await self._abandon_version(
                version=version,
                job_id=job.id,
                reason=job.message or "job failed",
            )
            return FinalizeResult(status=FinalizeStatus.ABANDONED, version=abandoned, job_status=job.status)

        workflow = self.registry.for_venue(version.venue)
        transition = find_transition(workflow, version.pending_transition or "")
        if transition is None:
            raise ConfigurationError(
                f"pending transition {version.pending_transition} of {version.id} is not in workflow {workflow.name}"
            )
        updated = await self._apply_target(
            version=version,
            workflow=workflow,
            transition=transition,
            expected_occ=version.occ,
            actor_id=_payload_str(job, "actor_id"),
            date_override=_payload_date(job, "date"),
            job_id=job.id,
        )
        return FinalizeResult(status=FinalizeStatus.APPLIED, version=updated, job_status=job.status)

    async def abandon(self, *, submission_version_id: str, job_id: str, reason: str) -> SubmissionVersion:
        version = await self._get_version(submission_version_id)
        if version.job_id != job_id:
            return version
        return await self._abandon_version(version=version, job_id=job_id, reason=reason)

    async def get_job(self, *, job_id: str) -> Job:
        return await self._get_job(job_id)

    async def _start_job(
        self,
        *,
        version: SubmissionVersion,
        transition: WorkflowTransition,
        expected_occ: int,
        actor_id: str | None,
        date_override: date | None,
    ) -> TransitionResult:
        job_id = new_job_id()
        job_type = transition.job_type or transition.name.upper()
        linked = await self.repository.apply_mutation(
            mutation=VersionMutation(
                submission_version_id=version.id,
                expected_occ=expected_occ,
                status=version.status,
                job_id=job_id,
                pending_transition=transition.name,
                date_published=version.date_published,
                activity=ActivityDraft(
                    activity_type=ActivityType.SUBMISSION_VERSION_TRANSITION_STARTED,
                    activity_by=actor_id,
                    status=version.status,
                    transition_name=transition.name,
                    job_id=job_id,
                ),
            )
        )

        payload: dict[str, object] = {
            "submission_id": version.submission_id,
            "submission_version_id": version.id,
            "venue": version.venue,
            "transition": transition.name,
            "current_status": version.status,
            "target_status": transition.target_state_name,
            "actor_id": actor_id,
            "date": date_override.isoformat() if date_override is not None else None,
        }
        try:
            await self.job_runner.create_job(
                job_id=job_id,
                job_type=job_type,
                submission_version_id=version.id,
                payload=payload,
            )
        except Exception as exc:
            logger.exception(
                "job creation failed",
                extra={"submission_version_id": version.id, "job_id": job_id, "transition": transition.name},
            )
            await self._abandon_version(version=linked, job_id=job_id, reason=f"job creation failed: {exc}")
            raise JobSubmissionError(f"could not start {job_type} job for {version.id}") from exc

        logger.info(
            "job-linked transition started",
            extra={
                "venue": version.venue,
                "submission_version_id": version.id,
                "job_id": job_id,
                "transition": transition.name,
                "status": linked.status,
            },
        )
        return TransitionResult(version=linked, transition=transition, job_id=job_id)

    async def _apply_target(
        self,
        *,
        version: SubmissionVersion,
        workflow: Workflow,
        transition: WorkflowTransition,
        expected_occ: int,
        actor_id: str | None,
        date_override: date | None,
        job_id: str | None,
    ) -> SubmissionVersion:
        date_published = version.date_published
        if date_published is None and sets_published_date(workflow, transition):
            date_published = date_override or self.clock().date()

        updated = await self.repository.apply_mutation(
            mutation=VersionMutation(
                submission_version_id=version.id,
                expected_occ=expected_occ,
                status=transition.target_state_name,
                # Applying any transition releases (or supersedes) a pending job.
                job_id=None,
                pending_transition=None,
                date_published=date_published,
                activity=ActivityDraft(
                    activity_type=ActivityType.SUBMISSION_VERSION_STATUS_CHANGE,
                    activity_by=actor_id,
                    status=transition.target_state_name,
                    transition_name=transition.name,
                    job_id=job_id,
                ),
            )
        )
        if version.job_id is not None and version.job_id != job_id:
            logger.info(
                "pending job superseded",
                extra={"submission_version_id": version.id, "job_id": version.job_id, "transition": transition.name},
            )
        logger.info(
            "transition applied",
            extra={
                "venue": version.venue,
                "submission_version_id": version.id,
                "job_id": job_id,
                "transition": transition.name,
                "status": updated.status,
            },
        )
        await self._notify(
            event_type=NotificationEvent.SUBMISSION_STATUS_CHANGED,
            metadata={
                "submission_id": version.submission_id,
                "submission_version_id": version.id,
                "venue": version.venue,
                "transition": transition.name,
                "from_status": version.status,
                "to_status": updated.status,
                "actor_id": actor_id,
                "job_id": job_id,
            },
        )
        return updated

    async def _abandon_version(self, *, version: SubmissionVersion, job_id: str, reason: str) -> SubmissionVersion:
        transition_name = version.pending_transition
        updated = await self.repository.apply_mutation(
            mutation=VersionMutation(
                submission_version_id=version.id,
                expected_occ=version.occ,
                status=version.status,
                job_id=None,
                pending_transition=None,
                date_published=version.date_published,
                activity=ActivityDraft(
                    activity_type=ActivityType.SUBMISSION_VERSION_TRANSITION_ABANDONED,
                    activity_by=None,
                    status=version.status,
                    transition_name=transition_name,
                    job_id=job_id,
                ),
            )
        )
        logger.warning(
            "job-linked transition abandoned",
            extra={
                "venue": version.venue,
                "submission_version_id": version.id,
                "job_id": job_id,
                "transition": transition_name,
                "status": updated.status,
            },
        )
        await self._notify(
            event_type=NotificationEvent.SUBMISSION_TRANSITION_FAILED,
            metadata={
                "submission_id": version.submission_id,
                "submission_version_id": version.id,
                "venue": version.venue,
                "transition": transition_name,
                "status": updated.status,
                "job_id": job_id,
                "reason": reason,
            },
        )
        return updated

    async def _notify(self, *, event_type: str, metadata: dict[str, object]) -> None:
        try:
            await self.notifier.notify(event_type=event_type, metadata=metadata)
        except Exception:
            logger.exception(
                "notification failed",
                extra={
                    "submission_version_id": metadata.get("submission_version_id"),
                    "job_id": metadata.get("job_id"),
                },
            )

    def _resolve(self, workflow: Workflow, current: str, target: str) -> WorkflowTransition:
        resolution = resolve_transition(workflow, current, target)
        if resolution.outcome is ResolutionOutcome.AMBIGUOUS:
            names = ", ".join(item.name for item in resolution.candidates)
            raise AmbiguousTransitionError(
                f"workflow {workflow.name} has ambiguous transitions from {current} to {target}: {names}"
            )
        if resolution.transition is None:
            raise NoSuchTransitionError(current, target)
        return resolution.transition

    async def _get_version(self, submission_version_id: str) -> SubmissionVersion:
        version = await self.repository.get_submission_version(submission_version_id=submission_version_id)
        if version is None:
            raise NotFoundError(f"submission version not found: {submission_version_id}")
        return version

    async def _get_job(self, job_id: str) -> Job:
        job = await self.job_runner.get_job(job_id=job_id)
        if job is None:
            raise NotFoundError(f"job not found: {job_id}")
        return job


def _payload_str(job: Job, key: str) -> str | None:
    value = job.payload.get(key)
    return value if isinstance(value, str) and value else None


def _payload_date(job: Job, key: str) -> date | None:
    value = _payload_str(job, key)
    if value is None:
        return None
    return date.fromisoformat(value)
