from __future__ import annotations

import logging

from submission_workflow.domain.models import JobClaim
from submission_workflow.workers.handlers.deps import WorkerDeps
from submission_workflow.workers.loop import JobOutcome

COMPONENT_ID = "worker.jobs.publish"
logger = logging.getLogger("runtime")


async def process_publish(deps: WorkerDeps, *, claim: JobClaim) -> JobOutcome:
    """Publish side effect for a job-linked ``publish`` transition.

    Rendering and storage happen outside this service; the handler only
    confirms the job still owns the submission version it was started for.
    """
    return await _process(deps, claim=claim, action="published")


async def process_unpublish(deps: WorkerDeps, *, claim: JobClaim) -> JobOutcome:
    return await _process(deps, claim=claim, action="unpublished")


async def _process(deps: WorkerDeps, *, claim: JobClaim, action: str) -> JobOutcome:
    version = await deps.repository.get_submission_version(submission_version_id=claim.submission_version_id)
    if version is None:
        return JobOutcome(success=False, detail=f"submission version not found: {claim.submission_version_id}")
    if version.job_id != claim.job_id:
        return JobOutcome(success=False, detail="job no longer owns the submission version")

    logger.info(
        f"submission version {action}",
        extra={
            "job_id": claim.job_id,
            "submission_version_id": version.id,
            "venue": version.venue,
            "transition": claim.payload.get("transition"),
        },
    )
    return JobOutcome(success=True, detail=f"{action} {version.id}")
