from __future__ import annotations

from submission_workflow.domain.models import JobClaim
from submission_workflow.workers.handlers import publish
from submission_workflow.workers.handlers.deps import WorkerDeps
from submission_workflow.workers.loop import JobHandler, JobOutcome

PUBLISH_JOB_TYPE = "PUBLISH"
UNPUBLISH_JOB_TYPE = "UNPUBLISH"


def build_job_handlers(deps: WorkerDeps) -> dict[str, JobHandler]:
    async def _publish(claim: JobClaim) -> JobOutcome:
        return await publish.process_publish(deps, claim=claim)

    async def _unpublish(claim: JobClaim) -> JobOutcome:
        return await publish.process_unpublish(deps, claim=claim)

    return {
        PUBLISH_JOB_TYPE: _publish,
        UNPUBLISH_JOB_TYPE: _unpublish,
    }
