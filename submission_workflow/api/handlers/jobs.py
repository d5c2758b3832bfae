from __future__ import annotations

from submission_workflow.api.handlers.deps import ApiDeps
from submission_workflow.api.schemas import JobCallbackResponse, JobStatusResponse

COMPONENT_ID = "api.jobs"


async def get_job_status_handler(*, job_id: str, api_deps: ApiDeps) -> JobStatusResponse:
    job = await api_deps.executor.get_job(job_id=job_id)
    return JobStatusResponse(
        id=job.id,
        job_type=job.job_type,
        status=str(job.status),
        submission_version_id=job.submission_version_id,
        message=job.message,
    )


async def job_callback_handler(*, job_id: str, api_deps: ApiDeps) -> JobCallbackResponse:
    """Job-completion callback: settles the linked transition if the job finished."""
    result = await api_deps.executor.finalize(job_id=job_id)
    return JobCallbackResponse(
        job_id=job_id,
        outcome=str(result.status),
        job_status=str(result.job_status),
        submission_version_id=result.version.id,
        status=result.version.status,
        occ=result.version.occ,
    )
