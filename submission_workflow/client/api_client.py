from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx

from submission_workflow.api.schemas import (
    JobStatusResponse,
    SubmissionVersionResponse,
    TransitionResponse,
    WorkflowResponse,
)
from submission_workflow.domain.error_taxonomy import (
    CODE_BY_HTTP_STATUS,
    RetryClassification,
    classify_error,
    resolve_error_code,
)
from submission_workflow.domain.errors import DomainError
from submission_workflow.domain.models import SubmissionVersion

ACTOR_HEADER = "X-Actor-Id"


class ApiError(DomainError):
    """Error answered by the transition API, rebuilt from the HTTP response."""

    def __init__(self, message: str, *, code: str, status_code: int) -> None:
        super().__init__(message)
        self.code = resolve_error_code(code)
        self.status_code = status_code

    @property
    def classification(self) -> RetryClassification:
        return classify_error(self.code)


def error_from_response(response: httpx.Response) -> ApiError:
    detail = response.text
    code: str | None = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if isinstance(body.get("detail"), str):
            detail = body["detail"]
        if isinstance(body.get("code"), str):
            code = body["code"]
    if code is None:
        code = CODE_BY_HTTP_STATUS.get(response.status_code, "internal_error")
    return ApiError(detail or f"HTTP {response.status_code}", code=code, status_code=response.status_code)


@dataclass
class TransitionApiClient:
    base_url: str
    actor_id: str
    timeout_seconds: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    async def aclose(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    async def get_workflow(self, *, venue: str) -> WorkflowResponse:
        body = await self._request("GET", f"/venues/{venue}/workflow")
        return WorkflowResponse.model_validate(body)

    async def create_submission_version(
        self,
        *,
        venue: str,
        submission_id: str | None = None,
    ) -> SubmissionVersionResponse:
        body = await self._request("POST", f"/venues/{venue}/submissions", json={"submission_id": submission_id})
        return SubmissionVersionResponse.model_validate(body)

    async def get_submission_version(self, *, submission_version_id: str) -> SubmissionVersionResponse:
        body = await self._request("GET", f"/submission-versions/{submission_version_id}")
        return SubmissionVersionResponse.model_validate(body)

    async def post_transition(
        self,
        *,
        submission_version_id: str,
        target_status: str,
        date_override: date | None = None,
        occ: int | None = None,
    ) -> TransitionResponse:
        payload: dict[str, Any] = {
            "submission_version_id": submission_version_id,
            "target_status": target_status,
        }
        if date_override is not None:
            payload["date"] = date_override.isoformat()
        if occ is not None:
            payload["occ"] = occ
        body = await self._request("POST", "/transitions", json=payload)
        return TransitionResponse.model_validate(body)

    async def get_job(self, *, job_id: str) -> JobStatusResponse:
        body = await self._request("GET", f"/jobs/{job_id}")
        return JobStatusResponse.model_validate(body)

    async def _request(self, method: str, url: str, *, json: dict[str, Any] | None = None) -> Any:
        response = await self._http().request(method, url, json=json)
        if response.status_code >= 400:
            raise error_from_response(response)
        return response.json()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={ACTOR_HEADER: self.actor_id},
                timeout=self.timeout_seconds,
                transport=self.transport,
            )
        return self._client


def version_from_response(response: SubmissionVersionResponse) -> SubmissionVersion:
    return SubmissionVersion(
        id=response.id,
        submission_id=response.submission_id,
        venue=response.venue,
        status=response.status,
        occ=response.occ,
        date_created=response.date_created,
        job_id=response.job_id,
        pending_transition=response.pending_transition,
        date_published=response.date_published,
    )
