from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


SUBMISSION_ID_PATTERN = r"^sub_[0-9A-HJKMNP-TV-Z]{26}$"
SUBMISSION_VERSION_ID_PATTERN = r"^sv_[0-9A-HJKMNP-TV-Z]{26}$"
JOB_ID_PATTERN = r"^job_[0-9A-HJKMNP-TV-Z]{26}$"

JobStatusLiteral = Literal["RUNNING", "COMPLETED", "FAILED"]


class ErrorResponse(BaseModel):
    detail: str
    code: str | None = None


class WorkerMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    work_ticks_total: int
    idle_ticks_total: int
    errors_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    mode: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    mode: str
    workflows: list[str]
    worker_loop_enabled: bool
    worker_loop_ready: bool
    worker_metrics: WorkerMetrics


class StateResponse(BaseModel):
    name: str
    label: str
    author_only: bool
    inbox: bool
    visible: bool
    published: bool
    tags: list[str]


class TransitionLabelsResponse(BaseModel):
    action: str | None = None
    in_progress: str | None = None
    button: str | None = None
    confirmation: str | None = None
    success: str | None = None


class WorkflowTransitionResponse(BaseModel):
    name: str
    source_state_name: str | None
    target_state_name: str
    labels: TransitionLabelsResponse
    user_triggered: bool
    help: str
    required_scopes: list[str]
    requires_job: bool
    job_type: str | None = None


class WorkflowResponse(BaseModel):
    venue: str
    name: str
    label: str
    initial_state: str
    states: list[StateResponse]
    transitions: list[WorkflowTransitionResponse]


class TransitionAffordance(BaseModel):
    name: str
    target_state_name: str
    labels: TransitionLabelsResponse
    requires_job: bool
    # Advisory only; the server re-checks scopes on every transition request.
    allowed: bool


class CreateSubmissionVersionRequest(BaseModel):
    submission_id: str | None = Field(default=None, pattern=SUBMISSION_ID_PATTERN)


class SubmissionVersionResponse(BaseModel):
    id: str = Field(pattern=SUBMISSION_VERSION_ID_PATTERN)
    submission_id: str = Field(pattern=SUBMISSION_ID_PATTERN)
    venue: str
    status: str
    occ: int = Field(ge=0)
    job_id: str | None = None
    pending_transition: str | None = None
    date_created: datetime
    date_published: date | None = None
    available_transitions: list[TransitionAffordance] = Field(default_factory=list)


class TransitionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    submission_version_id: str = Field(pattern=SUBMISSION_VERSION_ID_PATTERN)
    target_status: str = Field(min_length=1, max_length=128)
    date_override: date | None = Field(default=None, alias="date")
    occ: int | None = Field(default=None, ge=0)


class TransitionSummary(BaseModel):
    name: str
    source_state_name: str | None
    target_state_name: str
    requires_job: bool
    labels: TransitionLabelsResponse


class TransitionResponse(BaseModel):
    submission_version_id: str = Field(pattern=SUBMISSION_VERSION_ID_PATTERN)
    status: str
    occ: int = Field(ge=0)
    transition: TransitionSummary | None = None
    job_id: str | None = Field(default=None, pattern=JOB_ID_PATTERN)
    date_published: date | None = None


class JobStatusResponse(BaseModel):
    id: str
    job_type: str
    status: JobStatusLiteral
    submission_version_id: str
    message: str | None = None


class JobCallbackResponse(BaseModel):
    job_id: str
    outcome: Literal["pending", "applied", "abandoned", "stale"]
    job_status: JobStatusLiteral
    submission_version_id: str
    status: str
    occ: int = Field(ge=0)


class ActivityResponse(BaseModel):
    id: str
    activity_type: str
    activity_by: str | None = None
    submission_id: str
    submission_version_id: str
    status: str
    transition_name: str | None = None
    job_id: str | None = None
    date_created: datetime


class ActivityListResponse(BaseModel):
    items: list[ActivityResponse]
