from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum


class JobStatus(StrEnum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Activity log vocabulary.
#
# IMPORTANT:
# - Keep this enum synchronized with the activity_type CHECK constraint in
#   db/migrations/000001_bootstrap.up.sql.
class ActivityType(StrEnum):
    SUBMISSION_VERSION_CREATED = "SUBMISSION_VERSION_CREATED"
    SUBMISSION_VERSION_TRANSITION_STARTED = "SUBMISSION_VERSION_TRANSITION_STARTED"
    SUBMISSION_VERSION_STATUS_CHANGE = "SUBMISSION_VERSION_STATUS_CHANGE"
    SUBMISSION_VERSION_TRANSITION_ABANDONED = "SUBMISSION_VERSION_TRANSITION_ABANDONED"


class NotificationEvent(StrEnum):
    SUBMISSION_STATUS_CHANGED = "SUBMISSION_STATUS_CHANGED"
    SUBMISSION_TRANSITION_FAILED = "SUBMISSION_TRANSITION_FAILED"


@dataclass(frozen=True)
class SubmissionVersion:
    id: str
    submission_id: str
    venue: str
    status: str
    occ: int
    date_created: datetime
    job_id: str | None = None
    pending_transition: str | None = None
    date_published: date | None = None

    @property
    def has_pending_job(self) -> bool:
        return self.job_id is not None


@dataclass(frozen=True)
class Job:
    id: str
    job_type: str
    status: JobStatus
    submission_version_id: str
    payload: dict[str, object] = field(default_factory=dict)
    message: str | None = None
    date_created: datetime | None = None
    date_modified: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not JobStatus.RUNNING


@dataclass(frozen=True)
class Activity:
    id: str
    activity_type: ActivityType
    activity_by: str | None
    submission_id: str
    submission_version_id: str
    status: str
    date_created: datetime
    transition_name: str | None = None
    job_id: str | None = None


@dataclass(frozen=True)
class ActivityDraft:
    """Activity row written in the same unit of work as a version mutation."""

    activity_type: ActivityType
    activity_by: str | None
    status: str
    transition_name: str | None = None
    job_id: str | None = None


@dataclass(frozen=True)
class VersionMutation:
    """Compare-and-swap write against a submission version.

    Applied only when the stored occ equals ``expected_occ``; on success the
    stored occ becomes ``expected_occ + 1``.
    """

    submission_version_id: str
    expected_occ: int
    status: str
    job_id: str | None
    pending_transition: str | None
    date_published: date | None
    activity: ActivityDraft


@dataclass(frozen=True)
class JobClaim:
    job_id: str
    job_type: str
    submission_version_id: str
    payload: dict[str, object]
