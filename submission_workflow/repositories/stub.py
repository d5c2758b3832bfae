from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from submission_workflow.domain.errors import ConcurrentModificationError, NotFoundError
from submission_workflow.domain.ids import new_activity_id, new_submission_public_id, new_submission_version_id
from submission_workflow.domain.models import (
    Activity,
    ActivityDraft,
    ActivityType,
    SubmissionVersion,
    VersionMutation,
)


@dataclass
class _VersionRow:
    id: int
    public_id: str
    submission_id: str
    venue: str
    status: str
    occ: int = 0
    job_id: str | None = None
    pending_transition: str | None = None
    date_published: date | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass
class InMemorySubmissionRepository:
    """Non-network repository with deterministic behavior for skeleton mode.

    Mutations never await between the occ check and the write, so on a single
    event loop each ``apply_mutation`` call is atomic.
    """

    versions: dict[str, _VersionRow] = field(default_factory=dict)
    activity: list[Activity] = field(default_factory=list)
    mutations: list[VersionMutation] = field(default_factory=list)
    next_version_id: int = 1

    async def create_submission_version(
        self,
        *,
        venue: str,
        status: str,
        activity_by: str | None,
        submission_id: str | None = None,
    ) -> SubmissionVersion:
        row = _VersionRow(
            id=self.next_version_id,
            public_id=new_submission_version_id(),
            submission_id=submission_id or new_submission_public_id(),
            venue=venue,
            status=status,
        )
        self.next_version_id += 1
        self.versions[row.public_id] = row
        self._append_activity(
            row,
            ActivityDraft(
                activity_type=ActivityType.SUBMISSION_VERSION_CREATED,
                activity_by=activity_by,
                status=status,
            ),
        )
        return _snapshot(row)

    async def get_submission_version(self, *, submission_version_id: str) -> SubmissionVersion | None:
        row = self.versions.get(submission_version_id)
        if row is None:
            return None
        return _snapshot(row)

    async def apply_mutation(self, *, mutation: VersionMutation) -> SubmissionVersion:
        row = self.versions.get(mutation.submission_version_id)
        if row is None:
            raise NotFoundError(f"submission version not found: {mutation.submission_version_id}")
        if row.occ != mutation.expected_occ:
            raise ConcurrentModificationError(mutation.submission_version_id, mutation.expected_occ)

        row.status = mutation.status
        row.job_id = mutation.job_id
        row.pending_transition = mutation.pending_transition
        row.date_published = mutation.date_published
        row.occ += 1
        row.updated_at = datetime.now(tz=UTC)
        self.mutations.append(mutation)
        self._append_activity(row, mutation.activity)
        return _snapshot(row)

    async def list_pending_versions(self, *, limit: int = 100) -> list[SubmissionVersion]:
        rows = sorted(
            (row for row in self.versions.values() if row.job_id is not None),
            key=lambda row: (row.updated_at, row.id),
        )
        return [_snapshot(row) for row in rows[:limit]]

    async def list_activity(self, *, submission_id: str, limit: int = 50) -> list[Activity]:
        items = [item for item in self.activity if item.submission_id == submission_id]
        return list(reversed(items))[:limit]

    def _append_activity(self, row: _VersionRow, draft: ActivityDraft) -> Activity:
        item = Activity(
            id=new_activity_id(),
            activity_type=draft.activity_type,
            activity_by=draft.activity_by,
            submission_id=row.submission_id,
            submission_version_id=row.public_id,
            status=draft.status,
            date_created=datetime.now(tz=UTC),
            transition_name=draft.transition_name,
            job_id=draft.job_id,
        )
        self.activity.append(item)
        return item


def _snapshot(row: _VersionRow) -> SubmissionVersion:
    return SubmissionVersion(
        id=row.public_id,
        submission_id=row.submission_id,
        venue=row.venue,
        status=row.status,
        occ=row.occ,
        date_created=row.created_at,
        job_id=row.job_id,
        pending_transition=row.pending_transition,
        date_published=row.date_published,
    )
