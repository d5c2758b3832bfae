from __future__ import annotations

from dataclasses import dataclass
import importlib
import json
from typing import Any

from submission_workflow.domain.errors import ConcurrentModificationError, DomainInvariantError, NotFoundError
from submission_workflow.domain.ids import new_activity_id, new_submission_public_id, new_submission_version_id
from submission_workflow.domain.models import (
    Activity,
    ActivityDraft,
    ActivityType,
    Job,
    JobClaim,
    JobStatus,
    SubmissionVersion,
    VersionMutation,
)
from submission_workflow.repositories.sql_loader import load_sql

asyncpg_module = importlib.import_module("asyncpg")


SQL_CREATE_SUBMISSION_VERSION = load_sql("create_submission_version.sql")
SQL_GET_SUBMISSION_VERSION = load_sql("get_submission_version.sql")
SQL_APPLY_MUTATION = load_sql("apply_mutation.sql")
SQL_LIST_PENDING_VERSIONS = load_sql("list_pending_versions.sql")
SQL_INSERT_ACTIVITY = load_sql("insert_activity.sql")
SQL_LIST_ACTIVITY = load_sql("list_activity.sql")
SQL_CREATE_JOB = load_sql("create_job.sql")
SQL_GET_JOB = load_sql("get_job.sql")
SQL_CLAIM_NEXT_JOB = load_sql("claim_next_job.sql")
SQL_FINISH_JOB = load_sql("finish_job.sql")


def _is_unique_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23505"


@dataclass
class AsyncpgPoolManager:
    dsn: str
    pool: Any | None = None

    async def startup(self) -> None:
        async def _init_connection(conn: Any) -> None:
            await conn.set_type_codec(
                "json",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )
            await conn.set_type_codec(
                "jsonb",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

        self.pool = await asyncpg_module.create_pool(
            dsn=self.dsn,
            min_size=1,
            max_size=5,
            init=_init_connection,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None

    def acquire_pool(self) -> Any:
        if self.pool is None:
            raise RuntimeError("postgres pool is not initialized")
        return self.pool


@dataclass
class PostgresSubmissionRepository:
    pool_manager: AsyncpgPoolManager

    async def create_submission_version(
        self,
        *,
        venue: str,
        status: str,
        activity_by: str | None,
        submission_id: str | None = None,
    ) -> SubmissionVersion:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            for _ in range(5):
                try:
                    async with conn.transaction():
                        row = await conn.fetchrow(
                            SQL_CREATE_SUBMISSION_VERSION,
                            new_submission_version_id(),
                            submission_id or new_submission_public_id(),
                            venue,
                            status,
                        )
                        if row is None:
                            raise DomainInvariantError("failed to create submission version")
                        version = _version_from_row(row)
                        await _insert_activity(
                            conn,
                            version=version,
                            draft=ActivityDraft(
                                activity_type=ActivityType.SUBMISSION_VERSION_CREATED,
                                activity_by=activity_by,
                                status=status,
                            ),
                        )
                        return version
                except Exception as exc:
                    if _is_unique_violation(exc):
                        continue
                    raise
        raise DomainInvariantError("failed to allocate unique submission version public id")

    async def get_submission_version(self, *, submission_version_id: str) -> SubmissionVersion | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_SUBMISSION_VERSION, submission_version_id)
        if row is None:
            return None
        return _version_from_row(row)

    async def apply_mutation(self, *, mutation: VersionMutation) -> SubmissionVersion:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    SQL_APPLY_MUTATION,
                    mutation.submission_version_id,
                    mutation.expected_occ,
                    mutation.status,
                    mutation.job_id,
                    mutation.pending_transition,
                    mutation.date_published,
                )
                if row is None:
                    exists = await conn.fetchrow(SQL_GET_SUBMISSION_VERSION, mutation.submission_version_id)
                    if exists is None:
                        raise NotFoundError(f"submission version not found: {mutation.submission_version_id}")
                    raise ConcurrentModificationError(mutation.submission_version_id, mutation.expected_occ)
                version = _version_from_row(row)
                await _insert_activity(conn, version=version, draft=mutation.activity)
        return version

    async def list_pending_versions(self, *, limit: int = 100) -> list[SubmissionVersion]:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_PENDING_VERSIONS, limit)
        return [_version_from_row(row) for row in rows]

    async def list_activity(self, *, submission_id: str, limit: int = 50) -> list[Activity]:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_ACTIVITY, submission_id, limit)
        return [_activity_from_row(row) for row in rows]


@dataclass
class PostgresJobRunner:
    """Job table shared by the engine and the ``worker-jobs`` role.

    Claims use SELECT ... FOR UPDATE SKIP LOCKED so several job workers can
    poll the same table.
    """

    pool_manager: AsyncpgPoolManager

    async def create_job(
        self,
        *,
        job_id: str,
        job_type: str,
        submission_version_id: str,
        payload: dict[str, object],
    ) -> str:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_CREATE_JOB, job_id, job_type, submission_version_id, payload)
        if row is None:
            raise DomainInvariantError("failed to create job")
        return str(row["public_id"])

    async def get_job(self, *, job_id: str) -> Job | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_JOB, job_id)
        if row is None:
            return None
        return _job_from_row(row)

    async def claim_next(self, *, job_types: tuple[str, ...], worker_id: str) -> JobClaim | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(SQL_CLAIM_NEXT_JOB, list(job_types), worker_id)
        if row is None:
            return None
        return JobClaim(
            job_id=row["public_id"],
            job_type=row["job_type"],
            submission_version_id=row["submission_version_id"],
            payload=_as_payload(row["payload"]),
        )

    async def finish_job(self, *, job_id: str, status: JobStatus, message: str | None = None) -> Job:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_FINISH_JOB, job_id, str(status), message)
            if row is None:
                existing = await conn.fetchrow(SQL_GET_JOB, job_id)
                if existing is None:
                    raise NotFoundError(f"job not found: {job_id}")
                raise DomainInvariantError(f"job {job_id} already finished with {existing['status']}")
        return _job_from_row(row)


async def _insert_activity(conn: Any, *, version: SubmissionVersion, draft: ActivityDraft) -> None:
    await conn.execute(
        SQL_INSERT_ACTIVITY,
        new_activity_id(),
        str(draft.activity_type),
        draft.activity_by,
        version.submission_id,
        version.id,
        draft.status,
        draft.transition_name,
        draft.job_id,
    )


def _version_from_row(row: Any) -> SubmissionVersion:
    return SubmissionVersion(
        id=row["public_id"],
        submission_id=row["submission_id"],
        venue=row["venue"],
        status=row["status"],
        occ=int(row["occ"]),
        date_created=row["created_at"],
        job_id=row["job_id"],
        pending_transition=row["pending_transition"],
        date_published=row["date_published"],
    )


def _activity_from_row(row: Any) -> Activity:
    return Activity(
        id=row["public_id"],
        activity_type=ActivityType(row["activity_type"]),
        activity_by=row["activity_by"],
        submission_id=row["submission_id"],
        submission_version_id=row["submission_version_id"],
        status=row["status"],
        date_created=row["created_at"],
        transition_name=row["transition_name"],
        job_id=row["job_id"],
    )


def _job_from_row(row: Any) -> Job:
    return Job(
        id=row["public_id"],
        job_type=row["job_type"],
        status=JobStatus(row["status"]),
        submission_version_id=row["submission_version_id"],
        payload=_as_payload(row["payload"]),
        message=row["message"],
        date_created=row["created_at"],
        date_modified=row["updated_at"],
    )


def _as_payload(value: object) -> dict[str, object]:
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, dict):
        return {}
    return value
