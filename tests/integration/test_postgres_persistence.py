from __future__ import annotations

import asyncio

import pytest

from submission_workflow.clients.stub import RecordingNotifier
from submission_workflow.domain.errors import ConcurrentModificationError, DomainInvariantError, NotFoundError
from submission_workflow.domain.ids import new_job_id
from submission_workflow.domain.models import ActivityDraft, ActivityType, JobStatus, VersionMutation
from submission_workflow.domain.registry import WorkflowRegistry
from submission_workflow.domain.use_cases.transition import FinalizeStatus, TransitionCommand, TransitionExecutor
from submission_workflow.repositories.postgres import (
    AsyncpgPoolManager,
    PostgresJobRunner,
    PostgresSubmissionRepository,
)
from tests.integration.postgres_test_utils import apply_down, apply_up, require_postgres, reset_public_schema
from tests.unit.workflow_samples import VENUE, editor, review_workflow


def _status_mutation(version_id: str, *, expected_occ: int, status: str) -> VersionMutation:
    return VersionMutation(
        submission_version_id=version_id,
        expected_occ=expected_occ,
        status=status,
        job_id=None,
        pending_transition=None,
        date_published=None,
        activity=ActivityDraft(
            activity_type=ActivityType.SUBMISSION_VERSION_STATUS_CHANGE,
            activity_by="editor-1",
            status=status,
            transition_name="submit",
        ),
    )


@pytest.mark.integration
def test_migration_up_down_up_contract() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await reset_public_schema(dsn=dsn)
        await apply_up(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        try:
            repo = PostgresSubmissionRepository(pool_manager=manager)
            assert await repo.get_submission_version(submission_version_id="sv_missing") is None
        finally:
            await manager.shutdown()

        await apply_down(dsn=dsn)
        await apply_up(dsn=dsn)

    asyncio.run(_run())


@pytest.mark.integration
def test_mutation_is_conditioned_on_occ_and_records_activity() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await reset_public_schema(dsn=dsn)
        await apply_up(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        repo = PostgresSubmissionRepository(pool_manager=manager)
        try:
            created = await repo.create_submission_version(venue=VENUE, status="DRAFT", activity_by="editor-1")
            assert created.occ == 0

            updated = await repo.apply_mutation(mutation=_status_mutation(created.id, expected_occ=0, status="IN_REVIEW"))
            assert updated.status == "IN_REVIEW"
            assert updated.occ == 1

            with pytest.raises(ConcurrentModificationError):
                await repo.apply_mutation(mutation=_status_mutation(created.id, expected_occ=0, status="WITHDRAWN"))
            with pytest.raises(NotFoundError):
                await repo.apply_mutation(mutation=_status_mutation("sv_missing", expected_occ=0, status="WITHDRAWN"))

            current = await repo.get_submission_version(submission_version_id=created.id)
            assert current is not None
            assert current.status == "IN_REVIEW"

            activity = await repo.list_activity(submission_id=created.submission_id)
            assert [item.activity_type for item in activity] == [
                ActivityType.SUBMISSION_VERSION_STATUS_CHANGE,
                ActivityType.SUBMISSION_VERSION_CREATED,
            ]
        finally:
            await manager.shutdown()

    asyncio.run(_run())


@pytest.mark.integration
def test_concurrent_mutations_with_same_occ_admit_exactly_one() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await reset_public_schema(dsn=dsn)
        await apply_up(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        repo = PostgresSubmissionRepository(pool_manager=manager)
        try:
            created = await repo.create_submission_version(venue=VENUE, status="DRAFT", activity_by=None)
            results = await asyncio.gather(
                *(
                    repo.apply_mutation(mutation=_status_mutation(created.id, expected_occ=0, status="IN_REVIEW"))
                    for _ in range(3)
                ),
                return_exceptions=True,
            )
            successes = [item for item in results if not isinstance(item, BaseException)]
            conflicts = [item for item in results if isinstance(item, ConcurrentModificationError)]
            assert len(successes) == 1
            assert len(conflicts) == 2
        finally:
            await manager.shutdown()

    asyncio.run(_run())


@pytest.mark.integration
def test_job_claims_are_exclusive_and_finish_once() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await reset_public_schema(dsn=dsn)
        await apply_up(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        repo = PostgresSubmissionRepository(pool_manager=manager)
        jobs = PostgresJobRunner(pool_manager=manager)
        try:
            version = await repo.create_submission_version(venue=VENUE, status="IN_REVIEW", activity_by=None)
            created_ids = [
                await jobs.create_job(
                    job_id=new_job_id(),
                    job_type="PUBLISH",
                    submission_version_id=version.id,
                    payload={"transition": "publish", "index": idx},
                )
                for idx in range(3)
            ]

            claims = await asyncio.gather(
                jobs.claim_next(job_types=("PUBLISH",), worker_id="w-1"),
                jobs.claim_next(job_types=("PUBLISH",), worker_id="w-2"),
                jobs.claim_next(job_types=("PUBLISH",), worker_id="w-3"),
            )
            claim_ids = [claim.job_id for claim in claims if claim is not None]
            assert sorted(claim_ids) == sorted(created_ids)
            assert await jobs.claim_next(job_types=("PUBLISH",), worker_id="w-4") is None
            assert claims[0] is not None
            assert claims[0].payload["transition"] == "publish"

            finished = await jobs.finish_job(job_id=created_ids[0], status=JobStatus.FAILED, message="render failed")
            assert finished.status is JobStatus.FAILED
            assert finished.message == "render failed"
            with pytest.raises(DomainInvariantError):
                await jobs.finish_job(job_id=created_ids[0], status=JobStatus.COMPLETED)
            with pytest.raises(NotFoundError):
                await jobs.finish_job(job_id=new_job_id(), status=JobStatus.COMPLETED)
        finally:
            await manager.shutdown()

    asyncio.run(_run())


@pytest.mark.integration
def test_job_linked_transition_round_trip_on_postgres() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await reset_public_schema(dsn=dsn)
        await apply_up(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        repo = PostgresSubmissionRepository(pool_manager=manager)
        jobs = PostgresJobRunner(pool_manager=manager)
        workflow = review_workflow()
        executor = TransitionExecutor(
            registry=WorkflowRegistry(workflows={workflow.name: workflow}, default_workflow=workflow.name),
            repository=repo,
            job_runner=jobs,
            notifier=RecordingNotifier(),
        )
        try:
            version = await repo.create_submission_version(venue=VENUE, status="IN_REVIEW", activity_by=None)
            started = await executor.execute(
                actor=editor(),
                command=TransitionCommand(submission_version_id=version.id, target_status="PUBLISHED"),
            )
            assert started.job_id is not None
            assert started.version.status == "IN_REVIEW"
            assert started.version.pending_transition == "publish"
            assert [item.id for item in await repo.list_pending_versions()] == [version.id]

            await jobs.finish_job(job_id=started.job_id, status=JobStatus.COMPLETED)
            result = await executor.finalize(job_id=started.job_id)

            assert result.status is FinalizeStatus.APPLIED
            assert result.version.status == "PUBLISHED"
            assert result.version.job_id is None
            assert result.version.date_published is not None
            assert await repo.list_pending_versions() == []
        finally:
            await manager.shutdown()

    asyncio.run(_run())
