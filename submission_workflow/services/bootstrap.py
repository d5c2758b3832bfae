from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from submission_workflow.api.handlers.deps import ApiDeps
from submission_workflow.clients.stub import (
    InMemoryActorDirectory,
    InMemoryJobRunner,
    LoggingNotifier,
    WebhookNotifier,
    load_actor_directory,
)
from submission_workflow.config import JobPollSettings, RuntimeSettings, runtime_settings_from_env
from submission_workflow.domain.contracts import ActivityLog, ActorDirectory, JobQueue, JobRunner, Notifier
from submission_workflow.domain.registry import WorkflowRegistry, load_registry
from submission_workflow.domain.use_cases.job_protocol import JobReconciler, PollBudget
from submission_workflow.domain.use_cases.transition import TransitionExecutor
from submission_workflow.repositories.postgres import (
    AsyncpgPoolManager,
    PostgresJobRunner,
    PostgresSubmissionRepository,
)
from submission_workflow.repositories.stub import InMemorySubmissionRepository
from submission_workflow.roles import RuntimeRole
from submission_workflow.workers.handlers.deps import WorkerDeps
from submission_workflow.workers.handlers.factory import build_job_handlers
from submission_workflow.workers.loop import JobWorkerLoop, ReconcileLoop, WorkerLoop
from submission_workflow.workers.runner import worker_runtime_settings_from_env


@dataclass
class RuntimeContainer:
    settings: RuntimeSettings
    registry: WorkflowRegistry
    repository: PostgresSubmissionRepository | InMemorySubmissionRepository
    job_runner: JobRunner
    notifier: Notifier
    actors: ActorDirectory
    executor: TransitionExecutor
    reconciler: JobReconciler
    api_deps: ApiDeps
    worker_loop: WorkerLoop | None
    on_startup: Callable[[], Awaitable[None]] | None
    on_shutdown: Callable[[], Awaitable[None]] | None


def poll_budget_from_settings(settings: JobPollSettings) -> PollBudget:
    return PollBudget(
        interval_seconds=settings.interval_ms / 1000,
        max_polls=settings.max_attempts,
        timeout_seconds=float(settings.timeout_seconds),
    )


def build_runtime_container(role: RuntimeRole, settings: RuntimeSettings | None = None) -> RuntimeContainer:
    settings = settings or runtime_settings_from_env()
    # Broken workflow configuration raises here and keeps the process from starting.
    registry = load_registry(
        workflow_dir=settings.workflow_dir,
        venues=settings.venue_workflows,
        default_workflow=settings.default_workflow,
    )

    on_startup: Callable[[], Awaitable[None]] | None = None
    on_shutdown: Callable[[], Awaitable[None]] | None = None
    repository: PostgresSubmissionRepository | InMemorySubmissionRepository
    job_runner: PostgresJobRunner | InMemoryJobRunner
    if settings.database_url:
        pool_manager = AsyncpgPoolManager(dsn=settings.database_url)
        repository = PostgresSubmissionRepository(pool_manager=pool_manager)
        job_runner = PostgresJobRunner(pool_manager=pool_manager)
        on_startup = pool_manager.startup
        on_shutdown = pool_manager.shutdown
    else:
        repository = InMemorySubmissionRepository()
        job_runner = InMemoryJobRunner()

    notifier: Notifier
    if settings.notify_webhook_url:
        notifier = WebhookNotifier(url=settings.notify_webhook_url)
    else:
        notifier = LoggingNotifier()

    actors: ActorDirectory
    if settings.actors_file:
        actors = load_actor_directory(file_path=settings.actors_file)
    else:
        actors = InMemoryActorDirectory()

    executor = TransitionExecutor(
        registry=registry,
        repository=repository,
        job_runner=job_runner,
        notifier=notifier,
    )
    reconciler = JobReconciler(
        executor=executor,
        default_budget=poll_budget_from_settings(settings.job_poll),
    )
    activity_log: ActivityLog = repository
    api_deps = ApiDeps(
        registry=registry,
        executor=executor,
        repository=repository,
        activity_log=activity_log,
        actors=actors,
    )

    return RuntimeContainer(
        settings=settings,
        registry=registry,
        repository=repository,
        job_runner=job_runner,
        notifier=notifier,
        actors=actors,
        executor=executor,
        reconciler=reconciler,
        api_deps=api_deps,
        worker_loop=build_worker_loop(role, repository=repository, queue=job_runner, reconciler=reconciler),
        on_startup=on_startup,
        on_shutdown=on_shutdown,
    )


def build_worker_loop(
    role: RuntimeRole,
    *,
    repository: PostgresSubmissionRepository | InMemorySubmissionRepository,
    queue: JobQueue,
    reconciler: JobReconciler,
) -> WorkerLoop | None:
    if role.name == "worker-jobs":

        async def _settle(job_id: str) -> object:
            return await reconciler.reconcile(job_id=job_id)

        return JobWorkerLoop(
            role=role.name,
            queue=queue,
            handlers=build_job_handlers(WorkerDeps(repository=repository)),
            on_job_finished=_settle,
        )
    if role.name == "worker-reconcile":
        return ReconcileLoop(
            reconciler=reconciler,
            batch_size=worker_runtime_settings_from_env().reconcile_batch_size,
        )
    return None
