from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
import logging
from pathlib import Path

import httpx
import yaml

from submission_workflow.domain.errors import ConfigurationError, DomainInvariantError, NotFoundError
from submission_workflow.domain.guard import Actor
from submission_workflow.domain.models import Job, JobClaim, JobStatus

notify_logger = logging.getLogger("workflow.notify")
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass
class InMemoryJobRunner:
    """Job runner stand-in that keeps jobs in process memory.

    Serves both sides of the runner: the engine creates and reads jobs, the
    ``worker-jobs`` role claims and finishes them.
    """

    jobs: dict[str, Job] = field(default_factory=dict)
    claimed: set[str] = field(default_factory=set)
    fail_on_create: bool = False

    async def create_job(
        self,
        *,
        job_id: str,
        job_type: str,
        submission_version_id: str,
        payload: dict[str, object],
    ) -> str:
        if self.fail_on_create:
            raise ConnectionError("job runner is unavailable")
        if job_id in self.jobs:
            raise DomainInvariantError(f"job already exists: {job_id}")
        now = datetime.now(tz=UTC)
        self.jobs[job_id] = Job(
            id=job_id,
            job_type=job_type,
            status=JobStatus.RUNNING,
            submission_version_id=submission_version_id,
            payload=dict(payload),
            date_created=now,
            date_modified=now,
        )
        return job_id

    async def get_job(self, *, job_id: str) -> Job | None:
        return self.jobs.get(job_id)

    async def claim_next(self, *, job_types: tuple[str, ...], worker_id: str) -> JobClaim | None:
        del worker_id
        oldest_first = sorted(self.jobs.values(), key=lambda item: (item.date_created or _EPOCH, item.id))
        for job in oldest_first:
            if job.status is not JobStatus.RUNNING or job.id in self.claimed:
                continue
            if job_types and job.job_type not in job_types:
                continue
            self.claimed.add(job.id)
            return JobClaim(
                job_id=job.id,
                job_type=job.job_type,
                submission_version_id=job.submission_version_id,
                payload=dict(job.payload),
            )
        return None

    async def finish_job(self, *, job_id: str, status: JobStatus, message: str | None = None) -> Job:
        job = self.jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"job not found: {job_id}")
        if job.status is not JobStatus.RUNNING:
            raise DomainInvariantError(f"job {job_id} already finished with {job.status}")
        finished = replace(job, status=status, message=message, date_modified=datetime.now(tz=UTC))
        self.jobs[job_id] = finished
        self.claimed.discard(job_id)
        return finished


@dataclass
class RecordingNotifier:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    fail: bool = False

    async def notify(self, *, event_type: str, metadata: dict[str, object]) -> None:
        if self.fail:
            raise ConnectionError("notification sink is unavailable")
        self.events.append((event_type, dict(metadata)))


@dataclass
class LoggingNotifier:
    async def notify(self, *, event_type: str, metadata: dict[str, object]) -> None:
        notify_logger.info(
            event_type,
            extra={
                "venue": metadata.get("venue"),
                "submission_version_id": metadata.get("submission_version_id"),
                "job_id": metadata.get("job_id"),
                "transition": metadata.get("transition"),
                "status": metadata.get("to_status") or metadata.get("status"),
            },
        )


@dataclass
class WebhookNotifier:
    url: str
    timeout_seconds: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    async def notify(self, *, event_type: str, metadata: dict[str, object]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            response = await client.post(self.url, json={"event_type": event_type, "metadata": metadata})
        response.raise_for_status()


@dataclass
class InMemoryActorDirectory:
    actors: dict[str, Actor] = field(default_factory=dict)

    def get_actor(self, *, actor_id: str) -> Actor | None:
        return self.actors.get(actor_id)

    def add(self, actor: Actor) -> None:
        self.actors[actor.actor_id] = actor


def load_actor_directory(*, file_path: str | Path) -> InMemoryActorDirectory:
    """Read actors and their scope grants from YAML.

    Expected shape::

        actors:
          - id: editor-1
            system_scopes: []
            venue_scopes:
              journal-a: ["site:submissions:update"]
    """
    data = yaml.safe_load(Path(file_path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict) or not isinstance(data.get("actors"), list):
        raise ConfigurationError(f"actor directory {file_path} must contain an actors list")

    directory = InMemoryActorDirectory()
    for index, item in enumerate(data["actors"]):
        if not isinstance(item, dict) or not isinstance(item.get("id"), str) or not item["id"]:
            raise ConfigurationError(f"actor {index} must have a non-empty id")
        venue_scopes = item.get("venue_scopes") or {}
        if not isinstance(venue_scopes, dict):
            raise ConfigurationError(f"actor {item['id']}: venue_scopes must be object")
        directory.add(
            Actor(
                actor_id=item["id"],
                system_scopes=frozenset(item.get("system_scopes") or ()),
                venue_scopes={str(venue): frozenset(scopes or ()) for venue, scopes in venue_scopes.items()},
            )
        )
    return directory
