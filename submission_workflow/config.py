from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os

from submission_workflow.domain.errors import ConfigurationError


@dataclass(frozen=True)
class JobPollSettings:
    interval_ms: int = 2000
    max_attempts: int = 150
    timeout_seconds: int = 900


@dataclass(frozen=True)
class RuntimeSettings:
    database_url: str | None = None
    # None selects the workflows packaged with submission_workflow.
    workflow_dir: str | None = None
    venue_workflows: Mapping[str, str] = field(default_factory=dict)
    default_workflow: str | None = "SIMPLE"
    actors_file: str | None = None
    notify_webhook_url: str | None = None
    job_poll: JobPollSettings = field(default_factory=JobPollSettings)


def runtime_settings_from_env() -> RuntimeSettings:
    default_workflow = os.getenv("DEFAULT_WORKFLOW", "SIMPLE").strip()
    return RuntimeSettings(
        database_url=env_str("DATABASE_URL"),
        workflow_dir=env_str("WORKFLOW_DIR"),
        venue_workflows=parse_venue_workflows(os.getenv("VENUE_WORKFLOWS", "")),
        default_workflow=default_workflow or None,
        actors_file=env_str("ACTORS_FILE"),
        notify_webhook_url=env_str("NOTIFY_WEBHOOK_URL"),
        job_poll=JobPollSettings(
            interval_ms=env_positive_int("JOB_POLL_INTERVAL_MS", 2000),
            max_attempts=env_positive_int("JOB_POLL_MAX_ATTEMPTS", 150),
            timeout_seconds=env_positive_int("JOB_TIMEOUT_SECONDS", 900),
        ),
    )


def parse_venue_workflows(value: str) -> dict[str, str]:
    """Parse ``venue=WORKFLOW,venue2=WORKFLOW2``."""
    mapping: dict[str, str] = {}
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        venue, sep, workflow = chunk.partition("=")
        if not sep or not venue.strip() or not workflow.strip():
            raise ConfigurationError(f"VENUE_WORKFLOWS entry '{chunk}' must look like venue=WORKFLOW")
        mapping[venue.strip()] = workflow.strip()
    return mapping


def env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def env_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default

    try:
        parsed = int(value)
    except ValueError:
        return default

    return parsed if parsed > 0 else default
