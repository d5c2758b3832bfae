import json
import logging

import pytest

from submission_workflow.config import JobPollSettings, RuntimeSettings, parse_venue_workflows, runtime_settings_from_env
from submission_workflow.domain.errors import ConfigurationError
from submission_workflow.logging_setup import JsonFormatter, log_level_from_env
from submission_workflow.workers.runner import WorkerRuntimeSettings, worker_runtime_settings_from_env


@pytest.mark.unit
def test_runtime_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DATABASE_URL",
        "WORKFLOW_DIR",
        "VENUE_WORKFLOWS",
        "DEFAULT_WORKFLOW",
        "ACTORS_FILE",
        "NOTIFY_WEBHOOK_URL",
        "JOB_POLL_INTERVAL_MS",
        "JOB_POLL_MAX_ATTEMPTS",
        "JOB_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    assert runtime_settings_from_env() == RuntimeSettings()


@pytest.mark.unit
def test_runtime_settings_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgres://app:app@db:5432/app")
    monkeypatch.setenv("VENUE_WORKFLOWS", "journal-a=OPEN_REVIEW, journal-b=PRIVATE")
    monkeypatch.setenv("DEFAULT_WORKFLOW", "")
    monkeypatch.setenv("JOB_POLL_INTERVAL_MS", "500")
    monkeypatch.setenv("JOB_POLL_MAX_ATTEMPTS", "abc")
    monkeypatch.setenv("JOB_TIMEOUT_SECONDS", "-1")

    settings = runtime_settings_from_env()

    assert settings.database_url == "postgres://app:app@db:5432/app"
    assert dict(settings.venue_workflows) == {"journal-a": "OPEN_REVIEW", "journal-b": "PRIVATE"}
    assert settings.default_workflow is None
    assert settings.job_poll == JobPollSettings(interval_ms=500)


@pytest.mark.unit
def test_malformed_venue_mapping_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        parse_venue_workflows("journal-a=OPEN_REVIEW,journal-b")


@pytest.mark.unit
def test_worker_runtime_settings_fall_back_on_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_POLL_INTERVAL_MS", "abc")
    monkeypatch.setenv("WORKER_IDLE_BACKOFF_MS", "0")
    monkeypatch.setenv("WORKER_ERROR_BACKOFF_MS", "-10")
    monkeypatch.delenv("WORKER_RECONCILE_BATCH_SIZE", raising=False)

    assert worker_runtime_settings_from_env() == WorkerRuntimeSettings()


@pytest.mark.unit
def test_json_formatter_keeps_structured_fields_only() -> None:
    record = logging.LogRecord("workflow.executor", logging.INFO, __file__, 1, "transition applied", None, None)
    record.submission_version_id = "sv_1"
    record.transition = "publish"
    record.password = "secret"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "transition applied"
    assert payload["logger"] == "workflow.executor"
    assert payload["submission_version_id"] == "sv_1"
    assert payload["transition"] == "publish"
    assert "password" not in payload


@pytest.mark.unit
def test_log_level_from_env_ignores_unknown_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert log_level_from_env() == logging.DEBUG

    monkeypatch.setenv("LOG_LEVEL", "chatty")
    assert log_level_from_env() == logging.INFO
