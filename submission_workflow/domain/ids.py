from __future__ import annotations

import importlib

ulid_module = importlib.import_module("ulid")


def new_submission_public_id() -> str:
    return f"sub_{ulid_module.new().str}"


def new_submission_version_id() -> str:
    return f"sv_{ulid_module.new().str}"


def new_job_id() -> str:
    return f"job_{ulid_module.new().str}"


def new_activity_id() -> str:
    return f"act_{ulid_module.new().str}"
