from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid

from fastapi import FastAPI
import uvicorn

from submission_workflow.api.http_app import build_app
from submission_workflow.domain.errors import ConfigurationError
from submission_workflow.domain.registry import WorkflowRegistry
from submission_workflow.logging_setup import configure_logging
from submission_workflow.roles import ROLE_DESCRIPTIONS, RuntimeRole, validate_role
from submission_workflow.services.bootstrap import RuntimeContainer, build_runtime_container

logger = logging.getLogger("runtime")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Submission workflow runtime entrypoint")
    parser.add_argument(
        "--role",
        required=True,
        help="Runtime role: " + "; ".join(f"{name} {text}" for name, text in ROLE_DESCRIPTIONS.items()),
    )
    parser.add_argument("--host", default=os.getenv("APP_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument(
        "--dry-run-startup",
        action="store_true",
        help="Load workflows and wire dependencies, then exit",
    )
    parser.add_argument(
        "--check-workflows",
        action="store_true",
        help="Print the loaded workflows and venue mapping, then exit",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable code reload (dev mode)",
    )
    return parser.parse_args(argv)


def _runtime_app(container: RuntimeContainer, *, role: RuntimeRole, run_id: str) -> FastAPI:
    return build_app(
        role=role.name,
        run_id=run_id,
        worker_loop=container.worker_loop,
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
    )


def create_runtime_app() -> FastAPI:
    """Factory used by ``uvicorn --reload``; the role comes from ``APP_ROLE``."""
    role = validate_role(os.getenv("APP_ROLE", "api"))
    configure_logging()
    return _runtime_app(build_runtime_container(role), role=role, run_id=str(uuid.uuid4()))


def describe_registry(registry: WorkflowRegistry) -> list[str]:
    lines: list[str] = []
    for name in sorted(registry.workflows):
        workflow = registry.workflows[name]
        job_linked = sum(1 for item in workflow.transitions if item.requires_job)
        lines.append(
            f"{name}: initial={workflow.initial_state} states={len(workflow.states)} "
            f"transitions={len(workflow.transitions)} job_linked={job_linked}"
        )
    for venue in sorted(registry.venues):
        lines.append(f"venue {venue} -> {registry.venues[venue]}")
    if registry.default_workflow is not None:
        lines.append(f"default -> {registry.default_workflow}")
    return lines


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        role = validate_role(args.role)
    except ValueError as exc:
        sys.stderr.write(f"ERROR: {exc}\n")
        return 2

    configure_logging()
    run_id = str(uuid.uuid4())
    log_extra = {"role": role.name, "service": role.name, "run_id": run_id}
    logger.info("runtime initialized", extra=log_extra)

    try:
        container = build_runtime_container(role)
    except ConfigurationError as exc:
        sys.stderr.write(f"ERROR: {exc}\n")
        return 1

    if args.check_workflows:
        sys.stdout.write("\n".join(describe_registry(container.registry)) + "\n")
        return 0
    if args.dry_run_startup:
        logger.info("dry-run startup complete", extra=log_extra)
        return 0

    port = args.port if args.port is not None else role.default_port
    if args.reload:
        os.environ["APP_ROLE"] = role.name
        uvicorn.run(
            "submission_workflow.main:create_runtime_app",
            host=args.host,
            port=port,
            log_level="warning",
            reload=True,
            factory=True,
        )
        return 0

    uvicorn.run(_runtime_app(container, role=role, run_id=run_id), host=args.host, port=port, log_level="warning")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
