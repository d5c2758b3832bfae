from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from submission_workflow.config import env_positive_int
from submission_workflow.workers.loop import WorkerLoop


@dataclass(frozen=True)
class WorkerRuntimeSettings:
    poll_interval_ms: int = 200
    idle_backoff_ms: int = 1000
    error_backoff_ms: int = 2000
    reconcile_batch_size: int = 100


@dataclass
class WorkerRuntimeState:
    started: bool = False
    stopped: bool = False
    ticks_total: int = 0
    work_ticks_total: int = 0
    idle_ticks_total: int = 0
    errors_total: int = 0

    def record_tick(self, did_work: bool, settings: WorkerRuntimeSettings) -> int:
        """Count a completed tick and return the delay before the next one, in ms."""
        self.ticks_total += 1
        if did_work:
            self.work_ticks_total += 1
            return settings.poll_interval_ms
        self.idle_ticks_total += 1
        return settings.idle_backoff_ms

    def record_error(self, settings: WorkerRuntimeSettings) -> int:
        self.ticks_total += 1
        self.errors_total += 1
        return settings.error_backoff_ms


def worker_runtime_settings_from_env() -> WorkerRuntimeSettings:
    return WorkerRuntimeSettings(
        poll_interval_ms=env_positive_int("WORKER_POLL_INTERVAL_MS", 200),
        idle_backoff_ms=env_positive_int("WORKER_IDLE_BACKOFF_MS", 1000),
        error_backoff_ms=env_positive_int("WORKER_ERROR_BACKOFF_MS", 2000),
        reconcile_batch_size=env_positive_int("WORKER_RECONCILE_BATCH_SIZE", 100),
    )


async def run_worker_until_stopped(
    *,
    worker_loop: WorkerLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: WorkerRuntimeSettings,
    logger: logging.Logger,
    state: WorkerRuntimeState | None = None,
) -> None:
    """Tick ``worker_loop`` until ``stop_event`` is set.

    A tick that raises is counted and logged, then the loop backs off and
    keeps going; only the stop event ends it.
    """
    state = state if state is not None else WorkerRuntimeState()
    log_extra = {"role": role, "service": role, "run_id": run_id, "phase": worker_loop.name}
    state.started = True
    logger.info("worker loop started", extra=log_extra)

    while not stop_event.is_set():
        try:
            did_work = await worker_loop.run_once()
        except Exception:
            delay_ms = state.record_error(settings)
            logger.exception("worker tick error", extra=log_extra)
        else:
            delay_ms = state.record_tick(did_work, settings)
            logger.debug("worker tick", extra={**log_extra, "did_work": str(did_work).lower()})

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000)
        except TimeoutError:
            continue

    state.stopped = True
    logger.info("worker loop stopped", extra=log_extra)
