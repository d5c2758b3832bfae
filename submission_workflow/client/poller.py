from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging
from typing import Generic, TypeVar

from submission_workflow.domain.errors import PollingExhaustedError

logger = logging.getLogger("workflow.client")
T = TypeVar("T")


@dataclass(frozen=True)
class PollerConfig:
    interval_seconds: float = 2.0
    enabled: bool = True
    poll_immediately: bool = True
    # Consecutive fetch failures tolerated before polling gives up.
    num_retries: int = 3


@dataclass
class JobPoller(Generic[T]):
    """Polls ``fetch`` on a fixed interval until ``should_stop`` accepts a result.

    Runs as one asyncio task. ``stop()`` cancels it immediately, so a torn
    down session never leaves a timer behind. Transient fetch failures are
    retried silently up to ``config.num_retries`` times in a row; after that
    ``on_error`` receives a ``PollingExhaustedError`` and polling ends. A
    callback that raises ends polling the same way.
    """

    fetch: Callable[[], Awaitable[T]]
    should_stop: Callable[[T], bool]
    on_complete: Callable[[T], None] | None = None
    on_error: Callable[[PollingExhaustedError], None] | None = None
    on_result: Callable[[T], None] | None = None
    config: PollerConfig = field(default_factory=PollerConfig)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    last_result: T | None = field(default=None, init=False)
    error: PollingExhaustedError | None = field(default=None, init=False)
    polls_total: int = field(default=0, init=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)
    _enabled: bool = field(default=True, init=False, repr=False)
    _finished: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._enabled = self.config.enabled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self) -> None:
        if not self._enabled or self._finished or self.running:
            return
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if enabled:
            self.start()
        else:
            self.stop()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def aclose(self) -> None:
        self.stop()
        await self.wait()

    async def _run(self) -> None:
        interval = self.config.interval_seconds
        if not self.config.poll_immediately:
            await self.sleep(interval)

        failures = 0
        while True:
            self.polls_total += 1
            try:
                result = await self.fetch()
            except Exception as exc:
                failures += 1
                if failures > self.config.num_retries:
                    self._finish_with_error(exc, failures=failures)
                    return
                logger.warning(
                    "poll failed, retrying",
                    extra={"phase": "poll", "status": f"{failures}/{self.config.num_retries}"},
                )
            else:
                failures = 0
                self.last_result = result
                try:
                    done = self._deliver(result)
                except Exception as exc:
                    logger.exception("poll result handler raised", extra={"phase": "poll"})
                    self._fail(f"poll result handler raised: {exc}", exc)
                    return
                if done:
                    return
            await self.sleep(interval)

    def _deliver(self, result: T) -> bool:
        if self.on_result is not None:
            self.on_result(result)
        if not self.should_stop(result):
            return False
        self._finished = True
        if self.on_complete is not None:
            self.on_complete(result)
        return True

    def _finish_with_error(self, exc: Exception, *, failures: int) -> None:
        logger.error("polling exhausted", extra={"phase": "poll"})
        self._fail(f"polling stopped after {failures} consecutive failures: {exc}", exc)

    def _fail(self, message: str, exc: Exception) -> None:
        error = PollingExhaustedError(message)
        error.__cause__ = exc
        self.error = error
        self._finished = True
        if self.on_error is not None:
            self.on_error(error)
