"""
PollScheduler — periodic re-check of tracked resources.

The scheduler is a timer and nothing else: it owns no resource state,
it only submits checks to the ProvisionController.

Cadence
───────
Round ``n`` fires at ``started_at + n * interval``, starting with ``n = 0``:
the first round fires as soon as the loop runs, with no initial delay.
A round submits one check per id without awaiting them,
so a slow backend never delays the next round; if a check for an id is
still outstanding, the controller's guard absorbs the new request.  If
the loop falls behind (e.g. the process was suspended), missed rounds
are skipped rather than fired in a burst.

Lifecycle
─────────
``stop()`` cancels the loop task and sets a flag checked before every
submit, so once ``stop()`` returns no further check is issued.  It may
be called any number of times, including before ``start()``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable

from readiness.core.services.provision import ProvisionController

logger = logging.getLogger(__name__)

AsyncSleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


class PollScheduler:
    """Fixed-cadence poller driving ``ProvisionController.submit_check``.

    Args:
        controller: Controller that receives the checks.
        async_sleep: Sleep coroutine (injectable for tests).
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        controller: ProvisionController,
        *,
        async_sleep: AsyncSleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self._controller = controller
        self._async_sleep = async_sleep
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._closing: asyncio.Task[None] | None = None
        self._resource_ids: tuple[str, ...] = ()
        self._interval: float = 0.0
        self._stopped = True
        self._rounds = 0

    # ── Properties ──────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    @property
    def rounds(self) -> int:
        """Number of rounds fired since the last ``start``."""
        return self._rounds

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def resource_ids(self) -> tuple[str, ...]:
        return self._resource_ids

    # ── Lifecycle ───────────────────────────────────────────────

    def start(
        self,
        resource_ids: Iterable[str],
        interval: float,
    ) -> None:
        """Begin polling ``resource_ids`` every ``interval`` seconds.

        The first round fires right away.  If already running, the current
        loop is stopped and replaced.
        """
        if interval <= 0:
            raise ValueError("interval must be greater than zero")
        if self.running:
            logger.info("Restarting poll scheduler")
        self.stop()

        self._resource_ids = tuple(dict.fromkeys(resource_ids))
        self._interval = interval
        self._rounds = 0
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(
            self._run_loop(), name="poll-scheduler"
        )
        logger.info(
            "Polling %s every %gs", ", ".join(self._resource_ids) or "(nothing)", interval
        )

    def stop(self) -> None:
        """Cancel all pending and future ticks."""
        was_running = not self._stopped
        self._stopped = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            self._closing = task
        if was_running:
            logger.info("Stopped poll scheduler after %d round(s)", self._rounds)

    async def wait_closed(self) -> None:
        """Wait for the cancelled loop task to finish after ``stop()``."""
        task, self._closing = self._closing, None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ── Loop ────────────────────────────────────────────────────

    async def _run_loop(self) -> None:
        next_at = self._clock()
        self._fire_round()
        while not self._stopped:
            next_at += self._interval
            now = self._clock()
            if next_at <= now:
                skipped = int((now - next_at) // self._interval) + 1
                next_at += skipped * self._interval
                logger.debug("Poll scheduler behind, skipped %d round(s)", skipped)
            await self._async_sleep(next_at - now)
            if not self._stopped:
                self._fire_round()

    def _fire_round(self) -> None:
        self._rounds += 1
        for resource_id in self._resource_ids:
            if self._stopped:
                return
            try:
                self._controller.submit_check(resource_id)
            except Exception:
                logger.exception("Poll check for %s could not be submitted", resource_id)
