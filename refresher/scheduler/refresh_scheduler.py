"""Background scheduler for recurring signed URL refreshes.

Fires every enabled family's refresh run on a cron recurrence. The loop
never dies on a failed run; failures are logged and the next occurrence is
scheduled as usual.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Sequence

from croniter import croniter

from refresher.observability.health_state import set_next_run
from refresher.scheduler.refresh_task import refresh_all_families
from refresher.utils.time import utcnow

if TYPE_CHECKING:
    from refresher.services.refresh_coordinator import RefreshCoordinator

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """In-process trigger for the refresh coordinators.

    Sleeps until the next cron occurrence (or until stop is signaled), then
    runs all families. Occurrences missed while a run was in progress are
    not replayed.
    """

    def __init__(
        self,
        coordinators: Sequence["RefreshCoordinator"],
        cron_expression: str,
        *,
        run_on_startup: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the refresh scheduler.

        Args:
            coordinators: Coordinators to run on every occurrence.
            cron_expression: Standard 5-field cron expression (UTC).
            run_on_startup: Run once immediately when the loop starts.
            clock: Source of "now" for computing occurrences.
        """
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression!r}")

        self.coordinators = list(coordinators)
        self.cron_expression = cron_expression
        self.run_on_startup = run_on_startup
        self._clock = clock

        self._running = False
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._next_run_at: datetime | None = None

        logger.info(
            "RefreshScheduler initialized for %d family(ies) with cron '%s'",
            len(self.coordinators),
            cron_expression,
        )

    def compute_next_run(self, after: datetime | None = None) -> datetime:
        """Return the first cron occurrence strictly after `after` (default now)."""
        cron = croniter(self.cron_expression, after or self._clock())
        return cron.get_next(datetime)

    @property
    def next_run_at(self) -> datetime | None:
        return self._next_run_at

    async def start(self) -> None:
        """Start the scheduler background task."""
        if self._running:
            logger.warning("RefreshScheduler is already running")
            return

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())

        logger.info("RefreshScheduler started")

    async def stop(self) -> None:
        """Stop the scheduler gracefully.

        An in-flight run gets a short grace period before it is cancelled.
        """
        if not self._running:
            logger.warning("RefreshScheduler is not running")
            return

        logger.info("Stopping RefreshScheduler...")
        self._running = False
        self._stop_event.set()

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning(
                    "RefreshScheduler task did not stop gracefully, cancelling"
                )
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            except asyncio.CancelledError:
                pass
            finally:
                self._task = None

        self._next_run_at = None
        set_next_run(None)
        logger.info("RefreshScheduler stopped")

    async def run_now(self) -> None:
        """Run every family once, logging instead of raising."""
        try:
            await refresh_all_families(self.coordinators)
        except Exception as e:
            logger.exception("Error in scheduled refresh: %s", e)

    async def _run_loop(self) -> None:
        logger.info("Refresh loop started")

        if self.run_on_startup:
            await self.run_now()

        while self._running:
            self._next_run_at = self.compute_next_run()
            set_next_run(self._next_run_at)
            delay = max(0.0, (self._next_run_at - self._clock()).total_seconds())
            logger.info(
                "Next refresh run at %s (in %.0f seconds)",
                self._next_run_at.isoformat(),
                delay,
            )

            # Wait for the next occurrence or until stop is signaled
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            if not self._running:
                break
            await self.run_now()

        logger.info("Refresh loop ended")

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is currently running."""
        return self._running
