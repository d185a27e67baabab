"""Refresh coordinator: drives one batch run for one artifact family.

A run moves through idle -> scanning -> refreshing -> done, or ends in
failed when the scan itself cannot complete. Per-artifact failures are
caught at the artifact boundary and recorded in the run summary; they never
cancel sibling artifacts.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from refresher.enums import ArtifactFamily, FailureReason, RunState, RunStatus
from refresher.exceptions import RefreshError, RefreshTimeoutError, StoreUnavailableError
from refresher.models.domain import Artifact, ArtifactFailure, RunSummary
from refresher.services.expiry_scanner import ExpiryScanner
from refresher.utils.time import utcnow

if TYPE_CHECKING:
    from refresher.dao.artifact_dao import ArtifactStore
    from refresher.dao.refresh_lock_dao import RefreshLockDAO
    from refresher.dao.refresh_run_dao import RefreshRunDAO
    from refresher.database import Database
    from refresher.services.url_refresher import UrlRefresher

logger = logging.getLogger(__name__)

StoreFactory = Callable[[AsyncSession], "ArtifactStore"]


class RefreshCoordinator:
    """Runs the expiring-URL refresh for a single artifact family.

    The database is the run's resource handle: one session (and so one
    pooled connection) is checked out per run and returned on every exit
    path, including scan failure, timeout, and cancellation.
    """

    def __init__(
        self,
        family: ArtifactFamily,
        database: "Database",
        store_factory: StoreFactory,
        url_refresher: "UrlRefresher",
        *,
        lookahead: timedelta,
        lock_dao: "RefreshLockDAO | None" = None,
        run_dao: "RefreshRunDAO | None" = None,
        max_concurrency: int = 8,
        run_timeout_seconds: float | None = None,
        instance_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
        on_summary: Callable[[RunSummary], None] | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            family: Artifact family this coordinator refreshes.
            database: Database whose session is scoped to each run.
            store_factory: Builds the family's ArtifactStore on a session.
            url_refresher: Mints replacement URLs.
            lookahead: How far ahead of now an expiry counts as expiring.
            lock_dao: Cross-instance lock; None limits overlap to this process.
            run_dao: Run history sink; None disables persistence.
            max_concurrency: Upper bound on artifacts refreshed at once.
            run_timeout_seconds: Soft deadline for the whole run, scan included.
            instance_id: Identifier written to lock rows.
            clock: Source of "now" for scans.
            on_summary: Callback receiving every finished summary.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.family = family
        self._database = database
        self._store_factory = store_factory
        self._url_refresher = url_refresher
        self._lookahead = lookahead
        self._lock_dao = lock_dao
        self._run_dao = run_dao
        self._max_concurrency = max_concurrency
        self._run_timeout_seconds = run_timeout_seconds
        self.instance_id = instance_id or str(uuid4())
        self._clock = clock
        self._on_summary = on_summary

        self._run_lock = asyncio.Lock()
        self._state = RunState.IDLE
        self._last_summary: RunSummary | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def last_summary(self) -> RunSummary | None:
        """Summary of the most recent finished (non-skipped) run."""
        return self._last_summary

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    async def run_once(self) -> RunSummary:
        """Run one refresh batch for this family.

        Returns:
            The run summary. Status is `skipped` when another run for the
            family is already in flight.

        Raises:
            StoreUnavailableError: If the scan could not be performed. The
                summary is still recorded before raising.
        """
        if self._run_lock.locked():
            return self._skipped("a run is already in progress in this process")

        async with self._run_lock:
            summary = RunSummary(
                run_id=str(uuid4()),
                family=self.family,
                started_at=utcnow(),
            )
            deadline = self._deadline()

            lock_held = False
            if self._lock_dao is not None:
                try:
                    lock_held = await self._lock_dao.try_acquire_lock(
                        self.family, self.instance_id
                    )
                except (SQLAlchemyError, OSError) as e:
                    error = StoreUnavailableError(
                        f"Failed to acquire refresh lock for {self.family.value}: {e}"
                    )
                    await self._fail(summary, error)
                    raise error from e

                if not lock_held:
                    return self._skipped("another instance holds the refresh lock")

            try:
                await self._execute(summary, deadline)
            finally:
                if lock_held:
                    await self._release_lock()

            await self._finish(summary)
            return summary

    def _deadline(self) -> float | None:
        if self._run_timeout_seconds is None:
            return None
        return asyncio.get_running_loop().time() + self._run_timeout_seconds

    @staticmethod
    def _remaining(deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return max(0.0, deadline - asyncio.get_running_loop().time())

    async def _execute(self, summary: RunSummary, deadline: float | None) -> None:
        artifacts: list[Artifact] | None = None
        try:
            async with self._database.session() as session:
                store = self._store_factory(session)
                self._state = RunState.SCANNING
                scanner = ExpiryScanner(store, clock=self._clock)
                try:
                    artifacts = await asyncio.wait_for(
                        scanner.find_expiring(self._lookahead),
                        timeout=self._remaining(deadline),
                    )
                except asyncio.TimeoutError as e:
                    raise StoreUnavailableError(
                        f"Scan of {self.family.value} did not finish within the "
                        f"{self._run_timeout_seconds:g}s run deadline"
                    ) from e
                summary.scanned = len(artifacts)

                if artifacts:
                    self._state = RunState.REFRESHING
                    await self._refresh_all(
                        store, artifacts, summary, timeout=self._remaining(deadline)
                    )
        except StoreUnavailableError as e:
            await self._fail(summary, e)
            raise
        except (SQLAlchemyError, OSError) as e:
            if artifacts is None:
                error = StoreUnavailableError(
                    f"Failed to open a session for {self.family.value}: {e}"
                )
                await self._fail(summary, error)
                raise error from e
            # Every artifact write was already committed individually.
            logger.warning(
                "Closing the %s run session failed: %s", self.family.value, e
            )

    async def _refresh_all(
        self,
        store: "ArtifactStore",
        artifacts: list[Artifact],
        summary: RunSummary,
        *,
        timeout: float | None,
    ) -> None:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        started: set[str] = set()

        async def worker(artifact: Artifact) -> ArtifactFailure | None:
            async with semaphore:
                started.add(artifact.id)
                return await self._refresh_one(store, artifact)

        tasks = {asyncio.create_task(worker(a)): a for a in artifacts}
        try:
            done, pending = await asyncio.wait(tasks, timeout=timeout)
        finally:
            unfinished = [t for t in tasks if not t.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        if pending:
            summary.timed_out = True
            logger.warning(
                "Refresh run for %s hit its %.0fs deadline with %d artifact(s) outstanding",
                self.family.value,
                self._run_timeout_seconds or 0,
                len(pending),
            )

        for task, artifact in tasks.items():
            if task in done:
                failure = self._task_outcome(task, artifact)
                if failure is None:
                    summary.succeeded += 1
                else:
                    summary.failed.append(failure)
            elif artifact.id in started:
                error = RefreshTimeoutError(
                    f"Run deadline reached while refreshing '{artifact.id}'"
                )
                summary.failed.append(
                    ArtifactFailure(id=artifact.id, reason=error.reason, detail=str(error))
                )
            else:
                summary.not_reached += 1

    @staticmethod
    def _task_outcome(
        task: "asyncio.Task[ArtifactFailure | None]",
        artifact: Artifact,
    ) -> ArtifactFailure | None:
        if task.cancelled():
            return ArtifactFailure(
                id=artifact.id,
                reason=FailureReason.TIMEOUT,
                detail="refresh was cancelled",
            )
        error = task.exception()
        if error is not None:
            return ArtifactFailure(
                id=artifact.id,
                reason=FailureReason.UNEXPECTED,
                detail=str(error),
            )
        return task.result()

    async def _refresh_one(
        self,
        store: "ArtifactStore",
        artifact: Artifact,
    ) -> ArtifactFailure | None:
        """Refresh and persist one artifact; never raises for artifact errors."""
        try:
            refreshed = await self._url_refresher.refresh(artifact)
            await store.update_url(
                artifact.id, refreshed.access_url, refreshed.url_expires_at
            )
        except RefreshError as e:
            logger.warning(
                "Could not refresh %s '%s' (%s): %s",
                self.family.value,
                artifact.id,
                e.reason.value,
                e,
            )
            return ArtifactFailure(id=artifact.id, reason=e.reason, detail=str(e))
        except Exception as e:
            logger.exception(
                "Unexpected error refreshing %s '%s'", self.family.value, artifact.id
            )
            return ArtifactFailure(
                id=artifact.id,
                reason=FailureReason.UNEXPECTED,
                detail=str(e),
            )

        logger.debug(
            "Updated %s '%s' with new signed URL (expires %s)",
            self.family.value,
            artifact.id,
            refreshed.url_expires_at.isoformat(),
        )
        return None

    async def _release_lock(self) -> None:
        if self._lock_dao is None:
            return
        try:
            await self._lock_dao.release_lock(self.family, self.instance_id)
        except Exception as e:
            # The lock times out on its own; the next run can take it over.
            logger.error(
                "Failed to release refresh lock for %s: %s", self.family.value, e
            )

    async def _fail(self, summary: RunSummary, error: Exception) -> None:
        summary.status = RunStatus.FAILED
        summary.error = str(error)
        self._state = RunState.FAILED
        await self._finish(summary)

    async def _finish(self, summary: RunSummary) -> None:
        summary.finished_at = utcnow()
        if summary.status != RunStatus.FAILED:
            self._state = RunState.DONE
        self._last_summary = summary
        self._log_summary(summary)

        if self._run_dao is not None:
            try:
                await self._run_dao.record(summary)
            except Exception as e:
                logger.error(
                    "Failed to record %s run %s: %s",
                    self.family.value,
                    summary.run_id,
                    e,
                )

        if self._on_summary is not None:
            try:
                self._on_summary(summary)
            except Exception as e:
                logger.error("Run summary callback failed: %s", e)

    def _log_summary(self, summary: RunSummary) -> None:
        if summary.status == RunStatus.FAILED:
            logger.error(
                "Refresh run for %s failed before touching any artifact: %s",
                self.family.value,
                summary.error,
            )
            return

        if summary.store_unavailable_on_all:
            logger.error(
                "Refresh run for %s: store unavailable for all %d artifact(s)",
                self.family.value,
                summary.scanned,
            )
            return

        log = logger.warning if summary.failed or summary.timed_out else logger.info
        log(
            "Refresh run for %s finished: scanned=%d succeeded=%d failed=%d not_reached=%d",
            self.family.value,
            summary.scanned,
            summary.succeeded,
            summary.failed_count,
            summary.not_reached,
        )

    def _skipped(self, why: str) -> RunSummary:
        logger.info("Skipping refresh run for %s: %s", self.family.value, why)
        now = utcnow()
        return RunSummary(
            run_id=str(uuid4()),
            family=self.family,
            status=RunStatus.SKIPPED,
            started_at=now,
            finished_at=now,
            error=why,
        )
