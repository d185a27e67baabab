"""Tests for RefreshScheduler and the refresh task."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from refresher.enums import ArtifactFamily, RunStatus
from refresher.exceptions import StoreUnavailableError
from refresher.models.domain import RunSummary
from refresher.observability import health_state
from refresher.scheduler.refresh_scheduler import RefreshScheduler
from refresher.scheduler.refresh_task import any_failed, refresh_all_families
from tests.support import NOW, FixedClock


def summary(family: ArtifactFamily, status: RunStatus = RunStatus.DONE) -> RunSummary:
    return RunSummary(run_id=f"run-{family.value}", family=family, status=status, started_at=NOW)


def make_coordinator(family: ArtifactFamily, *, result=None, error=None, last=None):
    coordinator = MagicMock()
    coordinator.family = family
    coordinator.run_once = AsyncMock(return_value=result, side_effect=error)
    coordinator.last_summary = last
    return coordinator


class TestRefreshAllFamilies:
    async def test_runs_every_family_in_order(self):
        audio = make_coordinator(
            ArtifactFamily.AUDIO_RECORD, result=summary(ArtifactFamily.AUDIO_RECORD)
        )
        chunk = make_coordinator(ArtifactFamily.CHUNK, result=summary(ArtifactFamily.CHUNK))

        summaries = await refresh_all_families([audio, chunk])

        assert [s.family for s in summaries] == [
            ArtifactFamily.AUDIO_RECORD,
            ArtifactFamily.CHUNK,
        ]
        assert any_failed(summaries) is False

    async def test_scan_failure_does_not_stop_other_families(self):
        failed = summary(ArtifactFamily.AUDIO_RECORD, RunStatus.FAILED)
        audio = make_coordinator(
            ArtifactFamily.AUDIO_RECORD,
            error=StoreUnavailableError("db down"),
            last=failed,
        )
        chunk = make_coordinator(ArtifactFamily.CHUNK, result=summary(ArtifactFamily.CHUNK))

        summaries = await refresh_all_families([audio, chunk])

        assert summaries == [failed, summary(ArtifactFamily.CHUNK)]
        assert any_failed(summaries) is True
        chunk.run_once.assert_awaited_once()

    async def test_unexpected_error_is_reported_and_others_still_run(self):
        audio = make_coordinator(ArtifactFamily.AUDIO_RECORD, error=RuntimeError("bug"))
        chunk = make_coordinator(ArtifactFamily.CHUNK, result=summary(ArtifactFamily.CHUNK))

        summaries = await refresh_all_families([audio, chunk])

        assert [s.family for s in summaries] == [
            ArtifactFamily.AUDIO_RECORD,
            ArtifactFamily.CHUNK,
        ]
        assert summaries[0].status == RunStatus.FAILED
        assert summaries[0].error == "bug"
        assert summaries[1].status == RunStatus.DONE
        assert any_failed(summaries) is True
        chunk.run_once.assert_awaited_once()

    async def test_refresh_error_without_recorded_summary_is_reported(self):
        audio = make_coordinator(
            ArtifactFamily.AUDIO_RECORD, error=StoreUnavailableError("db down")
        )

        summaries = await refresh_all_families([audio])

        assert [s.status for s in summaries] == [RunStatus.FAILED]
        assert summaries[0].error == "db down"


class TestRefreshScheduler:
    def test_next_run_follows_cron(self):
        scheduler = RefreshScheduler([], "0 3 * * *", clock=FixedClock())

        assert scheduler.compute_next_run() == datetime(2026, 3, 2, 3, 0, 0)
        assert scheduler.compute_next_run(datetime(2026, 3, 1, 2, 0, 0)) == datetime(
            2026, 3, 1, 3, 0, 0
        )

    def test_invalid_cron_is_rejected(self):
        with pytest.raises(ValueError):
            RefreshScheduler([], "not a cron")

    async def test_start_and_stop(self):
        scheduler = RefreshScheduler([], "0 3 * * *", clock=FixedClock())

        await scheduler.start()
        assert scheduler.is_running is True
        await asyncio.sleep(0)
        assert scheduler.next_run_at == datetime(2026, 3, 2, 3, 0, 0)
        assert health_state.snapshot().next_run_at == scheduler.next_run_at

        await scheduler.stop()
        assert scheduler.is_running is False
        assert scheduler.next_run_at is None

    async def test_run_on_startup_runs_all_families(self):
        coordinator = make_coordinator(
            ArtifactFamily.CHUNK, result=summary(ArtifactFamily.CHUNK)
        )
        scheduler = RefreshScheduler(
            [coordinator], "0 3 * * *", run_on_startup=True, clock=FixedClock()
        )

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        coordinator.run_once.assert_awaited_once()

    async def test_loop_fires_when_occurrence_is_due(self):
        clock = FixedClock()
        coordinator = make_coordinator(
            ArtifactFamily.CHUNK, result=summary(ArtifactFamily.CHUNK)
        )
        scheduler = RefreshScheduler([coordinator], "0 3 * * *", clock=clock)
        scheduler.compute_next_run = lambda after=None: clock()

        await scheduler.start()
        for _ in range(50):
            if coordinator.run_once.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert coordinator.run_once.await_count >= 2

    async def test_loop_survives_failing_runs(self):
        clock = FixedClock()
        coordinator = make_coordinator(ArtifactFamily.CHUNK, error=RuntimeError("bug"))
        scheduler = RefreshScheduler([coordinator], "0 3 * * *", clock=clock)
        scheduler.compute_next_run = lambda after=None: clock()

        await scheduler.start()
        for _ in range(50):
            if coordinator.run_once.await_count >= 2:
                break
            await asyncio.sleep(0.01)

        assert scheduler.is_running is True
        await scheduler.stop()
        assert coordinator.run_once.await_count >= 2
