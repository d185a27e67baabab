"""Tests for application wiring."""

from datetime import timedelta

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from refresher.config import RefresherConfig
from refresher.enums import ArtifactFamily, RunStatus
from refresher.main import Application
from refresher.models.domain import RunSummary
from refresher.models.orm import ChunkModel
from refresher.observability import health_state
from tests.support import BUCKET, NOW, FakeProvider, add_chunk, get_row, s3_url


def make_config(**overrides) -> RefresherConfig:
    values = {
        "storage_bucket": BUCKET,
        "database_url": "sqlite+aiosqlite:///:memory:",
        "auto_create_tables": True,
        "error_log_file_enabled": False,
    }
    values.update(overrides)
    return RefresherConfig(**values)


@pytest_asyncio.fixture
async def application():
    app = Application(make_config(), provider=FakeProvider())
    await app.setup()
    yield app
    await app.shutdown()


class TestSetup:
    async def test_builds_one_coordinator_per_family(self, application: Application):
        assert set(application.coordinators) == set(ArtifactFamily)
        assert application.scheduler is not None
        assert application.scheduler.cron_expression == "0 3 * * *"

    async def test_only_enabled_families_get_coordinators(self):
        app = Application(
            make_config(refresh_families=[ArtifactFamily.CHUNK]),
            provider=FakeProvider(),
        )
        await app.setup()
        try:
            assert list(app.coordinators) == [ArtifactFamily.CHUNK]

            with pytest.raises(ValueError, match="audio_record"):
                await app.run_once([ArtifactFamily.AUDIO_RECORD])
        finally:
            await app.shutdown()

    def test_build_coordinators_requires_setup(self):
        app = Application(make_config(), provider=FakeProvider())

        with pytest.raises(RuntimeError):
            app.build_coordinators([ArtifactFamily.CHUNK])

    async def test_duplicate_families_share_one_coordinator(self, application: Application):
        coordinators = application.build_coordinators(
            [ArtifactFamily.CHUNK, ArtifactFamily.CHUNK]
        )

        assert list(coordinators) == [ArtifactFamily.CHUNK]

    async def test_shutdown_is_idempotent(self):
        app = Application(make_config(), provider=FakeProvider())
        await app.setup()

        await app.shutdown()
        await app.shutdown()


class TestRunOnce:
    async def test_refreshes_expiring_chunk(self, application: Application):
        await add_chunk(
            application.database,
            "c1",
            url=s3_url("chunks/c1.mp3"),
            expires_at=NOW - timedelta(days=1),
        )

        summaries = await application.run_once([ArtifactFamily.CHUNK])

        assert len(summaries) == 1
        assert summaries[0].status == RunStatus.DONE
        assert summaries[0].succeeded == 1
        row = await get_row(application.database, ChunkModel, "c1")
        assert row.chunk_audio_expires_at > NOW
        assert application.provider.calls[0][0] == "chunks/c1.mp3"

    async def test_runs_are_recorded_in_history_and_health(self, application: Application):
        await application.run_once()

        runs = await application.run_dao.list_recent()
        assert {r.family for r in runs} == set(ArtifactFamily)
        assert {f.family for f in health_state.snapshot().last_runs} == set(ArtifactFamily)


class TestHealthRoute:
    async def test_healthy_before_any_run(self, application: Application):
        client = TestClient(application.create_fastapi_app())

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_degraded_is_reported_with_200_by_default(self, application: Application):
        health_state.record_summary(
            RunSummary(
                run_id="r1",
                family=ArtifactFamily.CHUNK,
                status=RunStatus.FAILED,
                started_at=NOW,
            )
        )
        client = TestClient(application.create_fastapi_app())

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    async def test_degraded_returns_503_when_configured(self):
        app = Application(
            make_config(health_fail_on_degraded=True), provider=FakeProvider()
        )
        await app.setup()
        try:
            health_state.record_summary(
                RunSummary(
                    run_id="r1",
                    family=ArtifactFamily.CHUNK,
                    status=RunStatus.FAILED,
                    started_at=NOW,
                )
            )
            client = TestClient(app.create_fastapi_app())

            response = client.get("/health")

            assert response.status_code == 503
            assert response.json()["detail"]["status"] == "degraded"
        finally:
            await app.shutdown()
