"""Application entry point and bootstrap.

This module initializes all application components, wires dependencies,
and provides the main entry point for running the refresher either as a
long-lived service (API + in-process scheduler) or as a one-shot run for
external schedulers.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator, Callable, Iterable

from fastapi import FastAPI, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from refresher.config import RefresherConfig
from refresher.dao import ARTIFACT_TABLES, ArtifactDAO, ArtifactTable, RefreshLockDAO, RefreshRunDAO
from refresher.database import Database
from refresher.enums import ArtifactFamily
from refresher.logging_filters import configure_logging, install_uvicorn_access_log_filters
from refresher.models.domain import RunSummary
from refresher.observability.error_log_file import close_error_log_file, setup_error_log_file
from refresher.observability.health_state import record_summary
from refresher.observability.health_state import snapshot as health_snapshot
from refresher.routers import create_refresh_router
from refresher.scheduler import RefreshScheduler, any_failed, refresh_all_families
from refresher.services import RefreshCoordinator, S3SignedUrlProvider, SignedUrlProvider, UrlRefresher

# Configure logging
configure_logging()
logger = logging.getLogger(__name__)


class Application:
    """Main application container.

    Manages all application components and their lifecycle.
    Provides dependency injection and graceful shutdown.
    """

    def __init__(
        self,
        config: RefresherConfig,
        *,
        provider: SignedUrlProvider | None = None,
    ) -> None:
        """Initialize the application with configuration.

        Args:
            config: Application configuration.
            provider: Signed URL provider; built from config (S3) when omitted.
        """
        self.config = config
        self._shutdown_event = asyncio.Event()

        # Core components (initialized in setup)
        self.database: Database | None = None
        self.fastapi_app: FastAPI | None = None
        self.provider: SignedUrlProvider | None = provider

        # DAOs
        self.lock_dao: RefreshLockDAO | None = None
        self.run_dao: RefreshRunDAO | None = None

        # Services
        self.url_refresher: UrlRefresher | None = None
        self.coordinators: dict[ArtifactFamily, RefreshCoordinator] = {}

        # Scheduler
        self.scheduler: RefreshScheduler | None = None

    async def setup(self) -> None:
        """Initialize all application components.

        Sets up database, DAOs, the signed URL provider, and one
        coordinator per enabled family.
        """
        logger.info("Setting up application components...")

        # Initialize error log file handler early to capture setup errors
        setup_error_log_file(self.config)

        # Initialize database
        self.database = Database(self.config.database_url)
        if self.config.auto_create_tables:
            await self.database.init_db()
            logger.info("Database initialized (auto_create_tables=true)")
        else:
            logger.info(
                "Database initialized (auto_create_tables=false; relying on Alembic migrations)"
            )

        # Initialize DAOs
        self.lock_dao = RefreshLockDAO(
            self.database,
            lock_timeout_minutes=self.config.lock_timeout_minutes,
        )
        self.run_dao = RefreshRunDAO(self.database)
        logger.info("DAOs initialized")

        # Initialize services
        if self.provider is None:
            self.provider = S3SignedUrlProvider.from_config(self.config)
        self.url_refresher = UrlRefresher(
            self.provider,
            validity_window=timedelta(seconds=self.config.validity_window_seconds),
        )
        self.coordinators = self.build_coordinators(self.config.refresh_families)
        logger.info(
            "Refresh coordinators initialized for: %s",
            ", ".join(f.value for f in self.coordinators),
        )

        self.scheduler = RefreshScheduler(
            list(self.coordinators.values()),
            self.config.refresh_cron,
            run_on_startup=self.config.run_on_startup,
        )

    def _store_factory(self, table: ArtifactTable):
        def factory(session: AsyncSession) -> ArtifactDAO:
            return ArtifactDAO(
                session,
                table,
                bucket=self.config.storage_bucket,
                batch_limit=self.config.batch_limit,
                include_missing_expiry=self.config.refresh_missing_expiry,
            )

        return factory

    def build_coordinators(
        self,
        families: Iterable[ArtifactFamily],
    ) -> dict[ArtifactFamily, RefreshCoordinator]:
        """Create one coordinator per family, sharing the lock and history DAOs."""
        if self.database is None or self.url_refresher is None:
            raise RuntimeError("Application.setup() must run before building coordinators")

        coordinators: dict[ArtifactFamily, RefreshCoordinator] = {}
        for family in dict.fromkeys(families):
            coordinators[family] = RefreshCoordinator(
                family,
                self.database,
                self._store_factory(ARTIFACT_TABLES[family]),
                self.url_refresher,
                lookahead=timedelta(seconds=self.config.lookahead_seconds),
                lock_dao=self.lock_dao,
                run_dao=self.run_dao,
                max_concurrency=self.config.max_concurrency,
                run_timeout_seconds=self.config.run_timeout_seconds,
                on_summary=record_summary,
            )
        return coordinators

    async def run_once(
        self,
        families: Iterable[ArtifactFamily] | None = None,
    ) -> list[RunSummary]:
        """Run the selected families (default: all enabled) once."""
        selected = list(families) if families is not None else list(self.coordinators)
        missing = [f.value for f in selected if f not in self.coordinators]
        if missing:
            raise ValueError(f"Refresh is not enabled for: {', '.join(missing)}")
        return await refresh_all_families(self.coordinators[f] for f in selected)

    def create_fastapi_app(self) -> FastAPI:
        """Create and configure FastAPI application.

        Returns:
            Configured FastAPI application.
        """

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
            """Manage application lifespan."""
            logger.info("FastAPI application starting...")
            yield
            logger.info("FastAPI application shutting down...")

        self.fastapi_app = FastAPI(
            title="Refresher",
            description="Signed URL refresher for stored audio artifacts",
            version="1.0.0",
            lifespan=lifespan,
        )

        self.fastapi_app.include_router(
            create_refresh_router(
                self.coordinators,
                self.run_dao,
                api_token=self.config.api_token,
            )
        )
        logger.info("Refresh router registered")

        register_health_route(
            self.fastapi_app,
            fail_on_degraded=lambda: self.config.health_fail_on_degraded,
        )
        return self.fastapi_app

    async def start_background_services(self) -> None:
        """Start the refresh scheduler."""
        logger.info("Starting background services...")

        if self.scheduler:
            await self.scheduler.start()
            logger.info("Refresh scheduler started")

    async def shutdown(self) -> None:
        """Gracefully shutdown all application components.

        Stops the scheduler (letting an in-flight run release its session
        and lock) and closes database connections.
        """
        if self._shutdown_event.is_set():
            return
        logger.info("Initiating graceful shutdown...")

        # Signal shutdown
        self._shutdown_event.set()

        if self.scheduler and self.scheduler.is_running:
            await self.scheduler.stop()
            logger.info("Refresh scheduler stopped")

        if self.database:
            await self.database.close()
            logger.info("Database connection closed")

        logger.info("Graceful shutdown complete")
        close_error_log_file()


def register_health_route(
    fastapi_app: FastAPI,
    *,
    fail_on_degraded: Callable[[], bool],
) -> None:
    """Add GET /health reporting the last run of every family.

    fail_on_degraded is read per request because the ASGI entrypoint only
    loads its config inside the lifespan.
    """

    @fastapi_app.get("/health")
    async def health_check():
        """Health check endpoint."""
        snap = health_snapshot()
        if snap.status != "healthy" and fail_on_degraded():
            raise HTTPException(status_code=503, detail=snap.to_dict(mode="json"))
        return snap.to_dict(mode="json")


# Global application instance
_app: Application | None = None


async def create_app(config: RefresherConfig | None = None) -> Application:
    """Create and setup the application.

    Args:
        config: Optional configuration. If not provided, loads from
                config.json with environment variable overrides.

    Returns:
        Initialized Application instance.
    """
    global _app

    if config is None:
        config = RefresherConfig.from_json_file()

    _app = Application(config)
    await _app.setup()
    _app.create_fastapi_app()

    return _app


async def run_once_main(families: list[ArtifactFamily] | None = None) -> int:
    """Run each selected family once and exit.

    Entry point for external schedulers (cron, Cloud Scheduler, k8s CronJob).

    Returns:
        Process exit status: 1 if any family's scan failed, else 0.
    """
    config = RefresherConfig.from_json_file()
    app = Application(config)
    try:
        await app.setup()
        summaries = await app.run_once(families)
    finally:
        await app.shutdown()

    for summary in summaries:
        logger.info(
            "%s: status=%s scanned=%d succeeded=%d failed=%d not_reached=%d",
            summary.family.value,
            summary.status.value,
            summary.scanned,
            summary.succeeded,
            summary.failed_count,
            summary.not_reached,
        )
    return 1 if any_failed(summaries) else 0


async def main(reload: bool = False) -> None:
    """Main entry point for running the service.

    Initializes all components and serves the API with the in-process
    scheduler until shutdown is requested.

    Args:
        reload: Enable hot reload during development.
    """
    import uvicorn

    logger.info("Starting refresher...")

    try:
        config = RefresherConfig.from_json_file()
        logger.info("Configuration loaded")

        app = await create_app(config)
        await app.start_background_services()

        logger.info(
            "Application running. API available at http://%s:%d",
            config.api_host,
            config.api_port,
        )

        uvicorn_config = uvicorn.Config(
            app.fastapi_app,
            host=config.api_host,
            port=config.api_port,
            log_level="info",
            reload=reload,
        )

        # Ensure Uvicorn logging is configured, then suppress noisy healthcheck access logs.
        uvicorn_config.load()
        install_uvicorn_access_log_filters()

        server = uvicorn.Server(uvicorn_config)
        await server.serve()

    except Exception as e:
        logger.exception("Application error: %s", e)
        raise
    finally:
        if _app:
            await _app.shutdown()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Run the signed URL refresher")
    parser.add_argument("--reload", action="store_true", help="Enable hot reload")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one refresh batch per family and exit",
    )
    parser.add_argument(
        "--family",
        action="append",
        choices=[f.value for f in ArtifactFamily],
        help="Limit --once to this family (repeatable)",
    )
    args = parser.parse_args()

    if args.once:
        selected = [ArtifactFamily(f) for f in args.family] if args.family else None
        sys.exit(asyncio.run(run_once_main(selected)))

    if args.family:
        parser.error("--family requires --once")

    asyncio.run(main(reload=args.reload))
