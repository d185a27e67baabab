"""ASGI entry point for uvicorn with hot reload support.

Usage:
    uvicorn refresher.asgi:app --reload --host 0.0.0.0 --port 8750
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from refresher.config import RefresherConfig
from refresher.logging_filters import install_uvicorn_access_log_filters
from refresher.main import Application, register_health_route
from refresher.routers import create_refresh_router

# Global application instance for lifespan management
_application: Application | None = None


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan for ASGI server."""
    global _application

    config = RefresherConfig.from_json_file()
    install_uvicorn_access_log_filters()
    _application = Application(config)
    await _application.setup()

    fastapi_app.include_router(
        create_refresh_router(
            _application.coordinators,
            _application.run_dao,
            api_token=config.api_token,
        )
    )

    await _application.start_background_services()

    yield

    await _application.shutdown()
    _application = None


app = FastAPI(
    title="Refresher",
    description="Signed URL refresher for stored audio artifacts",
    version="1.0.0",
    lifespan=lifespan,
)


def _fail_on_degraded() -> bool:
    return _application is not None and _application.config.health_fail_on_degraded


register_health_route(app, fail_on_degraded=_fail_on_degraded)
