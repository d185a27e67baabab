"""Refresh API endpoints.

Routers handle HTTP concerns only - no business logic.
Runs are delegated to the family's RefreshCoordinator and history reads to
RefreshRunDAO.
"""

from typing import TYPE_CHECKING, Mapping

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from refresher.enums import ArtifactFamily
from refresher.exceptions import RefreshError
from refresher.models.base import JsonModel
from refresher.models.domain import RunSummary
from refresher.security.api_token import enforce_api_token_or_401

if TYPE_CHECKING:
    from refresher.dao.refresh_run_dao import RefreshRunDAO
    from refresher.services.refresh_coordinator import RefreshCoordinator


class RunListResponse(JsonModel):
    """Response model for run history."""

    runs: list[RunSummary]


class RunErrorResponse(JsonModel):
    """Body returned with 503 when a run could not scan its store."""

    error: str
    summary: RunSummary | None = None


def create_refresh_router(
    coordinators: Mapping[ArtifactFamily, "RefreshCoordinator"],
    run_dao: "RefreshRunDAO | None" = None,
    *,
    api_token: str | None = None,
) -> APIRouter:
    """Create refresh router with injected coordinators.

    Args:
        coordinators: Enabled families mapped to their coordinators.
        run_dao: Run history DAO; history reads return 503 without it.
        api_token: Bearer token required on every route when set.

    Returns:
        APIRouter with refresh endpoints configured
    """

    async def require_token(
        authorization: str | None = Header(default=None),
    ) -> None:
        enforce_api_token_or_401(authorization, api_token)

    router = APIRouter(
        prefix="/api/refresh",
        tags=["refresh"],
        dependencies=[Depends(require_token)],
    )

    def get_coordinator(family: ArtifactFamily) -> "RefreshCoordinator":
        coordinator = coordinators.get(family)
        if coordinator is None:
            raise HTTPException(
                status_code=404,
                detail=f"Refresh is not enabled for {family.value}",
            )
        return coordinator

    @router.get("/runs", response_model=RunListResponse)
    async def list_runs(
        family: ArtifactFamily | None = Query(default=None),
        limit: int = Query(default=20, ge=1, le=200),
    ) -> RunListResponse:
        """List recent runs, newest first."""
        if run_dao is None:
            raise HTTPException(status_code=503, detail="Run history is not available")
        runs = await run_dao.list_recent(family=family, limit=limit)
        return RunListResponse(runs=runs)

    @router.post("/{family}/run", response_model=RunSummary)
    async def trigger_run(family: ArtifactFamily) -> RunSummary:
        """Run one refresh batch for a family and return its summary.

        A run already in progress yields a `skipped` summary.

        Raises:
            HTTPException: 404 if the family is disabled, 503 if the store
                could not be scanned
        """
        coordinator = get_coordinator(family)
        try:
            return await coordinator.run_once()
        except RefreshError as e:
            body = RunErrorResponse(error=str(e), summary=coordinator.last_summary)
            raise HTTPException(status_code=503, detail=body.to_dict(mode="json"))

    return router
