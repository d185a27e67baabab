"""Refresh run history data access operations."""

import json

from sqlalchemy import select

from refresher.dao.base import BaseDAO
from refresher.enums import ArtifactFamily, RunStatus
from refresher.models.domain import ArtifactFailure, RunSummary
from refresher.models.orm import RefreshRunModel


class RefreshRunDAO(BaseDAO[RunSummary]):
    """Data access object for refresh run history.

    All methods return Pydantic RunSummary models, never SQLAlchemy objects.
    """

    async def record(self, summary: RunSummary) -> RunSummary:
        """Persist a finished run summary.

        Args:
            summary: Summary produced by the refresh coordinator.

        Returns:
            The stored summary.
        """
        failures = [f.model_dump(mode="json") for f in summary.failed]
        async with self._db.session() as session:
            session.add(
                RefreshRunModel(
                    id=summary.run_id,
                    family=summary.family.value,
                    status=summary.status.value,
                    started_at=summary.started_at,
                    finished_at=summary.finished_at,
                    scanned=summary.scanned,
                    succeeded=summary.succeeded,
                    not_reached=summary.not_reached,
                    timed_out=summary.timed_out,
                    failures=json.dumps(failures) if failures else None,
                    error=summary.error,
                )
            )
        return summary

    async def list_recent(
        self,
        family: ArtifactFamily | None = None,
        limit: int = 20,
    ) -> list[RunSummary]:
        """Get the most recent runs, newest first.

        Args:
            family: Optional family filter.
            limit: Maximum number of runs to return.

        Returns:
            List of RunSummary domain models.
        """
        stmt = select(RefreshRunModel)
        if family is not None:
            stmt = stmt.where(RefreshRunModel.family == family.value)
        stmt = stmt.order_by(RefreshRunModel.started_at.desc()).limit(limit)

        async with self._db.session() as session:
            result = await session.execute(stmt)
            return [self._to_domain(m) for m in result.scalars().all()]

    async def get_last(self, family: ArtifactFamily) -> RunSummary | None:
        """Get the most recent run for a family, if any."""
        runs = await self.list_recent(family=family, limit=1)
        return runs[0] if runs else None

    @staticmethod
    def _to_domain(model: RefreshRunModel) -> RunSummary:
        failures = json.loads(model.failures) if model.failures else []
        return RunSummary(
            run_id=model.id,
            family=ArtifactFamily(model.family),
            status=RunStatus(model.status),
            started_at=model.started_at,
            finished_at=model.finished_at,
            scanned=model.scanned,
            succeeded=model.succeeded,
            not_reached=model.not_reached,
            timed_out=bool(model.timed_out),
            failed=[ArtifactFailure.model_validate(f) for f in failures],
            error=model.error,
        )
