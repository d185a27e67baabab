"""Refresh task for scheduled execution.

Runs every configured family's coordinator once, one family after another.
A family whose run fails, for any reason, does not stop the remaining
families.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable
from uuid import uuid4

from refresher.enums import RunStatus
from refresher.exceptions import RefreshError
from refresher.models.domain import RunSummary
from refresher.utils.time import utcnow

if TYPE_CHECKING:
    from refresher.services.refresh_coordinator import RefreshCoordinator

logger = logging.getLogger(__name__)


async def refresh_all_families(
    coordinators: Iterable["RefreshCoordinator"],
) -> list[RunSummary]:
    """Execute one refresh run per family.

    Args:
        coordinators: One coordinator per enabled artifact family.

    Returns:
        Summaries in coordinator order. A family whose scan failed is
        represented by its recorded `failed` summary; a family whose run
        crashed gets a `failed` summary carrying the error.
    """
    summaries: list[RunSummary] = []
    for coordinator in coordinators:
        logger.info("Starting refresh task for %s", coordinator.family.value)
        try:
            summary = await coordinator.run_once()
        except RefreshError as e:
            logger.error(
                "Refresh task for %s failed: %s", coordinator.family.value, e
            )
            summary = coordinator.last_summary
            if summary is None or summary.status != RunStatus.FAILED:
                summary = _crashed(coordinator, e)
        except Exception as e:
            logger.exception(
                "Unexpected error in refresh task for %s", coordinator.family.value
            )
            summary = _crashed(coordinator, e)
        summaries.append(summary)

    return summaries


def _crashed(coordinator: "RefreshCoordinator", error: Exception) -> RunSummary:
    now = utcnow()
    return RunSummary(
        run_id=str(uuid4()),
        family=coordinator.family,
        status=RunStatus.FAILED,
        started_at=now,
        finished_at=now,
        error=str(error) or type(error).__name__,
    )


def any_failed(summaries: Iterable[RunSummary]) -> bool:
    """True when at least one family's run could not complete."""
    return any(s.status == RunStatus.FAILED for s in summaries)
