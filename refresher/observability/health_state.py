"""Process health built from the latest refresh run of each family.

Health checks must stay responsive while a refresh run is in progress, so
the state lives in a small lock-protected module rather than behind the
database.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime

from refresher.enums import ArtifactFamily, RunStatus
from refresher.models.base import JsonModel
from refresher.models.domain import RunSummary


class FamilyHealth(JsonModel):
    family: ArtifactFamily
    status: RunStatus
    finished_at: datetime | None = None
    scanned: int = 0
    succeeded: int = 0
    failed_count: int = 0
    not_reached: int = 0
    store_unavailable_on_all: bool = False


class HealthSnapshot(JsonModel):
    service: str = "refresher"
    status: str = "healthy"  # healthy | degraded

    next_run_at: datetime | None = None
    last_runs: list[FamilyHealth] = []


@dataclass(slots=True)
class _HealthState:
    lock: threading.Lock
    last_runs: dict[ArtifactFamily, RunSummary] = field(default_factory=dict)
    next_run_at: datetime | None = None


_STATE = _HealthState(lock=threading.Lock())


def record_summary(summary: RunSummary) -> None:
    """Publish a finished run. Skipped runs leave the previous result in place."""
    if summary.status == RunStatus.SKIPPED:
        return
    with _STATE.lock:
        _STATE.last_runs[summary.family] = summary


def set_next_run(next_run_at: datetime | None) -> None:
    with _STATE.lock:
        _STATE.next_run_at = next_run_at


def reset() -> None:
    with _STATE.lock:
        _STATE.last_runs.clear()
        _STATE.next_run_at = None


def snapshot() -> HealthSnapshot:
    """Return the current health.

    The service is `degraded` when a family's last run could not scan its
    store, or when every artifact it tried failed with store_unavailable.
    """
    with _STATE.lock:
        summaries = list(_STATE.last_runs.values())
        next_run_at = _STATE.next_run_at

    families = [
        FamilyHealth(
            family=s.family,
            status=s.status,
            finished_at=s.finished_at,
            scanned=s.scanned,
            succeeded=s.succeeded,
            failed_count=s.failed_count,
            not_reached=s.not_reached,
            store_unavailable_on_all=s.store_unavailable_on_all,
        )
        for s in sorted(summaries, key=lambda s: s.family.value)
    ]
    degraded = any(
        f.status == RunStatus.FAILED or f.store_unavailable_on_all for f in families
    )

    return HealthSnapshot(
        status="degraded" if degraded else "healthy",
        next_run_at=next_run_at,
        last_runs=families,
    )
