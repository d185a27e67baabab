"""Pydantic domain models.

These models are returned by DAOs and used throughout the service layer.
SQLAlchemy ORM objects never leave the DAO layer.
"""

from datetime import datetime

from pydantic import Field, computed_field

from refresher.enums import ArtifactFamily, FailureReason, RunStatus
from refresher.models.base import JsonModel


class Artifact(JsonModel):
    """A stored object reachable through an expiring signed URL."""

    id: str
    family: ArtifactFamily
    storage_path: str
    access_url: str | None = None
    url_expires_at: datetime | None = None


class RefreshedUrl(JsonModel):
    """A freshly minted URL and the moment it stops being trusted."""

    access_url: str
    url_expires_at: datetime


class ArtifactFailure(JsonModel):
    """One artifact that could not be refreshed during a run."""

    id: str
    reason: FailureReason
    detail: str | None = None


class RunSummary(JsonModel):
    """Externally observable result of one refresh run."""

    run_id: str
    family: ArtifactFamily
    status: RunStatus = RunStatus.DONE
    started_at: datetime
    finished_at: datetime | None = None
    scanned: int = 0
    succeeded: int = 0
    failed: list[ArtifactFailure] = Field(default_factory=list)
    not_reached: int = 0
    timed_out: bool = False
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def store_unavailable_on_all(self) -> bool:
        """True when every scanned artifact hit a store outage on write."""
        return self.scanned > 0 and len(self.failed) == self.scanned and all(
            f.reason == FailureReason.STORE_UNAVAILABLE for f in self.failed
        )


class RefreshLock(JsonModel):
    """Lock row guarding a family against overlapping runs."""

    family: ArtifactFamily
    instance_id: str
    lock_acquired_at: datetime
