"""Refresh error taxonomy.

Each error carries the FailureReason it is reported under in run summaries.
"""

from refresher.enums import FailureReason


class RefreshError(Exception):
    """Base class for refresh failures."""

    reason: FailureReason = FailureReason.UNEXPECTED


class StoreUnavailableError(RefreshError):
    """The artifact store could not be reached or rejected the statement."""

    reason = FailureReason.STORE_UNAVAILABLE


class ArtifactNotFoundError(RefreshError):
    """The artifact row disappeared between scan and write."""

    reason = FailureReason.NOT_FOUND

    def __init__(self, artifact_id: str) -> None:
        super().__init__(f"Artifact '{artifact_id}' no longer exists")
        self.artifact_id = artifact_id


class RefreshFailedError(RefreshError):
    """The storage provider could not mint a usable signed URL."""

    reason = FailureReason.REFRESH_FAILED

    def __init__(self, artifact_id: str, message: str) -> None:
        super().__init__(f"Failed to refresh artifact '{artifact_id}': {message}")
        self.artifact_id = artifact_id


class RefreshTimeoutError(RefreshError):
    """An in-flight artifact was cut off by the run deadline."""

    reason = FailureReason.TIMEOUT
