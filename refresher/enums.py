"""StrEnum definitions for type-safe constants."""

from enum import StrEnum


class ArtifactFamily(StrEnum):
    """Artifact families whose audio lives behind expiring signed URLs."""

    AUDIO_RECORD = "audio_record"
    FLASHCARD_QUESTION = "flashcard_question"
    CHUNK = "chunk"


class RunState(StrEnum):
    """States of a single refresh run."""

    IDLE = "idle"
    SCANNING = "scanning"
    REFRESHING = "refreshing"
    DONE = "done"
    FAILED = "failed"


class RunStatus(StrEnum):
    """Final status reported in a run summary."""

    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


class FailureReason(StrEnum):
    """Why a single artifact could not be refreshed."""

    REFRESH_FAILED = "refresh_failed"
    NOT_FOUND = "not_found"
    STORE_UNAVAILABLE = "store_unavailable"
    TIMEOUT = "timeout"
    UNEXPECTED = "unexpected"
