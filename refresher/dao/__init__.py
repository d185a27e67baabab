"""Data Access Objects package."""

from .artifact_dao import ARTIFACT_TABLES, ArtifactDAO, ArtifactStore, ArtifactTable
from .base import BaseDAO
from .refresh_lock_dao import RefreshLockDAO
from .refresh_run_dao import RefreshRunDAO

__all__ = [
    "ARTIFACT_TABLES",
    "ArtifactDAO",
    "ArtifactStore",
    "ArtifactTable",
    "BaseDAO",
    "RefreshLockDAO",
    "RefreshRunDAO",
]
