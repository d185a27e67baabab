"""Artifact store adapters.

Each artifact family lives in its own table with its own URL and expiry
columns. An ArtifactTable describes those columns and ArtifactDAO turns the
description into the two operations the refresh core needs: find_expiring
and update_url.

Unlike the other DAOs, ArtifactDAO is bound to one session for the whole
refresh run rather than opening a session per call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from refresher.enums import ArtifactFamily
from refresher.exceptions import ArtifactNotFoundError, StoreUnavailableError
from refresher.models.domain import Artifact
from refresher.models.orm import AudioRecordModel, ChunkModel, FlashcardModel
from refresher.utils.storage_path import extract_storage_path
from refresher.utils.time import utcnow

logger = logging.getLogger(__name__)


class ArtifactStore(Protocol):
    """Capability every artifact table adapter supplies."""

    family: ArtifactFamily

    async def find_expiring(
        self,
        lookahead: timedelta,
        *,
        now: datetime | None = None,
    ) -> list[Artifact]: ...

    async def update_url(
        self,
        artifact_id: str,
        access_url: str,
        url_expires_at: datetime,
    ) -> None: ...


@dataclass(frozen=True)
class ArtifactTable:
    """Column layout of one artifact table.

    When storage_path_column is None the storage path is recovered from the
    current signed URL instead.
    """

    family: ArtifactFamily
    model: Any
    url_column: str
    expires_column: str
    storage_path_column: str | None = None
    id_column: str = "id"

    def column(self, name: str):
        return getattr(self.model, name)


ARTIFACT_TABLES: dict[ArtifactFamily, ArtifactTable] = {
    ArtifactFamily.AUDIO_RECORD: ArtifactTable(
        family=ArtifactFamily.AUDIO_RECORD,
        model=AudioRecordModel,
        url_column="audio_url",
        expires_column="audio_url_expires_at",
        storage_path_column="storage_path",
    ),
    ArtifactFamily.FLASHCARD_QUESTION: ArtifactTable(
        family=ArtifactFamily.FLASHCARD_QUESTION,
        model=FlashcardModel,
        url_column="question_audio_url",
        expires_column="question_audio_url_expires_at",
    ),
    ArtifactFamily.CHUNK: ArtifactTable(
        family=ArtifactFamily.CHUNK,
        model=ChunkModel,
        url_column="chunk_audio",
        expires_column="chunk_audio_expires_at",
    ),
}


class ArtifactDAO:
    """SQL adapter implementing ArtifactStore for one table.

    Writes are serialized because a single AsyncSession must not run
    statements concurrently.
    """

    def __init__(
        self,
        session: AsyncSession,
        table: ArtifactTable,
        *,
        bucket: str | None = None,
        batch_limit: int = 1000,
        include_missing_expiry: bool = False,
    ) -> None:
        """Bind the adapter to a run-scoped session.

        Args:
            session: Session held for the duration of the refresh run.
            table: Column layout of the artifact table.
            bucket: Storage bucket, used when recovering paths from URLs.
            batch_limit: Maximum rows returned by one scan.
            include_missing_expiry: Also select rows with a NULL expiry.
        """
        self._session = session
        self._table = table
        self._bucket = bucket
        self._batch_limit = batch_limit
        self._include_missing_expiry = include_missing_expiry
        self._write_lock = asyncio.Lock()

    @property
    def family(self) -> ArtifactFamily:
        return self._table.family

    @property
    def table(self) -> ArtifactTable:
        return self._table

    async def find_expiring(
        self,
        lookahead: timedelta,
        *,
        now: datetime | None = None,
    ) -> list[Artifact]:
        """Return artifacts whose URL expires strictly before now + lookahead.

        Rows are ordered soonest-expiring first and capped at batch_limit.
        Rows without a usable storage path are excluded.

        Raises:
            StoreUnavailableError: If the query fails.
        """
        t = self._table
        horizon = (now or utcnow()) + lookahead
        id_col = t.column(t.id_column)
        url_col = t.column(t.url_column)
        expires_col = t.column(t.expires_column)
        path_col = (
            t.column(t.storage_path_column) if t.storage_path_column else None
        )

        columns = [id_col, url_col, expires_col]
        if path_col is not None:
            columns.append(path_col)
            conditions = [path_col.is_not(None), path_col != ""]
        else:
            conditions = [url_col.is_not(None), url_col != ""]

        if self._include_missing_expiry:
            conditions.append(or_(expires_col.is_(None), expires_col < horizon))
        else:
            conditions.append(expires_col < horizon)

        stmt = (
            select(*columns)
            .where(*conditions)
            .order_by(expires_col.asc().nulls_first())
            .limit(self._batch_limit)
        )

        try:
            result = await self._session.execute(stmt)
            rows = result.all()
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(
                f"Failed to scan {t.model.__tablename__}: {e}"
            ) from e

        artifacts: list[Artifact] = []
        for row in rows:
            artifact_id = str(row[0])
            access_url = row[1]
            if path_col is not None:
                storage_path = row[3] or ""
            else:
                storage_path = extract_storage_path(access_url, self._bucket) or ""

            if not storage_path.strip():
                logger.warning(
                    "Skipping %s '%s': could not determine storage path",
                    t.family.value,
                    artifact_id,
                )
                continue

            artifacts.append(
                Artifact(
                    id=artifact_id,
                    family=t.family,
                    storage_path=storage_path,
                    access_url=access_url,
                    url_expires_at=row[2],
                )
            )

        return artifacts

    async def update_url(
        self,
        artifact_id: str,
        access_url: str,
        url_expires_at: datetime,
    ) -> None:
        """Write the URL and its expiry together in one committed UPDATE.

        Raises:
            ArtifactNotFoundError: If no row has this id anymore.
            StoreUnavailableError: If the statement or commit fails.
        """
        t = self._table
        stmt = (
            update(t.model)
            .where(t.column(t.id_column) == artifact_id)
            .values({t.url_column: access_url, t.expires_column: url_expires_at})
            .execution_options(synchronize_session=False)
        )

        async with self._write_lock:
            try:
                result = await self._session.execute(stmt)
                if result.rowcount == 0:
                    await self._session.rollback()
                    raise ArtifactNotFoundError(artifact_id)
                await self._session.commit()
            except (SQLAlchemyError, OSError) as e:
                await self._safe_rollback()
                raise StoreUnavailableError(
                    f"Failed to update {t.family.value} '{artifact_id}': {e}"
                ) from e
            except asyncio.CancelledError:
                # Cancelled mid-write: discard the pending UPDATE.
                await self._safe_rollback()
                raise

    async def _safe_rollback(self) -> None:
        try:
            await self._session.rollback()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Rollback failed after write error: %s", e)
