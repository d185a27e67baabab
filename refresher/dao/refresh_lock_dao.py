"""Refresh lock data access operations for cross-instance locking."""

from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from refresher.dao.base import BaseDAO
from refresher.database import Database
from refresher.enums import ArtifactFamily
from refresher.models.domain import RefreshLock
from refresher.models.orm import RefreshLockModel
from refresher.utils.time import utcnow


class RefreshLockDAO(BaseDAO[RefreshLock]):
    """Data access object for refresh locks.

    One lock row per artifact family keeps two scheduler instances from
    refreshing the same family concurrently. Locks older than the timeout
    are treated as abandoned by a crashed instance and may be taken over.

    All methods return Pydantic RefreshLock models, never SQLAlchemy objects.
    """

    DEFAULT_LOCK_TIMEOUT_MINUTES = 15

    def __init__(
        self,
        database: Database,
        lock_timeout_minutes: int = DEFAULT_LOCK_TIMEOUT_MINUTES,
    ):
        super().__init__(database)
        self.lock_timeout = timedelta(minutes=lock_timeout_minutes)

    async def try_acquire_lock(
        self,
        family: ArtifactFamily,
        instance_id: str,
    ) -> bool:
        """Attempt to acquire the lock for a family atomically.

        If no lock exists, creates one. If an expired lock exists, replaces
        it. If a valid lock exists, returns False.

        Args:
            family: Artifact family to lock.
            instance_id: Unique identifier for this scheduler instance.

        Returns:
            True if lock was acquired, False if already locked by another run.
        """
        now = utcnow()
        expiry_threshold = now - self.lock_timeout

        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(RefreshLockModel).where(
                        RefreshLockModel.family == family.value
                    )
                )
                existing_lock = result.scalar_one_or_none()

                if existing_lock is None:
                    session.add(
                        RefreshLockModel(
                            family=family.value,
                            instance_id=instance_id,
                            lock_acquired_at=now,
                        )
                    )
                    # Commit happens on context exit
                    return True

                if existing_lock.lock_acquired_at < expiry_threshold:
                    existing_lock.instance_id = instance_id
                    existing_lock.lock_acquired_at = now
                    return True

                return False
        except IntegrityError:
            # Another instance inserted the lock row concurrently
            return False

    async def release_lock(self, family: ArtifactFamily, instance_id: str) -> bool:
        """Release a lock held by this instance.

        Args:
            family: Artifact family to unlock.
            instance_id: Instance that acquired the lock.

        Returns:
            True if the lock was found and released, False otherwise.
        """
        async with self._db.session() as session:
            result = await session.execute(
                delete(RefreshLockModel).where(
                    RefreshLockModel.family == family.value,
                    RefreshLockModel.instance_id == instance_id,
                )
            )
            return result.rowcount > 0

    async def is_locked(self, family: ArtifactFamily) -> bool:
        """Check if a valid (non-expired) lock exists for a family."""
        lock = await self.get_lock(family)
        if lock is None:
            return False
        return lock.lock_acquired_at >= utcnow() - self.lock_timeout

    async def get_lock(self, family: ArtifactFamily) -> RefreshLock | None:
        """Get lock information for a family.

        Returns:
            RefreshLock domain model if a lock row exists, None otherwise.
        """
        async with self._db.session() as session:
            result = await session.execute(
                select(RefreshLockModel).where(
                    RefreshLockModel.family == family.value
                )
            )
            lock_model = result.scalar_one_or_none()

            if lock_model is None:
                return None

            return RefreshLock(
                family=ArtifactFamily(lock_model.family),
                instance_id=lock_model.instance_id,
                lock_acquired_at=lock_model.lock_acquired_at,
            )
