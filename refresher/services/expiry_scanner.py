"""Expiry scanner: selects artifacts whose signed URL is about to expire."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from refresher.exceptions import RefreshError, StoreUnavailableError
from refresher.models.domain import Artifact
from refresher.utils.time import utcnow

if TYPE_CHECKING:
    from refresher.dao.artifact_dao import ArtifactStore

logger = logging.getLogger(__name__)


class ExpiryScanner:
    """Read-only query over one artifact store."""

    def __init__(
        self,
        store: "ArtifactStore",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def find_expiring(self, lookahead: timedelta) -> list[Artifact]:
        """Return artifacts with url_expires_at < now + lookahead.

        Raises:
            StoreUnavailableError: If the store cannot be queried.
        """
        now = self._clock()
        try:
            artifacts = await self._store.find_expiring(lookahead, now=now)
        except RefreshError:
            raise
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to scan {self._store.family.value} artifacts: {e}"
            ) from e

        logger.info(
            "Found %d %s artifact(s) expiring before %s",
            len(artifacts),
            self._store.family.value,
            (now + lookahead).isoformat(),
        )
        return artifacts
