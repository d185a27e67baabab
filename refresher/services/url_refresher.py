"""URL refresher: mints one replacement signed URL for one artifact."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable
from urllib.parse import urlparse

from botocore.exceptions import BotoCoreError, ClientError

from refresher.exceptions import RefreshFailedError
from refresher.models.domain import Artifact, RefreshedUrl
from refresher.utils.time import utcnow

if TYPE_CHECKING:
    from refresher.services.signed_url_service import SignedUrlProvider

logger = logging.getLogger(__name__)


def _is_usable_url(url: object) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _describe_error(error: Exception) -> str:
    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        return f"{err.get('Code', 'ClientError')}: {err.get('Message', '')}".strip()
    if isinstance(error, BotoCoreError):
        return f"{type(error).__name__}: {error}"
    return str(error) or type(error).__name__


class UrlRefresher:
    """Requests a new URL valid for a fixed window from the call time.

    Expiry is always computed from the moment of the call, never from the
    previous expiry, so drift does not compound across refreshes.
    """

    def __init__(
        self,
        provider: "SignedUrlProvider",
        validity_window: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if validity_window <= timedelta(0):
            raise ValueError("validity_window must be positive")
        self._provider = provider
        self._validity_window = validity_window
        self._clock = clock

    @property
    def validity_window(self) -> timedelta:
        return self._validity_window

    async def refresh(self, artifact: Artifact) -> RefreshedUrl:
        """Mint a replacement URL for one artifact.

        Raises:
            RefreshFailedError: If the provider fails or returns an
                empty/invalid URL.
        """
        if not artifact.storage_path:
            raise RefreshFailedError(artifact.id, "artifact has no storage path")

        called_at = self._clock()
        try:
            url = await self._provider.mint_url(
                artifact.storage_path, self._validity_window
            )
        except Exception as e:
            raise RefreshFailedError(artifact.id, _describe_error(e)) from e

        if not _is_usable_url(url):
            raise RefreshFailedError(
                artifact.id, "provider returned an empty or invalid URL"
            )

        return RefreshedUrl(
            access_url=url.strip(),
            url_expires_at=called_at + self._validity_window,
        )
