"""Unit tests for ExpiryScanner."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from refresher.enums import ArtifactFamily
from refresher.exceptions import StoreUnavailableError
from refresher.models.domain import Artifact
from refresher.services.expiry_scanner import ExpiryScanner
from tests.support import NOW, FixedClock


def make_store(result=None, error=None):
    store = MagicMock()
    store.family = ArtifactFamily.AUDIO_RECORD
    store.find_expiring = AsyncMock(return_value=result or [], side_effect=error)
    return store


class TestExpiryScanner:
    async def test_passes_lookahead_and_clock_time_to_store(self):
        artifact = Artifact(
            id="a1", family=ArtifactFamily.AUDIO_RECORD, storage_path="audio/a1.mp3"
        )
        store = make_store([artifact])
        scanner = ExpiryScanner(store, clock=FixedClock())

        found = await scanner.find_expiring(timedelta(days=3))

        assert found == [artifact]
        store.find_expiring.assert_awaited_once_with(timedelta(days=3), now=NOW)

    async def test_empty_store_returns_empty_list(self):
        scanner = ExpiryScanner(make_store([]), clock=FixedClock())

        assert await scanner.find_expiring(timedelta(days=3)) == []

    async def test_store_unavailable_propagates_unchanged(self):
        error = StoreUnavailableError("connection refused")
        scanner = ExpiryScanner(make_store(error=error), clock=FixedClock())

        with pytest.raises(StoreUnavailableError) as exc_info:
            await scanner.find_expiring(timedelta(days=3))

        assert exc_info.value is error

    async def test_unexpected_store_error_is_wrapped(self):
        scanner = ExpiryScanner(
            make_store(error=ConnectionResetError("peer reset")), clock=FixedClock()
        )

        with pytest.raises(StoreUnavailableError, match="peer reset"):
            await scanner.find_expiring(timedelta(days=3))
